"""
Symmetric cipher methods addressable by their OpenSSL names.

Method names are case-insensitive and accept the short OpenSSL aliases
(``AES128`` is ``aes-128-cbc``). Keys longer than a method needs are
truncated, the way ``openssl_encrypt`` treats them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from encrypted_uploads.errors import InvalidCipherKey, UnsupportedCipherMethod

CipherFactory = Callable[[bytes, bytes], Cipher]

AES_BLOCK_BITS = 128


@dataclass(frozen=True)
class CipherMethod:
    """A named cipher: sizes in bytes, ``block_bits`` is 0 for stream modes."""

    name: str
    key_size: int
    iv_size: int
    block_bits: int
    factory: CipherFactory

    @property
    def padded(self) -> bool:
        return self.block_bits > 0

    def cipher(self, key: bytes, iv: bytes) -> Cipher:
        return self.factory(key, iv)


def _aes_cbc(key: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(key), modes.CBC(iv))

def _aes_ecb(key: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(key), modes.ECB())

def _aes_ctr(key: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(key), modes.CTR(iv))

def _chacha20(key: bytes, iv: bytes) -> Cipher:
    return Cipher(algorithms.ChaCha20(key, iv), mode=None)


def _build_registry() -> Dict[str, CipherMethod]:
    methods: Dict[str, CipherMethod] = {}
    for bits in (128, 192, 256):
        ks = bits // 8
        methods[f"aes-{bits}-cbc"] = CipherMethod(f"aes-{bits}-cbc", ks, 16, AES_BLOCK_BITS, _aes_cbc)
        methods[f"aes-{bits}-ecb"] = CipherMethod(f"aes-{bits}-ecb", ks, 0, AES_BLOCK_BITS, _aes_ecb)
        methods[f"aes-{bits}-ctr"] = CipherMethod(f"aes-{bits}-ctr", ks, 16, 0, _aes_ctr)
    methods["chacha20"] = CipherMethod("chacha20", 32, 16, 0, _chacha20)
    return methods


METHODS: Dict[str, CipherMethod] = _build_registry()

ALIASES: Dict[str, str] = {
    "aes128": "aes-128-cbc",
    "aes192": "aes-192-cbc",
    "aes256": "aes-256-cbc",
}


def lookup_method(name: str) -> Optional[CipherMethod]:
    key = name.strip().lower()
    return METHODS.get(ALIASES.get(key, key))


def resolve_method(name: str) -> CipherMethod:
    """Return the cipher method for ``name`` or raise UnsupportedCipherMethod."""
    method = lookup_method(name)
    if method is None:
        raise UnsupportedCipherMethod(f"Unsupported cipher method: {name!r}")
    return method


def iv_size(name: str) -> int:
    return resolve_method(name).iv_size


@dataclass(frozen=True)
class CipherConfig:
    """
    Process-wide cipher configuration.

    Attributes:
        method: OpenSSL-style method name
        key: Shared secret, at least the method's key size
        token_secret: Secondary secret used as the fixed IV of object tokens
    """

    method: str
    key: bytes
    token_secret: bytes = b""

    def cipher_method(self) -> CipherMethod:
        return resolve_method(self.method)

    def effective_key(self) -> bytes:
        m = self.cipher_method()
        if len(self.key) < m.key_size:
            raise InvalidCipherKey(
                f"{m.name} needs a {m.key_size}-byte key, got {len(self.key)} bytes"
            )
        return self.key[: m.key_size]

    def token_iv(self) -> bytes:
        """Fixed IV for object tokens: truncated or NUL-padded secret."""
        size = self.cipher_method().iv_size
        return self.token_secret[:size].ljust(size, b"\0")

    def validate(self) -> CipherConfig:
        """Fail fast on an unknown method or a short key."""
        self.effective_key()
        return self
