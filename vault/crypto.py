from __future__ import annotations

import base64
import re
from dataclasses import dataclass

from cryptography.hazmat.primitives import padding

from encrypted_uploads.errors import (
    DecryptionFailed,
    EncodeFailed,
    InvalidToken,
)

from .ciphers import CipherConfig, CipherMethod
from .salt import SaltStore, random_bytes

_CANONICAL_ID = re.compile(r"0|[1-9][0-9]*")


@dataclass(frozen=True)
class EncryptedBlob:
    """
    Framed ciphertext as written to storage.

    Layout: ``iv || salt || ciphertext``. The IV length is fixed by the
    cipher method and the salt length by the persisted site salt, so the
    framing carries no length prefixes.
    """

    iv: bytes
    salt: bytes
    ciphertext: bytes

    def framed_bytes(self) -> bytes:
        return self.iv + self.salt + self.ciphertext


def _raw_encrypt(method: CipherMethod, key: bytes, iv: bytes, data: bytes) -> bytes:
    if method.padded:
        padder = padding.PKCS7(method.block_bits).padder()
        data = padder.update(data) + padder.finalize()
    enc = method.cipher(key, iv).encryptor()
    return enc.update(data) + enc.finalize()

def _raw_decrypt(method: CipherMethod, key: bytes, iv: bytes, data: bytes) -> bytes:
    # ValueError on bad length or bad padding
    dec = method.cipher(key, iv).decryptor()
    out = dec.update(data) + dec.finalize()
    if method.padded:
        unpadder = padding.PKCS7(method.block_bits).unpadder()
        out = unpadder.update(out) + unpadder.finalize()
    return out


def encrypt(plaintext: bytes, config: CipherConfig, salts: SaltStore) -> EncryptedBlob:
    """
    Encrypt a blob under the shared key with a fresh random IV.

    Raw mode, no integrity tag: a tampered blob may decrypt to different
    plaintext instead of failing.

    Raises:
        UnsupportedCipherMethod: Unknown cipher method
        InvalidCipherKey: Key shorter than the method requires
        RandomnessUnavailable: OS cannot supply secure random bytes
    """
    method = config.cipher_method()
    key = config.effective_key()
    iv = random_bytes(method.iv_size)
    ciphertext = _raw_encrypt(method, key, iv, plaintext)
    return EncryptedBlob(iv=iv, salt=salts.get_or_create(), ciphertext=ciphertext)


def split_blob(blob: bytes, config: CipherConfig, salts: SaltStore) -> EncryptedBlob:
    """Split framed bytes using the method's IV size and the current salt length."""
    iv_len = config.cipher_method().iv_size
    salt = salts.get_or_create()
    head = iv_len + len(salt)
    if len(blob) < head:
        raise DecryptionFailed("Blob is shorter than its IV and salt framing")
    return EncryptedBlob(iv=blob[:iv_len], salt=blob[iv_len:head], ciphertext=blob[head:])


def decrypt(blob: bytes, config: CipherConfig, salts: SaltStore) -> bytes:
    """Inverse of ``encrypt(...).framed_bytes()``; raises DecryptionFailed."""
    method = config.cipher_method()
    key = config.effective_key()
    parts = split_blob(blob, config, salts)
    try:
        return _raw_decrypt(method, key, parts.iv, parts.ciphertext)
    except ValueError as e:
        raise DecryptionFailed("Ciphertext rejected by cipher") from e


def encode_object_token(object_id: int, config: CipherConfig) -> str:
    """
    Reversible, deterministic handle for an object id.

    ``str(id)`` is encrypted with the fixed token IV, base64-encoded as
    OpenSSL's text output, then base64-encoded again for the URL.
    """
    if isinstance(object_id, bool) or not isinstance(object_id, int) or object_id < 0:
        raise EncodeFailed(f"Object id must be a non-negative integer, got {object_id!r}")
    method = config.cipher_method()
    key = config.effective_key()
    try:
        raw = _raw_encrypt(method, key, config.token_iv(), str(object_id).encode("ascii"))
    except ValueError as e:
        raise EncodeFailed("Cipher rejected object id") from e
    return base64.b64encode(base64.b64encode(raw)).decode("ascii")


def decode_object_token(token: str, config: CipherConfig) -> int:
    """Recover the object id from a token; raises InvalidToken on any defect."""
    method = config.cipher_method()
    key = config.effective_key()
    try:
        inner = base64.b64decode(token.encode("ascii"), validate=True)
        raw = base64.b64decode(inner, validate=True)
    except ValueError as e:
        raise InvalidToken("Token is not valid base64") from e
    if not raw:
        raise InvalidToken("Token is empty")
    try:
        text = _raw_decrypt(method, key, config.token_iv(), raw).decode("ascii")
    except ValueError as e:
        raise InvalidToken("Token does not decrypt") from e
    if not _CANONICAL_ID.fullmatch(text):
        raise InvalidToken("Token does not hold an object id")
    return int(text)
