"""
Cipher codec tests.

Verifies:
- encrypt/decrypt round-trip for every supported method
- blob framing: iv || salt || ciphertext
- tamper sensitivity of the unauthenticated ciphertext
- object token round-trip and rejection of malformed tokens
"""

import base64
import os

import pytest

from encrypted_uploads.errors import (
    DecryptionFailed,
    EncodeFailed,
    InvalidCipherKey,
    InvalidToken,
    RandomnessUnavailable,
    UnsupportedCipherMethod,
)
from vault.ciphers import METHODS, CipherConfig
from vault.crypto import (
    EncryptedBlob,
    _raw_encrypt,
    decode_object_token,
    decrypt,
    encode_object_token,
    encrypt,
    split_blob,
)
from vault.salt import MemorySaltStore

KEY = bytes(range(32))
SECRET = b"secure-auth-salt-" * 4
SALT = base64.b64encode(b"site-salt-bytes")


def _config(method="AES128", key=KEY, secret=SECRET):
    return CipherConfig(method=method, key=key, token_secret=secret)


@pytest.fixture
def salts():
    return MemorySaltStore(SALT)


class TestRoundTrip:

    def test_hello_world_aes128(self, salts):
        """AES128 with a 32-byte key decrypts back to the exact plaintext."""
        cfg = _config()
        blob = encrypt(b"hello world", cfg, salts)
        assert decrypt(blob.framed_bytes(), cfg, salts) == b"hello world"

    @pytest.mark.parametrize("method", sorted(METHODS))
    @pytest.mark.parametrize("plaintext", [b"", b"x", b"a" * 16, os.urandom(1000)])
    def test_round_trip_all_methods(self, method, plaintext, salts):
        cfg = _config(method)
        blob = encrypt(plaintext, cfg, salts)
        assert decrypt(blob.framed_bytes(), cfg, salts) == plaintext

    def test_fresh_iv_per_encryption(self, salts):
        cfg = _config()
        blobs = [encrypt(b"same plaintext", cfg, salts) for _ in range(50)]
        assert len({b.iv for b in blobs}) == 50
        assert len({b.framed_bytes() for b in blobs}) == 50

    def test_wrong_key_never_returns_plaintext(self, salts):
        blob = encrypt(b"top secret payload", _config(), salts)
        other = _config(key=bytes(32))
        try:
            out = decrypt(blob.framed_bytes(), other, salts)
        except DecryptionFailed:
            return
        assert out != b"top secret payload"


class TestFraming:

    def test_layout(self, salts):
        cfg = _config("aes-256-cbc")
        blob = encrypt(b"payload", cfg, salts)
        framed = blob.framed_bytes()

        assert len(blob.iv) == 16
        assert blob.salt == SALT
        assert framed[:16] == blob.iv
        assert framed[16:16 + len(SALT)] == SALT
        assert framed[16 + len(SALT):] == blob.ciphertext

    def test_split_is_inverse_of_framing(self, salts):
        cfg = _config()
        blob = encrypt(b"payload", cfg, salts)
        assert split_blob(blob.framed_bytes(), cfg, salts) == blob

    def test_ecb_has_no_iv(self, salts):
        blob = encrypt(b"payload", _config("aes-128-ecb"), salts)
        assert blob.iv == b""

    def test_truncated_blob_fails(self, salts):
        cfg = _config()
        with pytest.raises(DecryptionFailed):
            decrypt(b"\x00" * 10, cfg, salts)

    def test_bad_block_length_fails(self, salts):
        cfg = _config()
        blob = encrypt(b"payload", cfg, salts)
        with pytest.raises(DecryptionFailed):
            decrypt(blob.framed_bytes()[:-3], cfg, salts)

    def test_empty_ciphertext_fails_for_padded_mode(self, salts):
        cfg = _config()
        framed = EncryptedBlob(iv=b"\x00" * 16, salt=SALT, ciphertext=b"").framed_bytes()
        with pytest.raises(DecryptionFailed):
            decrypt(framed, cfg, salts)


class TestTamperSensitivity:

    @pytest.mark.parametrize("method", ["aes-128-cbc", "aes-256-ctr", "chacha20"])
    def test_bit_flip_never_yields_original(self, method, salts):
        """
        Unauthenticated: a flipped bit either fails or changes the output,
        it never silently returns the original plaintext.
        """
        cfg = _config(method)
        plaintext = b"hello world"
        framed = bytearray(encrypt(plaintext, cfg, salts).framed_bytes())
        start = cfg.cipher_method().iv_size + len(SALT)

        for i in range(start, len(framed)):
            for bit in range(8):
                tampered = bytearray(framed)
                tampered[i] ^= 1 << bit
                try:
                    out = decrypt(bytes(tampered), cfg, salts)
                except DecryptionFailed:
                    continue
                assert out != plaintext


class TestConfigurationErrors:

    def test_unknown_method(self, salts):
        with pytest.raises(UnsupportedCipherMethod):
            encrypt(b"data", _config("rot13"), salts)

    def test_aead_modes_are_unsupported(self, salts):
        with pytest.raises(UnsupportedCipherMethod):
            encrypt(b"data", _config("aes-256-gcm"), salts)

    def test_short_key(self, salts):
        with pytest.raises(InvalidCipherKey):
            encrypt(b"data", _config("aes-256-cbc", key=b"k" * 16), salts)

    def test_randomness_unavailable(self, monkeypatch, salts):
        def no_random(_n):
            raise NotImplementedError("no entropy")

        monkeypatch.setattr(os, "urandom", no_random)
        with pytest.raises(RandomnessUnavailable):
            encrypt(b"data", _config(), salts)


class TestObjectTokens:

    @pytest.mark.parametrize("object_id", [0, 1, 7, 42, 999, 123456789, 2**63])
    def test_round_trip(self, object_id):
        cfg = _config()
        assert decode_object_token(encode_object_token(object_id, cfg), cfg) == object_id

    def test_token_42(self):
        cfg = _config()
        token = encode_object_token(42, cfg)
        assert decode_object_token(token, cfg) == 42

    @pytest.mark.parametrize("method", sorted(METHODS))
    def test_round_trip_all_methods(self, method):
        cfg = _config(method)
        assert decode_object_token(encode_object_token(314, cfg), cfg) == 314

    def test_deterministic(self):
        cfg = _config()
        assert encode_object_token(5, cfg) == encode_object_token(5, cfg)
        assert encode_object_token(5, cfg) != encode_object_token(6, cfg)

    def test_token_is_double_base64(self):
        cfg = _config()
        token = encode_object_token(42, cfg)
        inner = base64.b64decode(token, validate=True)
        raw = base64.b64decode(inner, validate=True)
        # "42" padded to one AES block
        assert len(raw) == 16

    def test_secret_changes_token(self):
        a = encode_object_token(42, _config(secret=b"a" * 16))
        b = encode_object_token(42, _config(secret=b"b" * 16))
        assert a != b

    @pytest.mark.parametrize("bad", [-1, True, "42", 4.2, None])
    def test_encode_rejects_non_ids(self, bad):
        with pytest.raises(EncodeFailed):
            encode_object_token(bad, _config())

    @pytest.mark.parametrize(
        "token",
        [
            "",
            "!!!",
            "not base64 at all",
            "aGVsbG8=",  # valid outer layer, inner "hello" is not base64
            "ü",
            base64.b64encode(base64.b64encode(b"\x01" * 16)).decode(),
            base64.b64encode(base64.b64encode(b"\x01" * 15)).decode(),
        ],
    )
    def test_malformed_tokens(self, token):
        with pytest.raises(InvalidToken):
            decode_object_token(token, _config())

    def test_non_numeric_plaintext(self):
        cfg = _config()
        raw = _raw_encrypt(cfg.cipher_method(), cfg.effective_key(), cfg.token_iv(), b"12abc")
        token = base64.b64encode(base64.b64encode(raw)).decode()
        with pytest.raises(InvalidToken):
            decode_object_token(token, cfg)

    def test_negative_plaintext(self):
        cfg = _config()
        raw = _raw_encrypt(cfg.cipher_method(), cfg.effective_key(), cfg.token_iv(), b"-3")
        token = base64.b64encode(base64.b64encode(raw)).decode()
        with pytest.raises(InvalidToken):
            decode_object_token(token, cfg)

    @pytest.mark.parametrize("plaintext", [b"0042", b"00", b"01"])
    def test_leading_zeros_rejected(self, plaintext):
        cfg = _config()
        raw = _raw_encrypt(cfg.cipher_method(), cfg.effective_key(), cfg.token_iv(), plaintext)
        token = base64.b64encode(base64.b64encode(raw)).decode()
        with pytest.raises(InvalidToken):
            decode_object_token(token, cfg)

    def test_token_from_other_key(self):
        token = encode_object_token(42, _config(key=b"x" * 32))
        with pytest.raises(InvalidToken):
            decode_object_token(token, _config())
