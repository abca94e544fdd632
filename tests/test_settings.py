"""
Environment configuration tests.
"""

import os

import pytest

from encrypted_uploads.errors import InvalidCipherKey, UnsupportedCipherMethod
from encrypted_uploads.settings import Settings

REQUIRED = {
    "ENCRYPTED_UPLOADS_CIPHER_KEY": "k" * 64,
    "ENCRYPTED_UPLOADS_TOKEN_SECRET": "s" * 64,
}


@pytest.fixture
def env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("ENCRYPTED_UPLOADS_"):
            monkeypatch.delenv(name)
    for name, value in REQUIRED.items():
        monkeypatch.setenv(name, value)
    return monkeypatch


def test_defaults(env):
    s = Settings.load()
    assert s.CIPHER_METHOD == "AES128"
    assert s.ENDPOINT == "decrypt"
    assert s.STATE_DIR == "./state"
    assert s.VIEW_CAPABILITY == "edit_post"
    assert s.FETCH_TIMEOUT == 3.0
    assert s.FETCH_RETRIES == 2
    assert s.FETCH_VERIFY_TLS is True
    assert s.LOG_LEVEL == "INFO"


def test_overrides(env):
    env.setenv("ENCRYPTED_UPLOADS_CIPHER_METHOD", "aes-256-ctr")
    env.setenv("ENCRYPTED_UPLOADS_ENDPOINT", "/files/")
    env.setenv("ENCRYPTED_UPLOADS_BASE_URL", "https://site.example/")
    env.setenv("ENCRYPTED_UPLOADS_FETCH_VERIFY_TLS", "off")
    env.setenv("ENCRYPTED_UPLOADS_FETCH_TIMEOUT", "1.5")
    env.setenv("ENCRYPTED_UPLOADS_FETCH_RETRIES", "0")
    env.setenv("ENCRYPTED_UPLOADS_LOG_LEVEL", "debug")

    s = Settings.load()
    assert s.CIPHER_METHOD == "aes-256-ctr"
    assert s.ENDPOINT == "files"
    assert s.BASE_URL == "https://site.example"
    assert s.FETCH_VERIFY_TLS is False
    assert s.FETCH_TIMEOUT == 1.5
    assert s.FETCH_RETRIES == 0
    assert s.LOG_LEVEL == "DEBUG"


@pytest.mark.parametrize("missing", sorted(REQUIRED))
def test_required(env, missing):
    env.delenv(missing)
    with pytest.raises(RuntimeError, match=missing):
        Settings.load()


def test_bad_number(env):
    env.setenv("ENCRYPTED_UPLOADS_FETCH_TIMEOUT", "soon")
    with pytest.raises(RuntimeError, match="FETCH_TIMEOUT"):
        Settings.load()


def test_cipher_config(env):
    cfg = Settings.load().cipher_config()
    assert cfg.cipher_method().name == "aes-128-cbc"
    assert cfg.effective_key() == b"k" * 16
    assert cfg.token_iv() == b"s" * 16


def test_cipher_config_fails_fast():
    with pytest.raises(UnsupportedCipherMethod):
        Settings(CIPHER_KEY="k" * 32, TOKEN_SECRET="s", CIPHER_METHOD="rc4").cipher_config()
    with pytest.raises(InvalidCipherKey):
        Settings(CIPHER_KEY="short", TOKEN_SECRET="s", CIPHER_METHOD="aes-256-cbc").cipher_config()


def test_state_paths():
    s = Settings(CIPHER_KEY="k" * 16, TOKEN_SECRET="s", STATE_DIR="/var/lib/eu")
    assert s.salt_path == "/var/lib/eu/iv-salt"
    assert s.vault_dir == "/var/lib/eu/vault"
