"""
Configuration from the environment.

Environment variables control behavior:
- ENCRYPTED_UPLOADS_CIPHER_KEY: Shared cipher key (required)
- ENCRYPTED_UPLOADS_TOKEN_SECRET: Fixed IV secret for object tokens (required)
- ENCRYPTED_UPLOADS_CIPHER_METHOD: OpenSSL method name (default: AES128)
- ENCRYPTED_UPLOADS_ENDPOINT: Retrieval path segment (default: decrypt)
- ENCRYPTED_UPLOADS_STATE: State directory for salt and vault (default: ./state)
- ENCRYPTED_UPLOADS_FETCH_VERIFY_TLS: Verify TLS on remote fetches (default: true)
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from vault.ciphers import CipherConfig


def _req(name: str) -> str:
    """Get required environment variable or raise."""
    v = os.getenv(name)
    if not v:
        raise RuntimeError(f"Missing required env var: {name}")
    return v


def _opt(name: str, default: str) -> str:
    """Get optional environment variable with default."""
    return os.getenv(name, default)


def _opt_bool(name: str, default: bool) -> bool:
    """Parse boolean environment variable."""
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def _opt_number(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return float(v)
    except ValueError as e:
        raise RuntimeError(f"Env var {name} must be a number, got {v!r}") from e


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, loaded once at startup."""

    CIPHER_KEY: str
    TOKEN_SECRET: str
    CIPHER_METHOD: str = "AES128"
    ENDPOINT: str = "decrypt"
    STATE_DIR: str = "./state"
    BASE_URL: str = "http://localhost:8080"
    VIEW_CAPABILITY: str = "edit_post"

    # Remote fetch budget
    FETCH_TIMEOUT: float = 3.0
    FETCH_RETRIES: int = 2
    FETCH_VERIFY_TLS: bool = True

    LOG_LEVEL: str = "INFO"

    @staticmethod
    def load() -> Settings:
        """Load settings from environment variables."""
        return Settings(
            CIPHER_KEY=_req("ENCRYPTED_UPLOADS_CIPHER_KEY"),
            TOKEN_SECRET=_req("ENCRYPTED_UPLOADS_TOKEN_SECRET"),
            CIPHER_METHOD=_opt("ENCRYPTED_UPLOADS_CIPHER_METHOD", "AES128"),
            ENDPOINT=_opt("ENCRYPTED_UPLOADS_ENDPOINT", "decrypt").strip("/"),
            STATE_DIR=_opt("ENCRYPTED_UPLOADS_STATE", "./state"),
            BASE_URL=_opt("ENCRYPTED_UPLOADS_BASE_URL", "http://localhost:8080").rstrip("/"),
            VIEW_CAPABILITY=_opt("ENCRYPTED_UPLOADS_VIEW_CAPABILITY", "edit_post"),
            FETCH_TIMEOUT=_opt_number("ENCRYPTED_UPLOADS_FETCH_TIMEOUT", 3.0),
            FETCH_RETRIES=int(_opt_number("ENCRYPTED_UPLOADS_FETCH_RETRIES", 2)),
            FETCH_VERIFY_TLS=_opt_bool("ENCRYPTED_UPLOADS_FETCH_VERIFY_TLS", True),
            LOG_LEVEL=_opt("ENCRYPTED_UPLOADS_LOG_LEVEL", "INFO").upper(),
        )

    def cipher_config(self) -> CipherConfig:
        """
        Build and validate the cipher configuration.

        Raises:
            UnsupportedCipherMethod: Unknown CIPHER_METHOD
            InvalidCipherKey: CIPHER_KEY shorter than the method's key size
        """
        return CipherConfig(
            method=self.CIPHER_METHOD,
            key=self.CIPHER_KEY.encode("utf-8"),
            token_secret=self.TOKEN_SECRET.encode("utf-8"),
        ).validate()

    @property
    def salt_path(self) -> str:
        return os.path.join(self.STATE_DIR, "iv-salt")

    @property
    def vault_dir(self) -> str:
        return os.path.join(self.STATE_DIR, "vault")
