"""
Persisted site salt.

The salt is the ASCII base64 text of 1 to 20 random bytes. It is generated
on first use and written once; every blob embeds it between the IV and the
ciphertext, and decryption skips ``len(salt)`` bytes.
"""

from __future__ import annotations

import base64
import logging
import os
import secrets
import tempfile
import threading
from typing import Optional, Protocol

from encrypted_uploads.errors import RandomnessUnavailable

from .locks import file_lock

logger = logging.getLogger(__name__)

SALT_MIN_BYTES = 1
SALT_MAX_BYTES = 20


def random_bytes(n: int) -> bytes:
    """Secure random bytes; raises RandomnessUnavailable instead of blocking."""
    try:
        return os.urandom(n)
    except NotImplementedError as e:
        raise RandomnessUnavailable("No secure randomness source available") from e


def new_salt() -> bytes:
    try:
        n = SALT_MIN_BYTES + secrets.randbelow(SALT_MAX_BYTES - SALT_MIN_BYTES + 1)
    except NotImplementedError as e:
        raise RandomnessUnavailable("No secure randomness source available") from e
    return base64.b64encode(random_bytes(n))


class SaltStore(Protocol):
    def get_or_create(self) -> bytes: ...


class MemorySaltStore:
    """In-process salt, initialised once under a lock."""

    def __init__(self, salt: Optional[bytes] = None):
        self._salt = salt
        self._lock = threading.Lock()

    def get_or_create(self) -> bytes:
        if self._salt:
            return self._salt
        with self._lock:
            if not self._salt:
                self._salt = new_salt()
        return self._salt


class FileSaltStore:
    """
    Salt persisted in a single file.

    Creation runs under an exclusive flock on ``<path>.lock``: the first
    process writes the salt through a temp file and ``os.replace``, later
    processes read the winner's value back. An existing but empty file
    (truncated, or created by ``touch``) is regenerated the same way.
    """

    def __init__(self, path: str):
        self.path = path
        self.lock_path = f"{path}.lock"
        self._cached: Optional[bytes] = None
        self._lock = threading.Lock()

    def _read(self) -> Optional[bytes]:
        try:
            with open(self.path, "rb") as f:
                value = f.read().strip()
        except FileNotFoundError:
            return None
        return value or None

    def get_or_create(self) -> bytes:
        if self._cached:
            return self._cached
        with self._lock:
            if self._cached:
                return self._cached
            value = self._read()
            if value is None:
                value = self._create()
            self._cached = value
        return value

    def _create(self) -> bytes:
        directory = os.path.dirname(os.path.abspath(self.path))
        with file_lock(self.lock_path):
            winner = self._read()
            if winner is not None:
                logger.info("Site salt already created by another writer")
                return winner
            if os.path.exists(self.path):
                logger.warning(f"Site salt file is empty, regenerating: {self.path}")
            candidate = new_salt()
            fd, tmp = tempfile.mkstemp(dir=directory, prefix=".salt-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(candidate)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self.path)
            except OSError:
                os.unlink(tmp)
                raise
        logger.info(f"Site salt created: {self.path}")
        return candidate
