"""
Fail-closed retrieval of encrypted objects.

Per-request stages, each with one failure kind:
1. Token decode        -> FAILED / INVALID_TOKEN
2. Capability check    -> DENIED / PERMISSION_DENIED
3. Record + byte fetch -> DENIED (unknown object) or FAILED / FETCH_FAILED
4. Decrypt             -> FAILED / DECRYPTION_FAILED
5. Content negotiation -> SERVED

The gateway returns a value and never touches a client connection.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from encrypted_uploads.errors import (
    DecryptionFailed,
    EncryptedUploadsError,
    FetchFailed,
    InvalidToken,
    ObjectNotFound,
    PermissionDenied,
)
from encrypted_uploads.metrics import Metrics
from encrypted_uploads.models import ObjectRecord, Principal
from encrypted_uploads.policy import CanView
from vault.ciphers import CipherConfig
from vault.crypto import decode_object_token, decrypt
from vault.salt import SaltStore
from vault.store import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/binary"


class RetrievalState(str, Enum):
    RECEIVED = "RECEIVED"
    TOKEN_DECODED = "TOKEN_DECODED"
    AUTHORIZED = "AUTHORIZED"
    FETCHED = "FETCHED"
    DECRYPTED = "DECRYPTED"
    SERVED = "SERVED"
    DENIED = "DENIED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RetrievalResult:
    """Terminal outcome of one retrieval request."""

    state: RetrievalState
    reason: str = ""
    error: Optional[EncryptedUploadsError] = None
    body: Optional[bytes] = None
    content_type: str = ""
    filename: str = ""

    @property
    def served(self) -> bool:
        return self.state is RetrievalState.SERVED

    @property
    def public_message(self) -> str:
        return self.error.public_message if self.error is not None else ""

    @staticmethod
    def denied() -> RetrievalResult:
        # Same result for "not allowed" and "does not exist"
        err = PermissionDenied("Permission denied")
        return RetrievalResult(RetrievalState.DENIED, err.code, err)

    @staticmethod
    def failed(err: EncryptedUploadsError) -> RetrievalResult:
        return RetrievalResult(RetrievalState.FAILED, err.code, err)


def content_type_for(filename: str) -> str:
    """Content type from the declared extension, never from the bytes."""
    guessed, _ = mimetypes.guess_type(filename, strict=False)
    return guessed or DEFAULT_CONTENT_TYPE


class RetrievalGateway:
    """
    Token -> capability check -> fetch -> decrypt -> plaintext.

    Args:
        config: Cipher configuration
        salts: Site salt store
        store: Record lookup and byte fetch
        can_view: Authorization predicate ``(principal, object_id) -> bool``
        metrics: Optional metrics sink
    """

    def __init__(
        self,
        config: CipherConfig,
        salts: SaltStore,
        store: ObjectStore,
        can_view: CanView,
        metrics: Optional[Metrics] = None,
    ):
        self.config = config
        self.salts = salts
        self.store = store
        self.can_view = can_view
        self.metrics = metrics or Metrics()

    def _record(self, object_id: int) -> ObjectRecord:
        record = self.store.get_record(object_id)
        if not record.encrypted:
            raise ObjectNotFound(f"Object {object_id} is not encrypted")
        return record

    def handle_retrieval(self, raw_token: str, principal: Optional[Principal]) -> RetrievalResult:
        state = RetrievalState.RECEIVED
        try:
            object_id = decode_object_token(raw_token, self.config)
        except InvalidToken as e:
            logger.info(f"Rejected malformed token at {state.value}")
            self.metrics.inc("retrievals_failed_total")
            return RetrievalResult.failed(e)
        state = RetrievalState.TOKEN_DECODED

        try:
            allowed = self.can_view(principal, object_id)
        except ObjectNotFound:
            allowed = False
        if not allowed:
            logger.info(f"Denied object {object_id} at {state.value}")
            self.metrics.inc("retrievals_denied_total")
            return RetrievalResult.denied()
        state = RetrievalState.AUTHORIZED

        try:
            record = self._record(object_id)
            blob = self.store.read_bytes(record)
        except ObjectNotFound:
            logger.info(f"Denied object {object_id} at {state.value}")
            self.metrics.inc("retrievals_denied_total")
            return RetrievalResult.denied()
        except FetchFailed as e:
            logger.warning(f"Fetch failed for object {object_id} at {state.value}: {e}")
            self.metrics.inc("retrievals_failed_total")
            return RetrievalResult.failed(e)
        state = RetrievalState.FETCHED

        try:
            plaintext = decrypt(blob, self.config, self.salts)
        except DecryptionFailed as e:
            # No cipher detail in logs or responses
            logger.warning(f"Decryption failed for object {object_id} at {state.value}")
            self.metrics.inc("retrievals_failed_total")
            return RetrievalResult.failed(e)
        state = RetrievalState.DECRYPTED
        logger.debug(f"Object {object_id} reached {state.value}")

        self.metrics.inc("retrievals_served_total")
        return RetrievalResult(
            RetrievalState.SERVED,
            reason="OK",
            body=plaintext,
            content_type=content_type_for(record.filename),
            filename=record.download_name,
        )
