"""
Upload-side handling: optional encryption of an incoming file, storage, and
token minting.

Errors reach the uploader as fixed messages; codec detail stays in the logs.
"""

from __future__ import annotations

import logging
import mimetypes
import os
from dataclasses import dataclass
from typing import Optional

from encrypted_uploads.errors import CodecError, InvalidCipherKey
from encrypted_uploads.models import FileMetadata, ObjectRecord, UploadRequest, split_ext
from encrypted_uploads.policy import ShouldEncrypt, allow_all
from vault.ciphers import CipherConfig
from vault.crypto import encode_object_token, encrypt
from vault.salt import SaltStore
from vault.store import Vault

logger = logging.getLogger(__name__)

MSG_MISSING_FILE = "The specified local upload file does not exist."
MSG_DISABLED = "Encryption of this file has been disabled by site administrator."
MSG_NOT_WRITTEN = "Could not encrypt the file, possibly because of filesystem permissions."
MSG_CODEC = "Could not encrypt the file."


@dataclass(frozen=True)
class UploadOutcome:
    record: Optional[ObjectRecord] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.record is not None


def file_metadata(path: str, filename: str) -> FileMetadata:
    mime, _ = mimetypes.guess_type(filename, strict=False)
    return FileMetadata(
        mime_type=mime,
        extension=split_ext(filename)[1],
        filename=filename,
        path=path,
    )


class UploadPipeline:
    def __init__(
        self,
        config: CipherConfig,
        salts: SaltStore,
        store: Vault,
        should_encrypt: ShouldEncrypt = allow_all,
    ):
        self.config = config
        self.salts = salts
        self.store = store
        self.should_encrypt = should_encrypt

    def handle_upload(self, request: UploadRequest) -> UploadOutcome:
        if not os.path.isfile(request.tmp_path):
            return UploadOutcome(error=MSG_MISSING_FILE)

        meta = file_metadata(request.tmp_path, request.original_filename)
        title = split_ext(request.original_filename)[0] or request.original_filename

        try:
            with open(request.tmp_path, "rb") as f:
                contents = f.read()
        except OSError as e:
            logger.error(f"Could not read uploaded file: {e}")
            return UploadOutcome(error=MSG_NOT_WRITTEN)

        if not request.encrypt:
            record = self.store.put(
                contents,
                title=title,
                filename=meta.filename,
                owner=request.owner,
                mime_type=meta.mime_type,
            )
            return UploadOutcome(record=record)

        if not self.should_encrypt(meta):
            logger.info(f"Encryption refused by policy for .{meta.extension} upload")
            return UploadOutcome(error=MSG_DISABLED)

        if not contents:
            return UploadOutcome(error=MSG_NOT_WRITTEN)

        try:
            blob = encrypt(contents, self.config, self.salts)
        except (CodecError, InvalidCipherKey) as e:
            logger.error(f"Upload encryption failed: {e.code}")
            return UploadOutcome(error=MSG_CODEC)
        except OSError as e:
            logger.error(f"Site salt unavailable: {e}")
            return UploadOutcome(error=MSG_NOT_WRITTEN)

        try:
            record = self.store.put(
                blob.framed_bytes(),
                title=title,
                filename=meta.filename,
                owner=request.owner,
                encrypted=True,
                mime_type=meta.mime_type,
            )
        except OSError as e:
            logger.error(f"Could not store encrypted upload: {e}")
            return UploadOutcome(error=MSG_NOT_WRITTEN)

        outcome = self._mint_token(record)
        if outcome.ok:
            logger.info(f"Encrypted upload stored as object {record.object_id}")
        return outcome

    def link_remote(
        self,
        url: str,
        original_filename: str,
        *,
        owner: Optional[str] = None,
        encrypted: bool = True,
    ) -> UploadOutcome:
        """Register bytes already stored at ``url`` (a framed blob when ``encrypted``)."""
        stem, _ = split_ext(original_filename)
        mime, _ = mimetypes.guess_type(original_filename, strict=False)
        record = self.store.register_remote(
            url,
            title=stem or original_filename,
            filename=original_filename,
            owner=owner,
            encrypted=encrypted,
            mime_type=mime,
        )
        if not encrypted:
            return UploadOutcome(record=record)
        return self._mint_token(record)

    def _mint_token(self, record: ObjectRecord) -> UploadOutcome:
        try:
            token = encode_object_token(record.object_id, self.config)
        except (CodecError, InvalidCipherKey) as e:
            logger.error(f"Token minting failed for object {record.object_id}: {e.code}")
            return UploadOutcome(error=MSG_CODEC)
        return UploadOutcome(record=self.store.set_token(record.object_id, token))


def attachment_url(record: ObjectRecord, base_url: str, endpoint: str) -> Optional[str]:
    """Retrieval URL for encrypted records, the stored URL otherwise."""
    if record.encrypted and record.token:
        return f"{base_url.rstrip('/')}/{endpoint.strip('/')}/{record.token}"
    return record.url
