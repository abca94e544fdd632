from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol

from encrypted_uploads.errors import FetchFailed, ObjectNotFound
from encrypted_uploads.models import ObjectRecord

from .locks import file_lock

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    base = _UNSAFE.sub("-", os.path.basename(name)).strip(".-")
    return base or "file"


class ObjectStore(Protocol):
    """What the retrieval gateway needs from storage."""

    def get_record(self, object_id: int) -> ObjectRecord: ...

    def read_bytes(self, record: ObjectRecord) -> bytes: ...


class Vault:
    """
    File-backed object store.

    Layout:
      <root>/index.json              {"<id>": ObjectRecord, ...}
      <root>/objects/<id>-<filename> stored bytes (framed blob when encrypted)
      <root>/.lock                   flock guarding index read-modify-write

    Id allocation and token writes hold both the in-process lock and the
    directory flock, so several worker processes can share one root.
    """

    def __init__(self, dirpath: str):
        self.dirpath = dirpath
        self.objects_dir = os.path.join(dirpath, "objects")
        self.index_path = os.path.join(dirpath, "index.json")
        self.lock_path = os.path.join(dirpath, ".lock")
        os.makedirs(self.objects_dir, exist_ok=True)
        self._lock = threading.Lock()

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        with self._lock, file_lock(self.lock_path):
            yield

    def _load_index(self) -> Dict[str, dict]:
        if not os.path.exists(self.index_path):
            return {}
        with open(self.index_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save_index(self, index: Dict[str, dict]) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.dirpath, prefix=".index-")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(index, f, indent=2, sort_keys=True)
        os.replace(tmp, self.index_path)

    def _path(self, record: ObjectRecord) -> str:
        return os.path.join(self.objects_dir, f"{record.object_id}-{safe_filename(record.filename)}")

    def _insert(self, data: Optional[bytes], **fields) -> ObjectRecord:
        with self._exclusive():
            index = self._load_index()
            next_id = max((int(k) for k in index), default=0) + 1
            record = ObjectRecord(object_id=next_id, **fields)
            if data is not None:
                with open(self._path(record), "wb") as f:
                    f.write(data)
            index[str(next_id)] = record.model_dump(by_alias=True)
            self._save_index(index)
        return record

    def put(
        self,
        data: bytes,
        *,
        title: str,
        filename: str,
        owner: Optional[str] = None,
        encrypted: bool = False,
        mime_type: Optional[str] = None,
    ) -> ObjectRecord:
        record = self._insert(
            data, title=title, filename=filename, owner=owner,
            encrypted=encrypted, mime_type=mime_type, size=len(data),
        )
        logger.info(f"Stored object {record.object_id} ({len(data)} bytes, encrypted={encrypted})")
        return record

    def register_remote(
        self,
        url: str,
        *,
        title: str,
        filename: str,
        owner: Optional[str] = None,
        encrypted: bool = False,
        mime_type: Optional[str] = None,
    ) -> ObjectRecord:
        """Record an object whose bytes live at ``url``; nothing is written locally."""
        record = self._insert(
            None, title=title, filename=filename, owner=owner,
            encrypted=encrypted, mime_type=mime_type, url=url,
        )
        logger.info(f"Registered remote object {record.object_id}")
        return record

    def get_record(self, object_id: int) -> ObjectRecord:
        index = self._load_index()
        raw = index.get(str(object_id))
        if raw is None:
            raise ObjectNotFound(f"No object with id {object_id}")
        return ObjectRecord.model_validate(raw)

    def records(self) -> List[ObjectRecord]:
        index = self._load_index()
        return [ObjectRecord.model_validate(index[k]) for k in sorted(index, key=int)]

    def set_token(self, object_id: int, token: str) -> ObjectRecord:
        """Attach the object token; tokens are permanent once set."""
        with self._exclusive():
            index = self._load_index()
            raw = index.get(str(object_id))
            if raw is None:
                raise ObjectNotFound(f"No object with id {object_id}")
            record = ObjectRecord.model_validate(raw)
            if record.token == token:
                return record
            if record.token is not None:
                raise ValueError(f"Object {object_id} already has a token")
            record = record.model_copy(update={"token": token})
            index[str(object_id)] = record.model_dump(by_alias=True)
            self._save_index(index)
        return record

    def read_bytes(self, record: ObjectRecord) -> bytes:
        try:
            with open(self._path(record), "rb") as f:
                return f.read()
        except OSError as e:
            raise FetchFailed(f"Could not read object {record.object_id}") from e
