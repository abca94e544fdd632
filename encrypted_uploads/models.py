from __future__ import annotations

import os
import time
from typing import Optional, Set

from pydantic import BaseModel, Field

from encrypted_uploads import __schema__

def now_utc() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())

def split_ext(filename: str) -> tuple[str, str]:
    """``report.final.pdf`` -> (``report.final``, ``pdf``)."""
    base = os.path.basename(filename)
    stem, ext = os.path.splitext(base)
    return stem, ext.lstrip(".")

class ObjectRecord(BaseModel):
    schema_version: str = Field(default=__schema__, alias="schema")
    object_id: int = Field(ge=0)
    created_utc: str = Field(default_factory=now_utc)
    title: str  # logical name, served as "<title>.<ext>"
    filename: str  # stored name, source of the extension and content type
    mime_type: Optional[str] = None
    owner: Optional[str] = None
    encrypted: bool = False
    token: Optional[str] = None  # minted once, after the record exists
    url: Optional[str] = None  # remote location of the stored bytes
    size: int = 0

    model_config = {"populate_by_name": True}

    @property
    def extension(self) -> str:
        return split_ext(self.filename)[1]

    @property
    def download_name(self) -> str:
        ext = self.extension
        return f"{self.title}.{ext}" if ext else self.title

class UploadRequest(BaseModel):
    tmp_path: str
    original_filename: str
    encrypt: bool = False
    owner: Optional[str] = None

class FileMetadata(BaseModel):
    """What the should-encrypt policy sees about an incoming file."""
    mime_type: Optional[str] = None
    extension: str = ""
    filename: str
    path: str

class Principal(BaseModel):
    id: str
    capabilities: Set[str] = Field(default_factory=set)

    def can(self, capability: str) -> bool:
        return capability in self.capabilities
