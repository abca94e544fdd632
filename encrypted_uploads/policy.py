"""
Default policy predicates.

Both predicates are plain callables handed to the pipeline and the gateway;
deployments replace them with their own.
"""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from encrypted_uploads.errors import ObjectNotFound
from encrypted_uploads.models import FileMetadata, Principal
from vault.store import ObjectStore

ShouldEncrypt = Callable[[FileMetadata], bool]
CanView = Callable[[Optional[Principal], int], bool]


def allow_all(_meta: FileMetadata) -> bool:
    return True


def deny_extensions(extensions: Iterable[str]) -> ShouldEncrypt:
    """Refuse encryption for the listed file extensions (case-insensitive)."""
    blocked = {e.lower().lstrip(".") for e in extensions}

    def should_encrypt(meta: FileMetadata) -> bool:
        return meta.extension.lower() not in blocked

    return should_encrypt


class CapabilityPolicy:
    """
    Owner-or-capability check.

    A principal may view an object it owns, or any object when it holds
    ``capability``. Anonymous requests and unknown objects are refused.
    """

    def __init__(self, store: ObjectStore, capability: str = "edit_post"):
        self.store = store
        self.capability = capability

    def __call__(self, principal: Optional[Principal], object_id: int) -> bool:
        if principal is None:
            return False
        try:
            record = self.store.get_record(object_id)
        except ObjectNotFound:
            return False
        if principal.can(self.capability):
            return True
        return record.owner is not None and record.owner == principal.id
