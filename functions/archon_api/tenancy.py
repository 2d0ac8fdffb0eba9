"""
Tenant-scoped access to the document store.

Every collection handle is rooted at ``users/{uid}``, so a handler holding a
``TenantScope`` cannot address another tenant's documents.
"""

from __future__ import annotations

from typing import Optional

from archon_api.auth import CallerIdentity
from archon_api.db import DocumentStore
from archon_api.errors import BadRequest

USERS_COLLECTION = "users"


def _check_segment(value: str, what: str) -> str:
    if not value or "/" in value or value in (".", ".."):
        raise BadRequest(f"Invalid {what}")
    return value


class TenantCollection:
    """One entity collection inside a tenant root."""

    def __init__(self, store: DocumentStore, path: str):
        self._store = store
        self.path = path

    def list(self, order_by: str, descending: bool = True) -> list[dict]:
        return [
            {"id": doc_id, **data}
            for doc_id, data in self._store.list(self.path, order_by, descending)
        ]

    def get(self, doc_id: str) -> Optional[dict]:
        data = self._store.get(self.path, _check_segment(doc_id, "ID"))
        if data is None:
            return None
        return {"id": doc_id, **data}

    def add(self, data: dict) -> str:
        return self._store.add(self.path, data)

    def set(self, doc_id: str, data: dict) -> None:
        self._store.set(self.path, _check_segment(doc_id, "ID"), data)

    def update(self, doc_id: str, data: dict) -> bool:
        return self._store.update(self.path, _check_segment(doc_id, "ID"), data)

    def delete(self, doc_id: str) -> bool:
        return self._store.delete(self.path, _check_segment(doc_id, "ID"))


class TenantScope:
    """Store handle restricted to the verified caller's partition."""

    def __init__(self, store: DocumentStore, caller: CallerIdentity):
        if not isinstance(caller, CallerIdentity):
            raise TypeError("TenantScope requires a verified CallerIdentity")
        _check_segment(caller.id, "caller")
        self._store = store
        self.caller = caller

    @property
    def user_id(self) -> str:
        return self.caller.id

    def collection(self, name: str) -> TenantCollection:
        _check_segment(name, "collection")
        path = f"{USERS_COLLECTION}/{self.caller.id}/{name}"
        return TenantCollection(self._store, path)

    def profile(self) -> Optional[dict]:
        return self._store.get(USERS_COLLECTION, self.caller.id)

    def merge_profile(self, data: dict) -> None:
        self._store.set(USERS_COLLECTION, self.caller.id, data, merge=True)
