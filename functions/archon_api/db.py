"""
Document store abstraction for Firestore and an in-memory test implementation.

Collections are addressed by slash-separated paths
(``users/{uid}/klanten``) the way Firestore addresses them.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any, Dict, Optional, Protocol

from firebase_admin import firestore
from google.api_core import exceptions as gcloud_exceptions
from google.cloud.firestore_v1 import Query


class DocumentStore(Protocol):
    """Interface for document database access."""

    def list(
        self, collection: str, order_by: str, descending: bool = True
    ) -> list[tuple[str, dict]]:
        ...

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def add(self, collection: str, data: dict) -> str:
        ...

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        ...

    def update(self, collection: str, doc_id: str, data: dict) -> bool:
        ...

    def delete(self, collection: str, doc_id: str) -> bool:
        ...


class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {}

    def _collection(self, collection: str) -> Dict[str, dict]:
        return self.collections.setdefault(collection, {})

    def list(
        self, collection: str, order_by: str, descending: bool = True
    ) -> list[tuple[str, dict]]:
        # Firestore leaves out documents that lack the order field.
        items = [
            (doc_id, copy.deepcopy(data))
            for doc_id, data in self._collection(collection).items()
            if data.get(order_by) is not None
        ]
        items.sort(key=lambda item: item[1][order_by], reverse=descending)
        return items

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        data = self._collection(collection).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def add(self, collection: str, data: dict) -> str:
        doc_id = uuid.uuid4().hex
        self._collection(collection)[doc_id] = copy.deepcopy(data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        docs = self._collection(collection)
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(data))
        else:
            docs[doc_id] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, data: dict) -> bool:
        docs = self._collection(collection)
        if doc_id not in docs:
            return False
        docs[doc_id].update(copy.deepcopy(data))
        return True

    def delete(self, collection: str, doc_id: str) -> bool:
        return self._collection(collection).pop(doc_id, None) is not None

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.collections.clear()


class FirestoreDocumentStore:
    """
    Firestore-backed implementation sharing one client for the whole process.
    """

    def __init__(self, app: Any):
        self._db = firestore.client(app)

    def list(
        self, collection: str, order_by: str, descending: bool = True
    ) -> list[tuple[str, dict]]:
        direction = Query.DESCENDING if descending else Query.ASCENDING
        query = self._db.collection(collection).order_by(order_by, direction=direction)
        return [(snap.id, snap.to_dict()) for snap in query.stream()]

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        snap = self._db.collection(collection).document(doc_id).get()
        if not snap.exists:
            return None
        return snap.to_dict()

    def add(self, collection: str, data: dict) -> str:
        _, doc_ref = self._db.collection(collection).add(data)
        return doc_ref.id

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        self._db.collection(collection).document(doc_id).set(data, merge=merge)

    def update(self, collection: str, doc_id: str, data: dict) -> bool:
        try:
            self._db.collection(collection).document(doc_id).update(data)
        except gcloud_exceptions.NotFound:
            return False
        return True

    def delete(self, collection: str, doc_id: str) -> bool:
        doc_ref = self._db.collection(collection).document(doc_id)
        if not doc_ref.get().exists:
            return False
        doc_ref.delete()
        return True
