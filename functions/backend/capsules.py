"""
Capsule storage for Firestore and an in-memory test implementation.

Capsules are never hard-deleted.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from google.cloud.firestore_v1 import ArrayUnion, Query
from google.cloud.firestore_v1.base_query import FieldFilter

from shared.capsule_convert import capsule_from_document, capsule_to_document
from shared.constants import PUBLIC_CAPSULES_LIMIT
from shared.firebase_constants import CAPSULES_COLLECTION
from shared.types import Capsule, MediaMetadata, validate_unlock_condition


class CapsuleNotFoundError(LookupError):
    pass


class CapsuleStore(Protocol):
    """Interface for capsule persistence."""

    def create_capsule(self, capsule: Capsule) -> Capsule:
        ...

    def get_capsule(self, capsule_id: str) -> Optional[Capsule]:
        ...

    def save_capsule(self, capsule: Capsule) -> Capsule:
        ...

    def list_public_capsules(self, limit: int = PUBLIC_CAPSULES_LIMIT) -> list[Capsule]:
        ...

    def list_capsules_for_user(self, user_id: str) -> list[Capsule]:
        ...

    def add_media(
        self, capsule_id: str, file_id: str, metadata: MediaMetadata
    ) -> Capsule:
        ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _newest_first(capsules: list[Capsule]) -> list[Capsule]:
    return sorted(capsules, key=lambda c: c.created_at or "", reverse=True)


class InMemoryCapsuleStore:
    """Simple in-memory capsule store for development and tests."""

    def __init__(self):
        self.capsules: Dict[str, Capsule] = {}
        self._lock = threading.Lock()

    def create_capsule(self, capsule: Capsule) -> Capsule:
        validate_unlock_condition(capsule)
        now = _now_iso()
        created = replace(capsule, id=uuid.uuid4().hex, created_at=now, updated_at=now)
        with self._lock:
            self.capsules[created.id] = created
        return created

    def get_capsule(self, capsule_id: str) -> Optional[Capsule]:
        return self.capsules.get(capsule_id)

    def save_capsule(self, capsule: Capsule) -> Capsule:
        validate_unlock_condition(capsule)
        if capsule.id not in self.capsules:
            raise CapsuleNotFoundError(capsule.id)
        saved = replace(capsule, updated_at=_now_iso())
        with self._lock:
            self.capsules[saved.id] = saved
        return saved

    def list_public_capsules(self, limit: int = PUBLIC_CAPSULES_LIMIT) -> list[Capsule]:
        public = [c for c in self.capsules.values() if c.is_public]
        return _newest_first(public)[:limit]

    def list_capsules_for_user(self, user_id: str) -> list[Capsule]:
        return _newest_first(
            [c for c in self.capsules.values() if c.can_edit(user_id)]
        )

    def add_media(
        self, capsule_id: str, file_id: str, metadata: MediaMetadata
    ) -> Capsule:
        with self._lock:
            capsule = self.capsules.get(capsule_id)
            if capsule is None:
                raise CapsuleNotFoundError(capsule_id)
            media_files = list(capsule.media_files)
            if file_id not in media_files:
                media_files.append(file_id)
            media_metadata = dict(capsule.media_metadata)
            media_metadata[file_id] = metadata
            updated = replace(
                capsule,
                media_files=media_files,
                media_metadata=media_metadata,
                updated_at=_now_iso(),
            )
            self.capsules[capsule_id] = updated
        return updated

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.capsules.clear()


class FirestoreCapsuleStore:
    """Firestore-backed implementation over the `capsules` collection."""

    def __init__(self, db: Any):
        self.db = db

    def _collection(self):
        return self.db.collection(CAPSULES_COLLECTION)

    def create_capsule(self, capsule: Capsule) -> Capsule:
        validate_unlock_condition(capsule)
        doc_ref = self._collection().document()
        now = _now_iso()
        created = replace(capsule, id=doc_ref.id, created_at=now, updated_at=now)
        doc_ref.set(capsule_to_document(created))
        return created

    def get_capsule(self, capsule_id: str) -> Optional[Capsule]:
        snapshot = self._collection().document(capsule_id).get()
        if not snapshot.exists:
            return None
        return capsule_from_document(snapshot.to_dict(), snapshot.id)

    def save_capsule(self, capsule: Capsule) -> Capsule:
        validate_unlock_condition(capsule)
        doc_ref = self._collection().document(capsule.id)
        if not doc_ref.get().exists:
            raise CapsuleNotFoundError(capsule.id)
        saved = replace(capsule, updated_at=_now_iso())
        doc_ref.set(capsule_to_document(saved))
        return saved

    def list_public_capsules(self, limit: int = PUBLIC_CAPSULES_LIMIT) -> list[Capsule]:
        query = (
            self._collection()
            .where(filter=FieldFilter("isPublic", "==", True))
            .order_by("createdAt", direction=Query.DESCENDING)
            .limit(limit)
        )
        return [
            capsule_from_document(snapshot.to_dict(), snapshot.id)
            for snapshot in query.stream()
        ]

    def list_capsules_for_user(self, user_id: str) -> list[Capsule]:
        owned = self._collection().where(filter=FieldFilter("createdBy", "==", user_id))
        shared = self._collection().where(
            filter=FieldFilter("collaborators", "array_contains", user_id)
        )
        capsules: Dict[str, Capsule] = {}
        for query in (owned, shared):
            for snapshot in query.stream():
                capsules[snapshot.id] = capsule_from_document(
                    snapshot.to_dict(), snapshot.id
                )
        return _newest_first(list(capsules.values()))

    def add_media(
        self, capsule_id: str, file_id: str, metadata: MediaMetadata
    ) -> Capsule:
        doc_ref = self._collection().document(capsule_id)
        if not doc_ref.get().exists:
            raise CapsuleNotFoundError(capsule_id)
        doc_ref.update(
            {
                "mediaFiles": ArrayUnion([file_id]),
                f"mediaMetadata.{file_id}": asdict(metadata),
                "updatedAt": _now_iso(),
            }
        )
        return self.get_capsule(capsule_id)
