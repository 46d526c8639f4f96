"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from functools import partial
from typing import Any, Optional

import firebase_admin
from fastapi import Depends, HTTPException, Request
from firebase_admin import firestore

from backend.capsules import CapsuleStore, FirestoreCapsuleStore, InMemoryCapsuleStore
from backend.config import get_settings
from backend.functions_client import (
    CloudFunctionsClient,
    FunctionsClient,
    InMemoryFunctionsClient,
)
from backend.sessions import FirebaseSessionStore, InMemorySessionStore, SessionStore
from backend.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from client.realtime import InMemoryRealtimeClient
from enhancement import enhancement
from shared.api import SessionUser

_capsule_store: CapsuleStore | None = None
_functions_client: FunctionsClient | None = None
_realtime_client: InMemoryRealtimeClient | None = None
_session_store: SessionStore | None = None
_storage_client: StorageClient | None = None


def _use_firebase() -> bool:
    settings = get_settings()
    return not settings.use_in_memory_backends and bool(settings.firebase_project_id)


def get_firestore_client() -> Any:
    """Return a Firestore client, initializing the default Firebase app once."""
    try:
        firebase_admin.get_app()
    except ValueError:
        firebase_admin.initialize_app(
            options={"projectId": get_settings().firebase_project_id}
        )
    return firestore.client()


def get_capsule_store() -> CapsuleStore:
    global _capsule_store
    if _capsule_store:
        return _capsule_store

    if _use_firebase():
        _capsule_store = FirestoreCapsuleStore(get_firestore_client())
    else:
        _capsule_store = InMemoryCapsuleStore()
    return _capsule_store


def get_realtime_client() -> InMemoryRealtimeClient:
    """
    Return the process-local realtime hub that in-process executions publish to.
    """
    global _realtime_client
    if _realtime_client is None:
        _realtime_client = InMemoryRealtimeClient()
    return _realtime_client


def get_functions_client() -> FunctionsClient:
    """
    Return a singleton functions client so execution state persists across requests.
    """
    global _functions_client
    if _functions_client:
        return _functions_client

    settings = get_settings()
    if _use_firebase() and settings.enhance_function_url:
        _functions_client = CloudFunctionsClient(
            function_urls={settings.enhance_function_id: settings.enhance_function_url},
            db=get_firestore_client(),
            timeout_seconds=settings.enhance_function_timeout_seconds,
        )
    else:
        _functions_client = InMemoryFunctionsClient(
            handlers={
                settings.enhance_function_id: partial(
                    enhancement.build_enhancement_response,
                    api_key=settings.gemini_api_key,
                )
            },
            realtime=get_realtime_client(),
        )
    return _functions_client


def get_session_store() -> SessionStore:
    global _session_store
    if _session_store:
        return _session_store

    settings = get_settings()
    if _use_firebase() and settings.firebase_web_api_key:
        get_firestore_client()
        _session_store = FirebaseSessionStore(
            web_api_key=settings.firebase_web_api_key,
            max_age_seconds=settings.session_max_age_seconds,
        )
    else:
        _session_store = InMemorySessionStore(
            max_age_seconds=settings.session_max_age_seconds
        )
    return _session_store


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_session_user(
    request: Request, sessions: SessionStore = Depends(get_session_store)
) -> Optional[SessionUser]:
    """Return the account behind the session cookie, or None."""
    session_id = request.cookies.get(get_settings().session_cookie_name)
    if not session_id:
        return None
    return sessions.get_user(session_id)


def require_session_user(
    user: Optional[SessionUser] = Depends(get_session_user),
) -> SessionUser:
    if user is None:
        raise HTTPException(status_code=401, detail="No session")
    return user
