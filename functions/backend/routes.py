"""
HTTP routes for the capsule backend.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, replace
from typing import Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
)
from fastapi.responses import JSONResponse

from backend.capsules import CapsuleStore
from backend.config import get_settings
from backend.dependencies import (
    get_capsule_store,
    get_functions_client,
    get_session_store,
    get_session_user,
    get_storage_client,
    require_session_user,
)
from backend.functions_client import FunctionsClient
from backend.schemas import (
    ActionEnvelope,
    CapsuleCreateRequest,
    CapsuleResponse,
    CapsuleUpdateRequest,
    ExecutionRequest,
    ExecutionResponse,
    ListCapsulesResponse,
    MediaUploadResponse,
    SessionResponse,
    SessionUserModel,
    SignUrlResponse,
    StatusResponse,
)
from backend.sessions import SessionError, SessionStore
from backend.storage import StorageClient, media_path, parse_media_path
from shared.api import Execution, SessionUser
from shared.envelope import encode_action_envelope
from shared.types import Capsule, ExecutionStatus, MediaMetadata, UnlockLocation

logger = logging.getLogger(__name__)

router = APIRouter()

# Optional unlock fields a PATCH may reset to null.
CLEARABLE_CAPSULE_FIELDS = frozenset(
    {"unlock_date", "unlock_location", "unlock_event", "event_type"}
)


def _capsule_response(capsule: Capsule) -> CapsuleResponse:
    return CapsuleResponse.model_validate(asdict(capsule))


def _execution_response(execution: Execution) -> ExecutionResponse:
    return ExecutionResponse(
        execution_id=execution.execution_id,
        function_id=execution.function_id,
        status=execution.status,
        response_status_code=execution.response_status_code,
        response_body=execution.response_body,
        errors=execution.errors,
    )


def _session_response(user: Optional[SessionUser]) -> SessionResponse:
    if user is None:
        return SessionResponse(user=None)
    return SessionResponse(
        user=SessionUserModel(
            id=user.id,
            name=user.name,
            email=user.email,
            is_anonymous=user.is_anonymous,
        )
    )


def _failure_envelope(status: int, error: str) -> JSONResponse:
    return JSONResponse(
        status_code=status, content=encode_action_envelope({"error": error}, status)
    )


def _get_editable_capsule(
    capsule_id: str, user: SessionUser, store: CapsuleStore
) -> Capsule:
    capsule = store.get_capsule(capsule_id)
    if not capsule or not capsule.can_view(user.id):
        raise HTTPException(status_code=404, detail="Capsule not found")
    if not capsule.can_edit(user.id):
        raise HTTPException(
            status_code=403, detail="Only the owner or collaborators can edit"
        )
    return capsule


@router.post("/actions/enhance_content", response_model=ActionEnvelope)
def enhance_content_action(
    text: Optional[str] = Form(None),
    functions: FunctionsClient = Depends(get_functions_client),
):
    """
    Runs the enhancement function synchronously and returns its raw body
    wrapped in an action envelope.
    """
    if not text:
        return _failure_envelope(400, "Text is required")

    try:
        execution = functions.create_execution(
            get_settings().enhance_function_id,
            json.dumps({"text": text}),
            asynchronous=False,
        )
        if execution.status != ExecutionStatus.COMPLETED:
            raise RuntimeError(execution.errors or f"Execution {execution.status}")
        result = json.loads(execution.response_body)
    except Exception:
        logger.exception("Enhancement error")
        return _failure_envelope(500, "Failed to enhance content")

    if isinstance(result, dict) and result.get("error"):
        return _failure_envelope(500, str(result["error"]))
    return encode_action_envelope(execution.response_body)


@router.post("/executions", response_model=ExecutionResponse, status_code=202)
def start_enhancement_execution(
    payload: ExecutionRequest,
    background_tasks: BackgroundTasks,
    functions: FunctionsClient = Depends(get_functions_client),
):
    """
    Starts an asynchronous enhancement. Follow it on the realtime channel
    `executions.<execution_id>` or poll /executions/{execution_id}.
    """
    execution = functions.create_execution(
        get_settings().enhance_function_id,
        json.dumps({"text": payload.text}),
        asynchronous=True,
    )
    response = _execution_response(execution)
    background_tasks.add_task(functions.run_pending)
    return response


@router.get("/executions/{execution_id}", response_model=ExecutionResponse)
def get_execution(
    execution_id: str, functions: FunctionsClient = Depends(get_functions_client)
):
    execution = functions.get_execution(execution_id)
    if not execution:
        raise HTTPException(status_code=404, detail="Execution not found")
    return _execution_response(execution)


@router.get("/capsules/public", response_model=ListCapsulesResponse)
def list_public_capsules(store: CapsuleStore = Depends(get_capsule_store)):
    try:
        capsules = store.list_public_capsules(
            limit=get_settings().public_capsules_limit
        )
    except Exception:
        logger.exception("Failed to load public capsules")
        capsules = []
    return ListCapsulesResponse(capsules=[_capsule_response(c) for c in capsules])


@router.get("/capsules/mine", response_model=ListCapsulesResponse)
def list_my_capsules(
    user: SessionUser = Depends(require_session_user),
    store: CapsuleStore = Depends(get_capsule_store),
):
    capsules = store.list_capsules_for_user(user.id)
    return ListCapsulesResponse(capsules=[_capsule_response(c) for c in capsules])


@router.get("/capsules/{capsule_id}", response_model=CapsuleResponse)
def get_capsule(
    capsule_id: str,
    user: Optional[SessionUser] = Depends(get_session_user),
    store: CapsuleStore = Depends(get_capsule_store),
):
    capsule = store.get_capsule(capsule_id)
    if not capsule or not capsule.can_view(user.id if user else None):
        raise HTTPException(status_code=404, detail="Capsule not found")
    return _capsule_response(capsule)


@router.post("/capsules", response_model=CapsuleResponse, status_code=201)
def create_capsule(
    payload: CapsuleCreateRequest,
    user: SessionUser = Depends(require_session_user),
    store: CapsuleStore = Depends(get_capsule_store),
):
    fields = payload.model_dump(exclude={"unlock_location"})
    unlock_location = (
        UnlockLocation(**payload.unlock_location.model_dump())
        if payload.unlock_location
        else None
    )
    capsule = Capsule(created_by=user.id, unlock_location=unlock_location, **fields)
    try:
        created = store.create_capsule(capsule)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Created capsule %s for %s", created.id, user.id)
    return _capsule_response(created)


@router.patch("/capsules/{capsule_id}", response_model=CapsuleResponse)
def update_capsule(
    capsule_id: str,
    payload: CapsuleUpdateRequest,
    user: SessionUser = Depends(require_session_user),
    store: CapsuleStore = Depends(get_capsule_store),
):
    capsule = _get_editable_capsule(capsule_id, user, store)
    updates = payload.model_dump(exclude_unset=True)
    not_clearable = sorted(
        key
        for key, value in updates.items()
        if value is None and key not in CLEARABLE_CAPSULE_FIELDS
    )
    if not_clearable:
        raise HTTPException(
            status_code=400,
            detail=f"Fields cannot be null: {', '.join(not_clearable)}",
        )
    if updates.get("unlock_location") is not None:
        updates["unlock_location"] = UnlockLocation(**updates["unlock_location"])
    try:
        saved = store.save_capsule(replace(capsule, **updates))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _capsule_response(saved)


@router.post(
    "/capsules/{capsule_id}/media", response_model=MediaUploadResponse, status_code=201
)
async def upload_capsule_media(
    capsule_id: str,
    file: UploadFile = File(...),
    user: SessionUser = Depends(require_session_user),
    store: CapsuleStore = Depends(get_capsule_store),
    storage: StorageClient = Depends(get_storage_client),
):
    _get_editable_capsule(capsule_id, user, store)

    data = await file.read()
    file_id = uuid.uuid4().hex
    content_type = file.content_type or "application/octet-stream"
    storage.upload_bytes(media_path(capsule_id, file_id), data, content_type)
    metadata = MediaMetadata(
        name=file.filename or file_id, type=content_type, size=len(data)
    )
    capsule = store.add_media(capsule_id, file_id, metadata)
    return MediaUploadResponse(file_id=file_id, capsule=_capsule_response(capsule))


@router.get("/media/sign-url", response_model=SignUrlResponse)
def sign_url(
    path: str = Query(..., description="Object path in storage"),
    op: str = Query("get", pattern="^(get|put)$"),
    expires_in: int = Query(3600, ge=60, le=86400),
    user: SessionUser = Depends(require_session_user),
    store: CapsuleStore = Depends(get_capsule_store),
    storage: StorageClient = Depends(get_storage_client),
):
    """
    Presigns capsule media. Reads need view access and an attached file;
    writes need edit access.
    """
    parsed = parse_media_path(path)
    if parsed is None:
        raise HTTPException(status_code=400, detail="Not a capsule media path")
    capsule_id, file_id = parsed

    if op == "put":
        _get_editable_capsule(capsule_id, user, store)
    else:
        capsule = store.get_capsule(capsule_id)
        if not capsule or not capsule.can_view(user.id):
            raise HTTPException(status_code=404, detail="Capsule not found")
        if file_id not in capsule.media_files:
            raise HTTPException(status_code=404, detail="Media not found")

    if op == "get":
        url = storage.presign_get(path, expires_in=expires_in)
    else:
        url = storage.presign_put(path, expires_in=expires_in)
    return SignUrlResponse(url=url)


@router.post("/session/anonymous", response_model=SessionResponse)
def create_anonymous_session(
    request: Request,
    response: Response,
    sessions: SessionStore = Depends(get_session_store),
):
    settings = get_settings()
    try:
        record = sessions.create_anonymous_session()
    except SessionError as e:
        logger.warning("Anonymous login failed: %s", e)
        raise HTTPException(status_code=502, detail=str(e))
    response.set_cookie(
        settings.session_cookie_name,
        record.session_id,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return _session_response(record.user)


@router.get("/session", response_model=SessionResponse)
def get_session(user: Optional[SessionUser] = Depends(get_session_user)):
    return _session_response(user)


@router.delete("/session", response_model=StatusResponse)
def delete_session(
    request: Request,
    response: Response,
    sessions: SessionStore = Depends(get_session_store),
):
    settings = get_settings()
    session_id = request.cookies.get(settings.session_cookie_name)
    if session_id:
        sessions.delete_session(session_id)
    response.delete_cookie(settings.session_cookie_name)
    return StatusResponse(status="ok")
