"""
Pydantic schemas for the capsule backend.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from shared.types import EventType, ExecutionStatus, UnlockType


class UnlockLocationModel(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    radius: float = Field(..., gt=0)


class MediaMetadataModel(BaseModel):
    name: str
    type: str
    size: int


class CapsuleCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=256)
    content: str
    unlock_type: UnlockType
    unlock_date: Optional[str] = None
    unlock_location: Optional[UnlockLocationModel] = None
    unlock_event: Optional[str] = None
    event_type: Optional[EventType] = None
    is_public: bool = False
    tags: list[str] = Field(default_factory=list)
    collaborators: list[str] = Field(default_factory=list)


class CapsuleUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=256)
    content: Optional[str] = None
    unlock_type: Optional[UnlockType] = None
    unlock_date: Optional[str] = None
    unlock_location: Optional[UnlockLocationModel] = None
    unlock_event: Optional[str] = None
    event_type: Optional[EventType] = None
    is_public: Optional[bool] = None
    is_unlocked: Optional[bool] = None
    tags: Optional[list[str]] = None
    collaborators: Optional[list[str]] = None


class CapsuleResponse(BaseModel):
    id: str
    title: str
    content: str
    created_by: str
    unlock_type: UnlockType
    unlock_date: Optional[str] = None
    unlock_location: Optional[UnlockLocationModel] = None
    unlock_event: Optional[str] = None
    event_type: Optional[EventType] = None
    is_public: bool
    media_files: list[str]
    media_metadata: dict[str, MediaMetadataModel]
    is_unlocked: bool
    tags: list[str]
    collaborators: list[str]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ListCapsulesResponse(BaseModel):
    capsules: list[CapsuleResponse]


class MediaUploadResponse(BaseModel):
    file_id: str
    capsule: CapsuleResponse


class SignUrlResponse(BaseModel):
    url: str


class ActionEnvelope(BaseModel):
    type: Literal["success", "failure"]
    status: int
    data: str


class ExecutionRequest(BaseModel):
    text: str = Field(..., min_length=1)


class ExecutionResponse(BaseModel):
    execution_id: str
    function_id: str
    status: ExecutionStatus
    response_status_code: int = 0
    response_body: str = ""
    errors: str = ""


class SessionUserModel(BaseModel):
    id: str
    name: str = ""
    email: Optional[str] = None
    is_anonymous: bool = False


class SessionResponse(BaseModel):
    user: Optional[SessionUserModel] = None


class StatusResponse(BaseModel):
    status: Literal["ok"]
