# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Dict, List, Optional


class UnlockType(StrEnum):
    DATE = "date"
    LOCATION = "location"
    EVENT = "event"


class EventType(StrEnum):
    CUSTOM = "custom"
    BIRTHDAY = "birthday"
    HOLIDAY = "holiday"
    MILESTONE = "milestone"
    MANUAL = "manual"


class ExecutionStatus(StrEnum):
    """Status of a serverless function execution, as published on the realtime channel."""

    WAITING = "waiting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProgressStatus(StrEnum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class UnlockLocation:
    latitude: float
    longitude: float
    radius: float


@dataclass
class MediaMetadata:
    name: str
    type: str
    size: int


@dataclass
class Capsule:
    """A user-authored content bundle with an unlock condition."""

    title: str
    content: str
    created_by: str
    unlock_type: UnlockType
    is_public: bool = False
    id: Optional[str] = None
    unlock_date: Optional[str] = None
    unlock_location: Optional[UnlockLocation] = None
    unlock_event: Optional[str] = None
    event_type: Optional[EventType] = None
    media_files: List[str] = field(default_factory=list)
    media_metadata: Dict[str, MediaMetadata] = field(default_factory=dict)
    is_unlocked: bool = False
    tags: List[str] = field(default_factory=list)
    collaborators: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def can_edit(self, user_id: str) -> bool:
        return user_id == self.created_by or user_id in self.collaborators

    def can_view(self, user_id: Optional[str]) -> bool:
        if self.is_public:
            return True
        return user_id is not None and self.can_edit(user_id)


@dataclass
class EnhancementResult:
    original_text: str
    enhanced_text: str


@dataclass
class EnhancementProgress:
    """
    Client-side view of an enhancement request.

    Use the `processing`, `completed` and `failed` constructors: a completed
    progress always carries a result and a failed one always carries an error.
    """

    status: ProgressStatus
    message: str
    result: Optional[EnhancementResult] = None
    error: Optional[str] = None

    @classmethod
    def processing(cls, message: str) -> "EnhancementProgress":
        return cls(status=ProgressStatus.PROCESSING, message=message)

    @classmethod
    def completed(
        cls, message: str, result: EnhancementResult
    ) -> "EnhancementProgress":
        return cls(status=ProgressStatus.COMPLETED, message=message, result=result)

    @classmethod
    def failed(cls, message: str) -> "EnhancementProgress":
        return cls(status=ProgressStatus.FAILED, message=message, error=message)


def validate_unlock_condition(capsule: Capsule) -> None:
    """
    Ensures exactly one unlock condition is set and that it matches unlock_type.

    Raises:
        ValueError: If the condition is missing, or another condition is also set.
    """
    conditions = {
        UnlockType.DATE: capsule.unlock_date,
        UnlockType.LOCATION: capsule.unlock_location,
        UnlockType.EVENT: capsule.unlock_event,
    }
    unlock_type = UnlockType(capsule.unlock_type)
    if not conditions[unlock_type]:
        raise ValueError(f"unlock_{unlock_type} is required for unlock type '{unlock_type}'.")
    extra = [
        str(kind) for kind, value in conditions.items() if kind != unlock_type and value
    ]
    if extra:
        raise ValueError(
            f"Unlock type '{unlock_type}' cannot also set: {', '.join(sorted(extra))}."
        )
