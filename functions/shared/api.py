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
from typing import Any, Optional

from shared.types import ExecutionStatus


@dataclass
class EnhanceContentResponse:
    """Successful body returned by the enhancement function."""

    enhanced_text: str
    original_text: str


@dataclass
class ErrorResponse:
    """Error body returned by the enhancement function and the form action."""

    error: str


@dataclass
class Execution:
    """A single invocation of a serverless function, trackable by id."""

    execution_id: str
    function_id: str
    status: ExecutionStatus
    request_body: str = ""
    response_body: str = ""
    response_status_code: int = 0
    errors: str = ""
    created_timestamp: Any = None
    updated_timestamp: Any = None


@dataclass
class SessionUser:
    """The account attached to a session."""

    id: str
    name: str = ""
    email: Optional[str] = None
    is_anonymous: bool = False
    labels: list[str] = field(default_factory=list)
