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
"""Display formatting for capsule records."""

from datetime import datetime, timezone
from typing import Optional, TypedDict

from shared.types import Capsule, UnlockType

UNKNOWN_EVENT_NAME = "Unknown Event"

STATUS_COLOR_UNLOCKED = "text-green-400"
STATUS_COLOR_READY = "text-yellow-400"
STATUS_COLOR_LOCKED = "text-blue-400"

_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


class EventDisplay(TypedDict):
    name: str
    description: str


def parse_timestamp(value: str) -> datetime:
    """Parses an ISO-8601 timestamp, accepting a trailing 'Z'. Naive values are UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_date(date_string: str) -> str:
    """Formats a timestamp as an en-US long date, e.g. 'January 5, 2025'."""
    parsed = parse_timestamp(date_string)
    return f"{_MONTH_NAMES[parsed.month - 1]} {parsed.day}, {parsed.year}"


def format_event_display(unlock_event: Optional[str]) -> EventDisplay:
    """
    Splits an "event: description" or "event - description" string.

    The colon delimiter is checked before the dash; the first occurrence of the
    matching delimiter wins.
    """
    if not unlock_event:
        return {"name": UNKNOWN_EVENT_NAME, "description": ""}

    for delimiter in (": ", " - "):
        index = unlock_event.find(delimiter)
        if index != -1:
            return {
                "name": unlock_event[:index],
                "description": unlock_event[index + len(delimiter) :],
            }

    return {"name": unlock_event, "description": ""}


def truncate_text(text: Optional[str], max_length: int) -> str:
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def get_unlock_status(capsule: Capsule) -> str:
    return "Unlocked" if capsule.is_unlocked else "Locked"


def get_status_color(capsule: Capsule, now: Optional[datetime] = None) -> str:
    if capsule.is_unlocked:
        return STATUS_COLOR_UNLOCKED

    if capsule.unlock_type == UnlockType.DATE and capsule.unlock_date:
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        unlock_date = parse_timestamp(capsule.unlock_date)
        return STATUS_COLOR_READY if now >= unlock_date else STATUS_COLOR_LOCKED

    return STATUS_COLOR_LOCKED
