"""
Helpers to convert stored capsule documents into dataclass instances and back.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from dacite import Config, from_dict

from shared.json_utils import convert_keys
from shared.types import Capsule, EventType, UnlockType

_DACITE_CONFIG = Config(cast=[UnlockType, EventType], check_types=False)


def capsule_from_document(doc: dict[str, Any], capsule_id: str | None = None) -> Capsule:
    """
    Builds a Capsule from a camelCase document.

    Media metadata is keyed by file id, so those keys are kept as stored.
    """
    media_metadata = doc.get("mediaMetadata") or {}
    data = convert_keys(
        {key: value for key, value in doc.items() if key != "mediaMetadata"},
        "camel_to_snake",
    )
    data["media_metadata"] = media_metadata
    if capsule_id is not None:
        data["id"] = capsule_id
    return from_dict(data_class=Capsule, data=data, config=_DACITE_CONFIG)


def capsule_to_document(capsule: Capsule) -> dict[str, Any]:
    """Serializes a Capsule to the camelCase document shape, without its id."""
    data = asdict(capsule)
    data.pop("id", None)
    media_metadata = data.pop("media_metadata")
    doc = convert_keys(data, "snake_to_camel")
    doc["mediaMetadata"] = media_metadata
    doc["unlockType"] = str(capsule.unlock_type)
    if capsule.event_type is not None:
        doc["eventType"] = str(capsule.event_type)
    return doc
