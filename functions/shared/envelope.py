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
"""
Envelope returned by the enhancement form action.

The action wraps the function's raw response body, itself a JSON string, in a
JSON-encoded one-element array: the payload is JSON inside JSON inside JSON.
"""

import json
from typing import Any, Union


class EnvelopeError(ValueError):
    """Base class for envelopes that cannot be decoded."""


class EnvelopeFormatError(EnvelopeError):
    """The envelope decoded, but its shape is not the expected one."""


class EnvelopeDecodeError(EnvelopeError):
    """One of the JSON layers of the envelope is not valid JSON."""


def encode_action_envelope(payload: Union[str, dict], status: int = 200) -> dict:
    """
    Wraps a function response body (str) or an error object (dict).

    Statuses of 400 and above produce a `failure` envelope.
    """
    return {
        "type": "success" if status < 400 else "failure",
        "status": status,
        "data": json.dumps([payload]),
    }


def decode_action_envelope(envelope: Any) -> dict:
    """
    Unwraps an action envelope to the function's JSON object.

    An `error` field at the outer or inner level is returned as `{"error": ...}`
    so callers can report it.

    Raises:
        EnvelopeFormatError: If a layer has the wrong shape.
        EnvelopeDecodeError: If a layer is not valid JSON.
    """
    if not isinstance(envelope, dict):
        raise EnvelopeFormatError("Envelope must be a JSON object")
    if envelope.get("error"):
        return {"error": str(envelope["error"])}

    data = envelope.get("data")
    if not isinstance(data, str):
        raise EnvelopeFormatError("Envelope is missing its data string")
    try:
        items = json.loads(data)
    except json.JSONDecodeError as e:
        raise EnvelopeDecodeError(f"Envelope data is not valid JSON: {e}") from e
    if not isinstance(items, list) or len(items) != 1:
        raise EnvelopeFormatError("Envelope data must be a one-element array")

    inner = items[0]
    if isinstance(inner, str):
        try:
            inner = json.loads(inner)
        except json.JSONDecodeError as e:
            raise EnvelopeDecodeError(f"Response body is not valid JSON: {e}") from e
    if not isinstance(inner, dict):
        raise EnvelopeFormatError("Response body must be a JSON object")
    if inner.get("error"):
        return {"error": str(inner["error"])}
    return inner
