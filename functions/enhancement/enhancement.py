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
"""Rewrites capsule text with the hosted model and shapes the function response."""

import logging
from dataclasses import asdict
from typing import Any, Optional, Tuple

from models import gemini
from models import prompts
from shared.api import EnhanceContentResponse, ErrorResponse
from shared.constants import ENHANCE_MAX_OUTPUT_TOKENS, ENHANCE_TEMPERATURE
from shared.json_utils import convert_keys

logger = logging.getLogger(__name__)

PROVIDER_ERROR_PREFIX = "Error:"


class EnhancementFailedError(Exception):
    pass


def enhance_content(text: str, api_key: Optional[str] = None) -> str:
    """
    Makes a single model call rewriting `text` as a capsule memory.

    Raises:
        EnhancementFailedError: Wrapping any configuration, network or provider error.
    """
    try:
        return gemini.call_chat(
            system_prompt=prompts.ENHANCE_CONTENT_SYSTEM_PROMPT,
            user_text=text,
            temperature=ENHANCE_TEMPERATURE,
            max_output_tokens=ENHANCE_MAX_OUTPUT_TOKENS,
            api_key=api_key,
        )
    except Exception as e:
        logger.error("Enhancement error: %s", e)
        raise EnhancementFailedError(f"Enhancement failed: {e}") from e


def build_enhancement_response(
    payload: Optional[dict[str, Any]], api_key: Optional[str] = None
) -> Tuple[dict, int]:
    """
    Runs one enhancement request end to end.

    Args:
        payload: The decoded JSON body, expected to hold `text`.
        api_key: Optional override for the configured provider key.

    Returns:
        A (body, status) pair: the camelCase EnhanceContentResponse with 200,
        or an ErrorResponse with 400 (missing text) or 500 (any failure).
    """
    text = payload.get("text") if isinstance(payload, dict) else None
    if not text or not isinstance(text, str):
        return asdict(ErrorResponse(error="Text parameter is required")), 400

    try:
        enhanced_text = enhance_content(text, api_key=api_key)
    except Exception as e:
        return asdict(ErrorResponse(error=f"Function error: {e}")), 500

    if enhanced_text.startswith(PROVIDER_ERROR_PREFIX):
        return asdict(ErrorResponse(error=enhanced_text)), 500

    response = EnhanceContentResponse(enhanced_text=enhanced_text, original_text=text)
    return convert_keys(asdict(response), "snake_to_camel"), 200
