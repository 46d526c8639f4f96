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

import time
import logging
from google import genai
from google.genai import types
from models import api_config

logger = logging.getLogger(__name__)

API_KEY_LOGGING_MESSAGE = "Ran with user-specified API key"
DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiInvalidResponseException(Exception):
    pass


class MissingApiKeyError(Exception):
    """Raised when no provider credential is configured."""


def call_chat(
    system_prompt: str,
    user_text: str,
    temperature: float,
    max_output_tokens: int,
    model: str = DEFAULT_MODEL,
    api_key: str | None = None,
) -> str:
    """
    Calls Gemini with a system instruction and a single user message.

    Args:
        system_prompt (str): The fixed system instruction.
        user_text (str): The sole user message.
        temperature (float): Sampling temperature.
        max_output_tokens (int): Cap on generated tokens.
        model (str): The model to call with.
        api_key (str | None): Overrides the configured key when set.

    Returns:
        str: The generated text.

    Raises:
        MissingApiKeyError: If no key is passed and none is configured.
        GeminiInvalidResponseException: If the model returns no text.
    """
    if not api_key:
        api_key = api_config.DEFAULT_API_KEY
    else:
        logger.info(API_KEY_LOGGING_MESSAGE)
    if not api_key:
        raise MissingApiKeyError(
            f"{api_config.API_KEY_ENV_VAR} environment variable is not set"
        )

    client = genai.Client(api_key=api_key)
    start_time = time.time()
    response = client.models.generate_content(
        model=model,
        contents=user_text,
        config=types.GenerateContentConfig(
            system_instruction=system_prompt,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
        ),
    )
    logger.info("Gemini chat call took: %.2fs", time.time() - start_time)
    if not response.text:
        raise GeminiInvalidResponseException("Model returned an empty response")
    return response.text
