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
# Standard library imports
import json
import os
import unittest
from unittest.mock import patch, MagicMock

# Third-party library imports
from functions_framework import create_app
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

# Local application imports
# This patch must be applied before importing 'main'
with patch("firebase_admin.initialize_app"):
    import main
from models import prompts
from shared.constants import ENHANCE_FUNCTION_ID
from shared.types import ExecutionStatus

MAIN_SOURCE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "main.py")


class TestMainEnhanceContent(unittest.TestCase):

    @patch("firebase_admin.initialize_app")
    def setUp(self, initialize_app_mock):
        # Create a test client for the function using functions-framework.
        self.client = create_app("enhance_content", MAIN_SOURCE).test_client()

    @patch("enhancement.enhancement.gemini")
    def test_enhance_content(self, mock_gemini):
        # Arrange: The model returns a rewritten memory.
        mock_gemini.call_chat.return_value = "The lake glittered that summer."

        # Act
        response = self.client.post("/", json={"text": "we went to the lake"})

        # Assert: Check for a successful response and print the body on failure.
        self.assertEqual(
            response.status_code,
            200,
            f"Request failed with status {response.status_code}. Body: {response.get_data(as_text=True)}",
        )
        self.assertEqual(
            response.get_json(),
            {
                "enhancedText": "The lake glittered that summer.",
                "originalText": "we went to the lake",
            },
        )
        mock_gemini.call_chat.assert_called_once_with(
            system_prompt=prompts.ENHANCE_CONTENT_SYSTEM_PROMPT,
            user_text="we went to the lake",
            temperature=0.7,
            max_output_tokens=400,
            api_key=None,
        )

    @patch("enhancement.enhancement.gemini")
    def test_enhance_content_missing_text(self, mock_gemini):
        for body in ({}, {"text": ""}, {"text": 42}):
            response = self.client.post("/", json=body)

            self.assertEqual(response.status_code, 400)
            self.assertEqual(
                response.get_json(), {"error": "Text parameter is required"}
            )

        # The provider is never called for invalid input.
        mock_gemini.call_chat.assert_not_called()

    @patch("enhancement.enhancement.gemini")
    def test_enhance_content_non_json_body(self, mock_gemini):
        response = self.client.post("/", data="not json", content_type="text/plain")

        self.assertEqual(response.status_code, 400)
        mock_gemini.call_chat.assert_not_called()

    @patch("enhancement.enhancement.gemini")
    def test_enhance_content_provider_error(self, mock_gemini):
        mock_gemini.call_chat.side_effect = RuntimeError("quota exceeded")

        response = self.client.post("/", json={"text": "a birthday party"})

        self.assertEqual(response.status_code, 500)
        error = response.get_json()["error"]
        self.assertTrue(error.startswith("Function error: Enhancement failed:"))
        self.assertIn("quota exceeded", error)

    @patch("enhancement.enhancement.gemini")
    def test_enhance_content_error_text_from_provider(self, mock_gemini):
        mock_gemini.call_chat.return_value = "Error: model overloaded"

        response = self.client.post("/", json={"text": "a birthday party"})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.get_json(), {"error": "Error: model overloaded"})

    @patch("models.api_config.DEFAULT_API_KEY", None)
    def test_enhance_content_missing_api_key(self):
        response = self.client.post("/", json={"text": "a birthday party"})

        self.assertEqual(response.status_code, 500)
        self.assertIn("GEMINI_API_KEY", response.get_json()["error"])


class TestMainProcessExecution(unittest.TestCase):

    def setUp(self):
        env_patcher = patch.dict(os.environ)
        env_patcher.start()
        self.addCleanup(env_patcher.stop)
        os.environ.pop(main.ENHANCE_FUNCTION_ID_ENV_VAR, None)

    def _execution(self, **overrides):
        data = {
            "functionId": ENHANCE_FUNCTION_ID,
            "status": ExecutionStatus.WAITING.value,
            "requestBody": json.dumps({"text": "first snow"}),
        }
        data.update(overrides)
        return data

    def test_process_execution_completes(self):
        execution_ref = MagicMock()
        body = {"enhancedText": "Snow fell softly.", "originalText": "first snow"}

        with patch.object(main, "_claim_execution", return_value=True), patch.object(
            main.enhancement, "build_enhancement_response", return_value=(body, 200)
        ) as mock_build:
            main._process_execution(execution_ref, self._execution())

        mock_build.assert_called_once_with({"text": "first snow"})
        execution_ref.update.assert_called_once_with(
            {
                "status": ExecutionStatus.COMPLETED.value,
                "responseBody": json.dumps(body),
                "responseStatusCode": 200,
                "updatedTimestamp": SERVER_TIMESTAMP,
            }
        )

    def test_process_execution_error_body_still_completes(self):
        execution_ref = MagicMock()
        body = {"error": "Text parameter is required"}

        with patch.object(main, "_claim_execution", return_value=True), patch.object(
            main.enhancement, "build_enhancement_response", return_value=(body, 400)
        ):
            main._process_execution(execution_ref, self._execution(requestBody="{}"))

        update = execution_ref.update.call_args.args[0]
        self.assertEqual(update["status"], ExecutionStatus.COMPLETED.value)
        self.assertEqual(update["responseStatusCode"], 400)
        self.assertEqual(json.loads(update["responseBody"]), body)

    def test_process_execution_handler_exception_fails(self):
        execution_ref = MagicMock()

        with patch.object(main, "_claim_execution", return_value=True), patch.object(
            main.enhancement,
            "build_enhancement_response",
            side_effect=RuntimeError("boom"),
        ):
            main._process_execution(execution_ref, self._execution())

        execution_ref.update.assert_called_once_with(
            {
                "status": ExecutionStatus.FAILED.value,
                "errors": "boom",
                "updatedTimestamp": SERVER_TIMESTAMP,
            }
        )

    def test_process_execution_invalid_request_body_fails(self):
        execution_ref = MagicMock()

        with patch.object(main, "_claim_execution", return_value=True):
            main._process_execution(
                execution_ref, self._execution(requestBody="{not json")
            )

        update = execution_ref.update.call_args.args[0]
        self.assertEqual(update["status"], ExecutionStatus.FAILED.value)

    def test_process_execution_skips_non_waiting(self):
        execution_ref = MagicMock()

        with patch.object(main, "_claim_execution") as mock_claim:
            for status in ("processing", "completed", "failed"):
                main._process_execution(execution_ref, self._execution(status=status))

        mock_claim.assert_not_called()
        execution_ref.update.assert_not_called()

    def test_process_execution_skips_unknown_function(self):
        execution_ref = MagicMock()

        with patch.object(main, "_claim_execution") as mock_claim:
            main._process_execution(
                execution_ref, self._execution(functionId="something-else")
            )

        mock_claim.assert_not_called()
        execution_ref.update.assert_not_called()

    def test_process_execution_uses_overridden_function_id(self):
        body = {"enhancedText": "Snow fell softly.", "originalText": "first snow"}
        os.environ[main.ENHANCE_FUNCTION_ID_ENV_VAR] = "enhance-content-staging"

        with patch.object(main, "_claim_execution", return_value=True), patch.object(
            main.enhancement, "build_enhancement_response", return_value=(body, 200)
        ):
            overridden_ref = MagicMock()
            main._process_execution(
                overridden_ref,
                self._execution(functionId="enhance-content-staging"),
            )
            default_ref = MagicMock()
            main._process_execution(default_ref, self._execution())

        self.assertEqual(
            overridden_ref.update.call_args.args[0]["status"],
            ExecutionStatus.COMPLETED.value,
        )
        default_ref.update.assert_not_called()

    def test_process_execution_already_claimed(self):
        execution_ref = MagicMock()

        with patch.object(
            main, "_claim_execution", return_value=False
        ), patch.object(main.enhancement, "build_enhancement_response") as mock_build:
            main._process_execution(execution_ref, self._execution())

        mock_build.assert_not_called()
        execution_ref.update.assert_not_called()


if __name__ == "__main__":
    unittest.main()
