"""
Client for the AI enhancement step.

Two ways to enhance capsule text:

- `enhance_text` posts to the same-origin form action, which runs the
  enhancement function synchronously and returns its body in an envelope.
- `enhance_text_with_realtime` follows an execution that was already started
  asynchronously, by subscribing to its realtime channel.

Both report progress through an optional callback and emit exactly one
terminal (`completed` or `failed`) progress per call.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Callable, Optional

import httpx

from client.realtime import RealtimeClient, Unsubscribe, execution_channel
from shared.constants import ENHANCEMENT_TIMEOUT_SECONDS, REASONING_ARTIFACT_PREFIX
from shared.envelope import EnvelopeError, decode_action_envelope
from shared.types import EnhancementProgress, EnhancementResult, ExecutionStatus

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[EnhancementProgress], None]

DEFAULT_ACTION_PATH = "/api/actions/enhance_content"

PROCESSING_MESSAGE = "AI is working on your content..."
COMPLETED_MESSAGE = "Enhancement completed successfully!"
UNEXPECTED_FORMAT_MESSAGE = "Enhancement failed - unexpected response format"
REQUEST_FAILED_MESSAGE = "Failed to enhance content"
PARSE_FAILED_MESSAGE = "Failed to parse enhancement result"
REMOTE_FAILED_MESSAGE = "AI enhancement failed. Please try again."
TIMEOUT_MESSAGE = "Enhancement timed out. Please try again."
START_FAILED_MESSAGE = "Failed to start AI enhancement"


class EnhancementError(Exception):
    pass


class EnhancementTimeoutError(EnhancementError):
    pass


def _notify(
    on_progress: Optional[ProgressCallback], progress: EnhancementProgress
) -> None:
    if on_progress:
        on_progress(progress)


def _result_from_body(body: dict) -> Optional[EnhancementResult]:
    enhanced_text = body.get("enhancedText")
    original_text = body.get("originalText")
    if not isinstance(enhanced_text, str) or not isinstance(original_text, str):
        return None
    if not enhanced_text or not original_text:
        return None
    return EnhancementResult(original_text=original_text, enhanced_text=enhanced_text)


class EnhancementService:
    """
    Tracks enhancement requests for one consumer.

    Args:
        http_client: Client whose base URL is the app origin.
        realtime: Source of execution status events.
        action_path: Path of the enhancement form action.
        timeout_seconds: How long a realtime enhancement may stay silent.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        realtime: RealtimeClient,
        action_path: str = DEFAULT_ACTION_PATH,
        timeout_seconds: float = ENHANCEMENT_TIMEOUT_SECONDS,
    ):
        self.http_client = http_client
        self.realtime = realtime
        self.action_path = action_path
        self.timeout_seconds = timeout_seconds

    async def enhance_text(
        self, text: str, on_progress: Optional[ProgressCallback] = None
    ) -> EnhancementResult:
        """
        Enhances `text` through the form action.

        Raises:
            EnhancementError: With the message also reported as `failed` progress.
        """
        try:
            result = await self._request_enhancement(text)
        except EnhancementError as e:
            _notify(on_progress, EnhancementProgress.failed(str(e)))
            raise

        _notify(on_progress, EnhancementProgress.completed(COMPLETED_MESSAGE, result))
        return result

    async def _request_enhancement(self, text: str) -> EnhancementResult:
        try:
            response = await self.http_client.post(
                self.action_path, data={"text": text.strip()}
            )
        except httpx.HTTPError as e:
            logger.error("Enhancement request failed: %s", e)
            raise EnhancementError(str(e) or REQUEST_FAILED_MESSAGE) from e

        try:
            body = decode_action_envelope(response.json())
        except (ValueError, EnvelopeError) as e:
            if not response.is_success:
                raise EnhancementError(
                    f"HTTP error! status: {response.status_code}"
                ) from e
            logger.warning("Undecodable enhancement envelope: %s", e)
            raise EnhancementError(UNEXPECTED_FORMAT_MESSAGE) from e

        if body.get("error"):
            raise EnhancementError(body["error"])
        if not response.is_success:
            raise EnhancementError(f"HTTP error! status: {response.status_code}")

        enhanced_text = body.get("enhancedText")
        if isinstance(enhanced_text, str) and enhanced_text.startswith(
            REASONING_ARTIFACT_PREFIX
        ):
            raise EnhancementError(UNEXPECTED_FORMAT_MESSAGE)

        result = _result_from_body(body)
        if result is None:
            raise EnhancementError(UNEXPECTED_FORMAT_MESSAGE)
        return result

    async def enhance_text_with_realtime(
        self,
        text: str,
        execution_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EnhancementResult:
        """
        Waits for an asynchronous execution to finish.

        Settles exactly once: on a `completed` or `failed` status, or when no
        terminal status arrives within `timeout_seconds`. The subscription and
        the timer are released before settling; later events are ignored.

        Raises:
            EnhancementTimeoutError: If the execution stays silent too long.
            EnhancementError: If the execution failed or returned an error.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[EnhancementResult] = loop.create_future()
        unsubscribe: Optional[Unsubscribe] = None
        timeout_handle: Optional[asyncio.TimerHandle] = None
        channel = execution_channel(execution_id)

        def cleanup() -> None:
            nonlocal unsubscribe, timeout_handle
            if unsubscribe is not None:
                release, unsubscribe = unsubscribe, None
                release()
            if timeout_handle is not None:
                timeout_handle.cancel()
                timeout_handle = None

        def settle(
            progress: EnhancementProgress,
            result: Optional[EnhancementResult] = None,
            error: Optional[Exception] = None,
        ) -> None:
            if future.done():
                return
            cleanup()
            try:
                _notify(on_progress, progress)
            finally:
                if error is not None:
                    future.set_exception(error)
                else:
                    future.set_result(result)

        def fail(message: str, error_class: type = EnhancementError) -> None:
            settle(EnhancementProgress.failed(message), error=error_class(message))

        def handle_event(payload: dict) -> None:
            if future.done():
                return
            status = payload.get("status")
            if status == ExecutionStatus.PROCESSING:
                _notify(on_progress, EnhancementProgress.processing(PROCESSING_MESSAGE))
            elif status == ExecutionStatus.COMPLETED:
                handle_completed(payload.get("responseBody"))
            elif status == ExecutionStatus.FAILED:
                fail(REMOTE_FAILED_MESSAGE)

        def handle_completed(response_body) -> None:
            try:
                body = json.loads(response_body)
            except (TypeError, ValueError):
                body = None
            if not isinstance(body, dict):
                fail(PARSE_FAILED_MESSAGE)
                return
            if body.get("error"):
                fail(str(body["error"]))
                return
            result = _result_from_body(body)
            if result is None:
                fail(PARSE_FAILED_MESSAGE)
                return
            settle(EnhancementProgress.completed(COMPLETED_MESSAGE, result), result=result)

        def on_event(payload: dict) -> None:
            # Realtime clients may call back from their own threads.
            if future.done():
                return
            try:
                loop.call_soon_threadsafe(handle_event, payload)
            except RuntimeError:
                logger.debug("Dropped %s event: event loop is closed", channel)

        def on_timeout() -> None:
            fail(TIMEOUT_MESSAGE, EnhancementTimeoutError)

        logger.debug(
            "Tracking execution %s for %d characters of text", execution_id, len(text)
        )
        try:
            unsubscribe = self.realtime.subscribe(channel, on_event)
            timeout_handle = loop.call_later(self.timeout_seconds, on_timeout)
        except Exception:
            cleanup()
            _notify(on_progress, EnhancementProgress.failed(START_FAILED_MESSAGE))
            raise

        try:
            return await future
        finally:
            cleanup()
