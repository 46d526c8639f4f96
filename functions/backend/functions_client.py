"""
Execution of serverless functions, synchronously or asynchronously.

Supports an in-process implementation for tests/local runs and a Cloud
Functions implementation for production.
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from dataclasses import asdict
from typing import Any, Callable, Optional, Protocol

import requests
from dacite import Config, from_dict
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from client.realtime import InMemoryRealtimeClient, execution_channel
from shared.api import Execution
from shared.firebase_constants import EXECUTIONS_COLLECTION
from shared.json_utils import convert_keys
from shared.types import ExecutionStatus

logger = logging.getLogger(__name__)

FunctionHandler = Callable[[Any], tuple[dict, int]]


class FunctionNotFoundError(LookupError):
    pass


def execution_to_document(execution: Execution) -> dict:
    doc = convert_keys(asdict(execution), "snake_to_camel")
    doc["status"] = execution.status.value
    return doc


def execution_from_document(doc: dict, execution_id: str) -> Execution:
    data = convert_keys(doc, "camel_to_snake")
    data["execution_id"] = execution_id
    return from_dict(
        data_class=Execution,
        data=data,
        config=Config(cast=[ExecutionStatus], check_types=False),
    )


class FunctionsClient(Protocol):
    """Defines the operations the API needs from the functions platform."""

    def create_execution(
        self, function_id: str, body: str, asynchronous: bool = False
    ) -> Execution:
        ...

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        ...

    def run_pending(self) -> int:
        ...


class InMemoryFunctionsClient:
    """
    Runs registered handlers in-process.

    Asynchronous executions wait in a queue until `run_pending` is called.
    Every status change is published on the execution's realtime channel.
    """

    def __init__(
        self,
        handlers: dict[str, FunctionHandler],
        realtime: Optional[InMemoryRealtimeClient] = None,
    ):
        self.handlers = dict(handlers)
        self.realtime = realtime
        self.executions: dict[str, Execution] = {}
        self.pending: list[str] = []
        self._lock = threading.Lock()

    def create_execution(
        self, function_id: str, body: str, asynchronous: bool = False
    ) -> Execution:
        if function_id not in self.handlers:
            raise FunctionNotFoundError(function_id)
        now = time.time()
        execution = Execution(
            execution_id=uuid.uuid4().hex,
            function_id=function_id,
            status=ExecutionStatus.WAITING,
            request_body=body,
            created_timestamp=now,
            updated_timestamp=now,
        )
        with self._lock:
            self.executions[execution.execution_id] = execution
            if asynchronous:
                self.pending.append(execution.execution_id)
        if not asynchronous:
            self._run(execution)
        return execution

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        return self.executions.get(execution_id)

    def run_pending(self) -> int:
        processed = 0
        while True:
            with self._lock:
                if not self.pending:
                    return processed
                execution_id = self.pending.pop(0)
            self._run(self.executions[execution_id])
            processed += 1

    def _run(self, execution: Execution) -> None:
        self._transition(execution, ExecutionStatus.PROCESSING)
        handler = self.handlers[execution.function_id]
        try:
            payload = json.loads(execution.request_body or "{}")
            body, status = handler(payload)
        except Exception as e:
            logger.exception("Execution %s failed", execution.execution_id)
            execution.errors = str(e)
            self._transition(execution, ExecutionStatus.FAILED)
            return
        execution.response_body = json.dumps(body)
        execution.response_status_code = status
        self._transition(execution, ExecutionStatus.COMPLETED)

    def _transition(self, execution: Execution, status: ExecutionStatus) -> None:
        execution.status = status
        execution.updated_timestamp = time.time()
        if self.realtime:
            self.realtime.publish(
                execution_channel(execution.execution_id),
                execution_to_document(execution),
            )

    def reset(self) -> None:
        """Clear all executions (useful in tests)."""
        with self._lock:
            self.executions.clear()
            self.pending.clear()


class CloudFunctionsClient:
    """
    Calls deployed Cloud Functions.

    Synchronous executions POST to the function URL. Asynchronous executions
    are written to the `executions` collection, where a Firestore trigger
    runs them and records each status change.
    """

    def __init__(
        self,
        function_urls: dict[str, str],
        db: Any,
        timeout_seconds: float = 70.0,
    ):
        self.function_urls = dict(function_urls)
        self.db = db
        self.timeout_seconds = timeout_seconds

    def create_execution(
        self, function_id: str, body: str, asynchronous: bool = False
    ) -> Execution:
        if asynchronous:
            return self._create_async_execution(function_id, body)

        url = self.function_urls.get(function_id)
        if not url:
            raise FunctionNotFoundError(function_id)
        execution = Execution(
            execution_id=uuid.uuid4().hex,
            function_id=function_id,
            status=ExecutionStatus.PROCESSING,
            request_body=body,
        )
        try:
            response = requests.post(
                url,
                data=body.encode("utf-8"),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error("Execution of %s failed: %s", function_id, e)
            execution.status = ExecutionStatus.FAILED
            execution.errors = str(e)
            return execution

        execution.status = ExecutionStatus.COMPLETED
        execution.response_body = response.text
        execution.response_status_code = response.status_code
        return execution

    def _create_async_execution(self, function_id: str, body: str) -> Execution:
        doc_ref = self.db.collection(EXECUTIONS_COLLECTION).document()
        execution = Execution(
            execution_id=doc_ref.id,
            function_id=function_id,
            status=ExecutionStatus.WAITING,
            request_body=body,
        )
        doc = execution_to_document(execution)
        doc.pop("executionId")
        doc["createdTimestamp"] = SERVER_TIMESTAMP
        doc["updatedTimestamp"] = SERVER_TIMESTAMP
        doc_ref.set(doc)
        return execution

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        snapshot = self.db.collection(EXECUTIONS_COLLECTION).document(execution_id).get()
        if not snapshot.exists:
            return None
        return execution_from_document(snapshot.to_dict(), snapshot.id)

    def run_pending(self) -> int:
        # The Firestore trigger runs asynchronous executions.
        return 0
