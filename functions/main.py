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

# Cloud functions for the memory capsule backend - AI text enhancement.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
import json
import os

# Third-party library imports
from firebase_admin import initialize_app, firestore
from firebase_functions import https_fn, logger, options
from firebase_functions.firestore_fn import (
    on_document_written,
    Event,
    Change,
    DocumentSnapshot,
)
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

# Local application imports
from enhancement import enhancement
from shared.constants import ENHANCE_FUNCTION_ID
from shared.firebase_constants import EXECUTIONS_COLLECTION
from shared.types import ExecutionStatus

ENHANCE_FUNCTION_TIMEOUT = 60
ENHANCE_FUNCTION_ID_ENV_VAR = "ENHANCE_FUNCTION_ID"

initialize_app()


def _json_response(body: dict, status: int) -> https_fn.Response:
    return https_fn.Response(
        json.dumps(body), status=status, mimetype="application/json"
    )


@https_fn.on_request(
    timeout_sec=ENHANCE_FUNCTION_TIMEOUT, memory=options.MemoryOption.MB_256
)
def enhance_content(req: https_fn.Request) -> https_fn.Response:
    """
    Rewrites the posted capsule text with the hosted model.

    Args:
        req (https_fn.Request): The request, with a JSON body `{text}`.

    Returns:
        `{enhancedText, originalText}` with 200, or `{error}` with 400 when
        `text` is missing and 500 on any failure.
    """
    payload = req.get_json(silent=True)
    text = payload.get("text") if isinstance(payload, dict) else None
    logger.info("Received text for enhancement:", text)

    body, status = enhancement.build_enhancement_response(payload)
    if status >= 500:
        logger.error("Function error:", body.get("error"))
    return _json_response(body, status)


@on_document_written(
    timeout_sec=ENHANCE_FUNCTION_TIMEOUT,
    memory=options.MemoryOption.MB_256,
    document=EXECUTIONS_COLLECTION + "/{executionId}",
)
def on_execution_document_written(event: Event[Change[DocumentSnapshot]]) -> None:
    """
    Runs asynchronous executions. Triggered by any write to an execution doc;
    only `waiting` executions are processed, so the function's own status
    writes are no-ops.
    """
    if not event.data.after:
        return

    execution_data = event.data.after.to_dict()
    execution_ref = (
        firestore.client()
        .collection(EXECUTIONS_COLLECTION)
        .document(event.params["executionId"])
    )
    _process_execution(execution_ref, execution_data)


def _process_execution(execution_ref, execution_data: dict) -> None:
    """
    Status changes from WAITING -> PROCESSING -> COMPLETED/FAILED.

    - An error body from the handler still completes the execution; the
      client reads the error from `responseBody`.
    - An exception marks the execution FAILED with the message in `errors`.
    """
    if execution_data.get("status") != ExecutionStatus.WAITING:
        return
    function_id = execution_data.get("functionId")
    if function_id != _enhance_function_id():
        logger.warn("Ignoring execution for unknown function:", function_id)
        return
    if not _claim_execution(execution_ref):
        return

    try:
        payload = json.loads(execution_data.get("requestBody") or "{}")
        body, status = enhancement.build_enhancement_response(payload)
    except Exception as e:
        logger.error("Execution failed:", str(e))
        execution_ref.update(
            {
                "status": ExecutionStatus.FAILED.value,
                "errors": str(e),
                "updatedTimestamp": SERVER_TIMESTAMP,
            }
        )
        return

    execution_ref.update(
        {
            "status": ExecutionStatus.COMPLETED.value,
            "responseBody": json.dumps(body),
            "responseStatusCode": status,
            "updatedTimestamp": SERVER_TIMESTAMP,
        }
    )


def _claim_execution(execution_ref) -> bool:
    """
    Moves a WAITING execution to PROCESSING inside a transaction.

    Returns False when another invocation already claimed it.
    """
    db = firestore.client()
    transaction = db.transaction()

    @firestore.transactional
    def _claim_transaction(transaction, doc_ref) -> bool:
        snapshot = doc_ref.get(transaction=transaction)
        if not snapshot.exists:
            return False
        if snapshot.to_dict().get("status") != ExecutionStatus.WAITING:
            return False
        transaction.update(
            doc_ref,
            {
                "status": ExecutionStatus.PROCESSING.value,
                "updatedTimestamp": SERVER_TIMESTAMP,
            },
        )
        return True

    return _claim_transaction(transaction, execution_ref)


def _enhance_function_id() -> str:
    # Same override the backend reads when it writes executions.
    return os.environ.get(ENHANCE_FUNCTION_ID_ENV_VAR) or ENHANCE_FUNCTION_ID
