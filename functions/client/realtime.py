"""
Realtime channels for execution status updates.

A channel is named `<collection>.<document id>`, e.g. `executions.<id>`.
Subscribers receive the execution document as a camelCase dict and get back
a callable that ends the subscription. Unsubscribing twice is a no-op.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Protocol

from shared.firebase_constants import EXECUTIONS_COLLECTION

logger = logging.getLogger(__name__)

RealtimeCallback = Callable[[dict], None]
Unsubscribe = Callable[[], None]


def execution_channel(execution_id: str) -> str:
    return f"{EXECUTIONS_COLLECTION}.{execution_id}"


class RealtimeClient(Protocol):
    """Push-based subscription to a channel."""

    def subscribe(self, channel: str, callback: RealtimeCallback) -> Unsubscribe:
        ...


class InMemoryRealtimeClient:
    """Process-local pub/sub used by the in-memory functions client and tests."""

    def __init__(self):
        self._subscribers: dict[str, list[RealtimeCallback]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, channel: str, callback: RealtimeCallback) -> Unsubscribe:
        with self._lock:
            self._subscribers[channel].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(channel, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(channel, None)

        return unsubscribe

    def publish(self, channel: str, payload: dict) -> int:
        """Delivers `payload` to every current subscriber; returns how many got it."""
        with self._lock:
            callbacks = list(self._subscribers.get(channel, []))
        for callback in callbacks:
            callback(payload)
        return len(callbacks)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._subscribers.get(channel, []))


class FirestoreRealtimeClient:
    """
    Maps channels onto Firestore document snapshot listeners.

    Snapshot callbacks run on the Firestore watch thread, not the caller's.
    """

    def __init__(self, db: Any):
        self.db = db

    def subscribe(self, channel: str, callback: RealtimeCallback) -> Unsubscribe:
        collection, _, document_id = channel.partition(".")
        if not collection or not document_id:
            raise ValueError(f"Invalid realtime channel: {channel}")
        doc_ref = self.db.collection(collection).document(document_id)

        def on_snapshot(doc_snapshots, changes, read_time) -> None:
            for snapshot in doc_snapshots:
                if snapshot.exists:
                    callback(snapshot.to_dict())

        watch = doc_ref.on_snapshot(on_snapshot)
        unsubscribed = threading.Event()

        def unsubscribe() -> None:
            if unsubscribed.is_set():
                return
            unsubscribed.set()
            watch.unsubscribe()
            logger.debug("Unsubscribed from %s", channel)

        return unsubscribe
