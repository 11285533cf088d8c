"""In-memory queue for local runs and tests.

Models the parts of an at-least-once queue the relay relies on: long-poll receive,
a visibility timeout after which undeleted deliveries become receivable again with a
higher receive count, and per-delivery receipt handles that stop working once the
delivery is redelivered, deleted or dead-lettered. Single event loop only.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass

from relay.app.domain.models import QueueMessage
from relay.app.ports.queue_client import QueueDeleteError


@dataclass
class _Entry:
    message_id: str
    body: str | bytes
    receive_count: int = 0
    receipt_handle: str | None = None
    visible_at: float = 0.0


class InMemoryQueueClient:
    def __init__(self, *, visibility_timeout_seconds: float = 30.0) -> None:
        self._visibility_timeout = float(visibility_timeout_seconds)
        self._pending: deque[_Entry] = deque()
        self._inflight: dict[str, _Entry] = {}
        self._available = asyncio.Event()
        self._connected = False
        self.dead_letters: list[tuple[QueueMessage, str]] = []

    @property
    def ready(self) -> bool:
        return self._connected

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def connect(self) -> None:
        self._connected = True

    async def send(self, body: str | bytes) -> str:
        message_id = str(uuid.uuid4())
        self._pending.append(_Entry(message_id=message_id, body=body))
        self._available.set()
        return message_id

    async def receive(self, max_messages: int, wait_time_seconds: int) -> list[QueueMessage]:
        deadline = time.monotonic() + max(wait_time_seconds, 0)
        while True:
            self._requeue_expired()
            if self._pending:
                return self._take(max_messages)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return []
            self._available.clear()
            try:
                await asyncio.wait_for(self._available.wait(), timeout=min(remaining, self._next_expiry_in()))
            except asyncio.TimeoutError:
                pass

    async def delete(self, receipt_handle: str) -> None:
        if self._inflight.pop(receipt_handle, None) is None:
            raise QueueDeleteError(f"unknown or expired receipt handle: {receipt_handle}")

    async def dead_letter(self, message: QueueMessage, reason: str) -> None:
        if self._inflight.pop(message.receipt_handle, None) is None:
            raise QueueDeleteError(f"unknown or expired receipt handle: {message.receipt_handle}")
        self.dead_letters.append((message, reason))

    async def close(self) -> None:
        self._connected = False

    def _take(self, max_messages: int) -> list[QueueMessage]:
        now = time.monotonic()
        batch: list[QueueMessage] = []
        while self._pending and len(batch) < max_messages:
            entry = self._pending.popleft()
            entry.receive_count += 1
            entry.receipt_handle = str(uuid.uuid4())
            entry.visible_at = now + self._visibility_timeout
            self._inflight[entry.receipt_handle] = entry
            batch.append(
                QueueMessage(
                    message_id=entry.message_id,
                    body=entry.body,
                    receipt_handle=entry.receipt_handle,
                    receive_count=entry.receive_count,
                )
            )
        return batch

    def _requeue_expired(self) -> None:
        now = time.monotonic()
        expired = [handle for handle, entry in self._inflight.items() if entry.visible_at <= now]
        for handle in expired:
            entry = self._inflight.pop(handle)
            entry.receipt_handle = None
            self._pending.append(entry)

    def _next_expiry_in(self) -> float:
        if not self._inflight:
            return float("inf")
        soonest = min(entry.visible_at for entry in self._inflight.values())
        return max(soonest - time.monotonic(), 0.0)
