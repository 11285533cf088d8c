from __future__ import annotations

import asyncio
import json
import time
from collections import deque
from typing import Any, Callable

from relay.app.domain.models import Product, QueueMessage
from relay.app.domain.product_forwarder import ProductForwardError
from relay.app.ports.queue_client import QueueDeleteError


def product_body(
    name: str = "Widget",
    *,
    price: Any = 9.99,
    quantity: Any = 3,
    description: str | None = None,
) -> str:
    payload: dict[str, Any] = {"name": name, "price": price, "quantity": quantity}
    if description is not None:
        payload["description"] = description
    return json.dumps(payload)


def make_message(
    body: str | bytes,
    index: int = 1,
    *,
    receive_count: int = 1,
) -> QueueMessage:
    return QueueMessage(
        message_id=f"m-{index}",
        body=body,
        receipt_handle=f"r-{index}",
        receive_count=receive_count,
    )


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


class FakeQueueClient:
    """Implements QueueClient for tests.

    receive() replays scripted batches (an Exception entry is raised instead of returned);
    once the script is exhausted it raises receive_error if set, else idles and returns [].
    """

    def __init__(
        self,
        batches: list[Any] | None = None,
        *,
        receive_error: Exception | None = None,
        idle_delay: float = 0.005,
        fail_delete_for: set[str] | None = None,
        dead_letter_error: Exception | None = None,
    ) -> None:
        self._script: deque[Any] = deque(batches or [])
        self._receive_error = receive_error
        self._idle_delay = idle_delay
        self._fail_delete_for = fail_delete_for or set()
        self._dead_letter_error = dead_letter_error
        self._ready = False
        self.receive_calls: list[tuple[int, int]] = []
        self.receive_times: list[float] = []
        self.active_receives = 0
        self.max_active_receives = 0
        self.delete_calls: list[str] = []
        self.deleted: list[str] = []
        self.dead_lettered: list[tuple[QueueMessage, str]] = []
        self.closed = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def connect(self) -> None:
        self._ready = True

    async def receive(self, max_messages: int, wait_time_seconds: int) -> list[QueueMessage]:
        self.receive_calls.append((max_messages, wait_time_seconds))
        self.receive_times.append(time.monotonic())
        self.active_receives += 1
        self.max_active_receives = max(self.max_active_receives, self.active_receives)
        try:
            if self._script:
                item = self._script.popleft()
                await asyncio.sleep(0)
                if isinstance(item, Exception):
                    raise item
                return list(item)
            if self._receive_error is not None:
                await asyncio.sleep(0)
                raise self._receive_error
            await asyncio.sleep(self._idle_delay)
            return []
        finally:
            self.active_receives -= 1

    async def delete(self, receipt_handle: str) -> None:
        self.delete_calls.append(receipt_handle)
        if receipt_handle in self._fail_delete_for:
            raise QueueDeleteError(f"receipt expired: {receipt_handle}")
        self.deleted.append(receipt_handle)

    async def dead_letter(self, message: QueueMessage, reason: str) -> None:
        if self._dead_letter_error is not None:
            raise self._dead_letter_error
        self.dead_lettered.append((message, reason))

    async def close(self) -> None:
        self.closed = True
        self._ready = False


class FakeForwarder:
    """Stands in for ProductForwarder; assigns sequential ids, rejects configured names."""

    def __init__(
        self,
        *,
        reject_names: set[str] | None = None,
        on_call: Callable[[Product], None] | None = None,
    ) -> None:
        self._reject_names = reject_names or set()
        self._on_call = on_call
        self._next_id = 1
        self.calls: list[Product] = []

    @property
    def forwarded_names(self) -> list[str]:
        return [p.name for p in self.calls]

    async def create_product(self, product: Product) -> Product:
        self.calls.append(product)
        if self._on_call is not None:
            self._on_call(product)
        if product.name in self._reject_names:
            raise ProductForwardError(f"downstream rejected {product.name}")
        created = product.model_copy(update={"id": self._next_id})
        self._next_id += 1
        return created
