"""Port: receive/delete queue client. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Protocol

from relay.app.domain.models import QueueMessage


class QueueClientError(Exception):
    """Base for queue transport failures."""


class QueueReceiveError(QueueClientError):
    """Raised when a receive call fails. Transient from the poller's point of view."""


class QueueDeleteError(QueueClientError):
    """Raised when a delivery cannot be acknowledged (e.g. expired receipt handle)."""


class QueueClient(Protocol):
    """Transport-agnostic at-least-once queue. Poller and processor use this; adapters implement it."""

    @property
    def ready(self) -> bool: ...

    async def connect(self) -> None: ...

    async def receive(self, max_messages: int, wait_time_seconds: int) -> list[QueueMessage]:
        """Long-poll for up to max_messages; return an empty list when the wait expires."""
        ...

    async def delete(self, receipt_handle: str) -> None: ...

    async def dead_letter(self, message: QueueMessage, reason: str) -> None:
        """Move a delivery out of the main queue. Raises QueueClientError when unsupported or failed."""
        ...

    async def close(self) -> None: ...
