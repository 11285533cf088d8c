"""Amazon SQS implementation of QueueClient (boto3).

boto3 is blocking, so every call runs on a small dedicated thread pool; a 20 second
long poll then only parks one pool thread, never the event loop.
"""
from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Protocol

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from relay.app.constants import SERVICE_NAME
from relay.app.domain.models import QueueMessage
from relay.app.ports.queue_client import (
    QueueClientError,
    QueueDeleteError,
    QueueReceiveError,
)

_SQS_ERRORS = (BotoCoreError, ClientError)

# SQS rejects message attribute values over 256 KiB; reasons are kept well below that.
_MAX_REASON_LENGTH = 1024


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class SqsApi(Protocol):
    """The boto3 SQS client calls used here."""

    def get_queue_attributes(self, **kwargs: Any) -> Any: ...

    def receive_message(self, **kwargs: Any) -> Any: ...

    def delete_message(self, **kwargs: Any) -> Any: ...

    def send_message(self, **kwargs: Any) -> Any: ...


class SqsQueueClient:
    """QueueClient over one SQS queue, with an optional dead-letter queue for in-process dead-lettering."""

    def __init__(
        self,
        sqs_client: SqsApi,
        queue_url: str,
        *,
        dead_letter_queue_url: str = "",
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        if not queue_url:
            raise ValueError("queue_url is required for the sqs backend")
        self._client = sqs_client
        self._queue_url = queue_url
        self._dead_letter_queue_url = dead_letter_queue_url
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="sqs")
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def queue_url(self) -> str:
        return self._queue_url

    async def _call(self, fn: Callable[..., Any], **kwargs: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(fn, **kwargs))

    async def connect(self) -> None:
        try:
            await self._call(
                self._client.get_queue_attributes,
                QueueUrl=self._queue_url,
                AttributeNames=["QueueArn"],
            )
        except _SQS_ERRORS as exc:
            raise QueueClientError(f"sqs queue {self._queue_url} is not reachable: {exc}") from exc
        self._ready = True
        _log("sqs_connected", queue_url=self._queue_url)

    async def receive(self, max_messages: int, wait_time_seconds: int) -> list[QueueMessage]:
        try:
            response = await self._call(
                self._client.receive_message,
                QueueUrl=self._queue_url,
                MaxNumberOfMessages=max_messages,
                WaitTimeSeconds=wait_time_seconds,
                AttributeNames=["ApproximateReceiveCount"],
            )
        except _SQS_ERRORS as exc:
            raise QueueReceiveError(f"sqs receive failed for {self._queue_url}: {exc}") from exc
        return [self._to_queue_message(raw) for raw in response.get("Messages", [])]

    async def delete(self, receipt_handle: str) -> None:
        try:
            await self._call(
                self._client.delete_message,
                QueueUrl=self._queue_url,
                ReceiptHandle=receipt_handle,
            )
        except _SQS_ERRORS as exc:
            raise QueueDeleteError(f"sqs delete failed for {self._queue_url}: {exc}") from exc

    async def dead_letter(self, message: QueueMessage, reason: str) -> None:
        """Send a copy to the dead-letter queue, then delete the original.

        The two calls are not atomic: if the delete fails after the send, the original is
        redelivered and the dead-letter queue can hold duplicates (at-least-once).
        """
        if not self._dead_letter_queue_url:
            raise QueueClientError("no dead-letter queue configured")
        body = message.body.decode("utf-8", errors="replace") if isinstance(message.body, bytes) else message.body
        try:
            await self._call(
                self._client.send_message,
                QueueUrl=self._dead_letter_queue_url,
                MessageBody=body,
                MessageAttributes={
                    "source_message_id": {"DataType": "String", "StringValue": message.message_id},
                    "failure_reason": {
                        "DataType": "String",
                        "StringValue": reason[:_MAX_REASON_LENGTH] or "unknown",
                    },
                },
            )
        except _SQS_ERRORS as exc:
            raise QueueClientError(f"sqs dead-letter send failed: {exc}") from exc
        try:
            await self.delete(message.receipt_handle)
        except QueueDeleteError:
            # The copy is already on the dead-letter queue; the next delivery adds another.
            logger.warning(
                "message {} copied to dead-letter queue but delete failed; it may be dead-lettered again",
                message.message_id,
            )
            raise

    async def close(self) -> None:
        self._ready = False
        if self._owns_executor:
            self._executor.shutdown(wait=False)
        close = getattr(self._client, "close", None)
        if callable(close):
            close()

    @staticmethod
    def _to_queue_message(raw: dict[str, Any]) -> QueueMessage:
        attributes = raw.get("Attributes") or {}
        try:
            receive_count = int(attributes.get("ApproximateReceiveCount", 1))
        except (TypeError, ValueError):
            receive_count = 1
        return QueueMessage(
            message_id=raw.get("MessageId", ""),
            body=raw.get("Body", ""),
            receipt_handle=raw["ReceiptHandle"],
            receive_count=receive_count,
        )
