from __future__ import annotations

from typing import Any

from loguru import logger

from relay.app.constants import SERVICE_NAME
from relay.app.domain.models import ProcessingOutcome, ProcessingResult, Product, QueueMessage
from relay.app.domain.product_decoder import ProductDecodeError, decode_product
from relay.app.domain.product_forwarder import ProductForwarder, ProductForwardError
from relay.app.ports.queue_client import QueueClient, QueueClientError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class MessageProcessor:
    """
    Decodes one delivery into a Product, forwards it downstream, then deletes the delivery.

    A delivery is deleted only after the forward succeeds. Decode and forward failures
    leave it on the queue for redelivery, unless max_receive_count > 0 and this delivery
    has reached it, in which case it is dead-lettered. A delete failure after a
    successful forward is logged only; the message may be forwarded again on redelivery.

    process() reports failures in the returned result (batch use); process_or_raise()
    raises them (direct callers). Both share _handle().
    """

    def __init__(
        self,
        queue: QueueClient,
        forwarder: ProductForwarder,
        *,
        max_receive_count: int = 0,
    ) -> None:
        self._queue = queue
        self._forwarder = forwarder
        self._max_receive_count = int(max_receive_count)

    async def process(self, message: QueueMessage) -> ProcessingResult:
        return await self._handle(message)

    async def process_or_raise(self, message: QueueMessage) -> Product:
        result = await self._handle(message)
        if result.error is not None:
            raise result.error
        return result.product

    async def _handle(self, message: QueueMessage) -> ProcessingResult:
        if message is None:
            raise ValueError("message cannot be None")

        message_id = message.message_id
        _log("message_received", message_id=message_id, receive_count=message.receive_count)

        try:
            product = decode_product(message.body)
        except ProductDecodeError as exc:
            logger.warning("message {} could not be decoded: {}", message_id, exc)
            return await self._failed(message, ProcessingOutcome.DECODE_FAILED, exc)

        try:
            created = await self._forwarder.create_product(product)
        except ProductForwardError as exc:
            logger.error("message {} could not be forwarded: {}", message_id, exc)
            return await self._failed(message, ProcessingOutcome.FORWARD_FAILED, exc)

        _log("product_forwarded", message_id=message_id, product_id=created.id)
        deleted = await self._acknowledge(message)
        return ProcessingResult(
            message_id=message_id,
            outcome=ProcessingOutcome.FORWARDED,
            product=created,
            deleted=deleted,
        )

    async def _acknowledge(self, message: QueueMessage) -> bool:
        try:
            await self._queue.delete(message.receipt_handle)
        except QueueClientError as exc:
            logger.warning(
                "message {} forwarded but delete failed (may be redelivered): {}",
                message.message_id,
                exc,
            )
            return False
        _log("message_deleted", message_id=message.message_id)
        return True

    async def _failed(
        self,
        message: QueueMessage,
        outcome: ProcessingOutcome,
        error: Exception,
    ) -> ProcessingResult:
        if self._should_dead_letter(message):
            try:
                await self._queue.dead_letter(message, f"{outcome.value}: {error}")
            except QueueClientError as exc:
                logger.error("message {} could not be dead-lettered: {}", message.message_id, exc)
            else:
                _log(
                    "message_dead_lettered",
                    message_id=message.message_id,
                    receive_count=message.receive_count,
                    reason=outcome.value,
                )
                return ProcessingResult(
                    message_id=message.message_id,
                    outcome=ProcessingOutcome.DEAD_LETTERED,
                    error=error,
                )

        _log(
            "message_left_for_redelivery",
            message_id=message.message_id,
            receive_count=message.receive_count,
            reason=outcome.value,
        )
        return ProcessingResult(message_id=message.message_id, outcome=outcome, error=error)

    def _should_dead_letter(self, message: QueueMessage) -> bool:
        return self._max_receive_count > 0 and message.receive_count >= self._max_receive_count
