"""
RabbitMQ implementation of QueueClient (aio-pika).

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> CONNECTED -> QUEUE_DECLARED -> READY.
  On broker disconnect the robust connection reconnects by itself:
  READY -> RECONNECTING -> READY (reconnect callback).
  On shutdown: CLOSING -> close channel/connection -> CLOSED.

Receive/delete mapping:
  receive -> basic.get (no auto-ack) until max_messages or a message arrives; while the
  queue is empty it re-polls every poll_interval until wait_time_seconds elapse.
  receipt handle -> "<generation>:<delivery tag>"; delivery tags restart on every new
  channel, so the generation is bumped on reconnect and stale handles fail to delete.
  delete -> ack; dead_letter -> reject without requeue (routed by the queue's
  dead-letter exchange policy, if any). Unacked deliveries return to the queue when
  the channel closes.
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

import aio_pika
from aio_pika.abc import AbstractIncomingMessage
from aio_pika.exceptions import AMQPError, ChannelInvalidStateError
from loguru import logger

from relay.app.config.settings import Settings
from relay.app.constants import SERVICE_NAME
from relay.app.core.backoff import exponential_backoff
from relay.app.domain.models import QueueMessage
from relay.app.ports.queue_client import (
    QueueClientError,
    QueueDeleteError,
    QueueReceiveError,
)

_BROKER_ERRORS = (AMQPError, ChannelInvalidStateError, ConnectionError, asyncio.TimeoutError)


class ConsumerState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    QUEUE_DECLARED = "QUEUE_DECLARED"
    READY = "READY"
    RECONNECTING = "RECONNECTING"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQQueueClient:
    """QueueClient implementation"""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = ConsumerState.DISCONNECTED
        self._connection: aio_pika.abc.AbstractRobustConnection | None = None
        self._channel: aio_pika.abc.AbstractChannel | None = None
        self._queue: aio_pika.abc.AbstractQueue | None = None
        self._closing = False
        self._generation = 0
        self._inflight: dict[str, AbstractIncomingMessage] = {}

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state == ConsumerState.READY

    def _set_state(self, state: ConsumerState) -> None:
        self._state = state

    def _build_amqp_url(self) -> str:
        return (
            f"amqp://{self._settings.broker_user}:{self._settings.broker_password}"
            f"@{self._settings.broker_host}:{self._settings.broker_port}/"
        )

    def _register_callbacks(self, connection: Any) -> None:
        close_callbacks = getattr(connection, "close_callbacks", None)
        if close_callbacks is not None:
            close_callbacks.add(self._on_connection_closed)
        reconnect_callbacks = getattr(connection, "reconnect_callbacks", None)
        if reconnect_callbacks is not None:
            reconnect_callbacks.add(self._on_reconnected)

    def _on_connection_closed(self, *args: Any, **kwargs: Any) -> None:
        if self._closing:
            return
        self._set_state(ConsumerState.RECONNECTING)
        self._forget_inflight()
        _log("broker_disconnect_detected")

    def _on_reconnected(self, *args: Any, **kwargs: Any) -> None:
        if self._closing:
            return
        self._forget_inflight()
        self._set_state(ConsumerState.READY)
        _log("rmq_reconnected", generation=self._generation)

    def _forget_inflight(self) -> None:
        self._generation += 1
        self._inflight.clear()

    async def connect(self) -> None:
        self._set_state(ConsumerState.CONNECTING)
        _log("rmq_connecting")
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("rmq_connect_attempt", attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(self._build_amqp_url())
                break
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", attempt=attempt)
                    self._set_state(ConsumerState.DISCONNECTED)
                    raise QueueClientError(f"rabbitmq connect failed after {attempt} attempts") from e
        self._register_callbacks(self._connection)
        self._set_state(ConsumerState.CONNECTED)
        _log("rmq_connected")

        self._channel = await self._connection.channel()
        self._queue = await self._channel.declare_queue(self._settings.queue_name, durable=True)
        self._set_state(ConsumerState.QUEUE_DECLARED)
        self._set_state(ConsumerState.READY)

    async def receive(self, max_messages: int, wait_time_seconds: int) -> list[QueueMessage]:
        queue = self._queue
        if queue is None or not self.ready:
            raise QueueReceiveError(f"rabbitmq queue client not ready (state={self._state.value})")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + max(wait_time_seconds, 0)
        poll_interval = max(self._settings.broker_poll_interval_seconds, 0.01)
        batch: list[QueueMessage] = []
        try:
            while len(batch) < max_messages:
                incoming = await queue.get(no_ack=False, fail=False)
                if incoming is None:
                    remaining = deadline - loop.time()
                    if batch or remaining <= 0:
                        break
                    await asyncio.sleep(min(poll_interval, remaining))
                    continue
                batch.append(self._track(incoming))
        except _BROKER_ERRORS as exc:
            await self._release(batch)
            raise QueueReceiveError(f"rabbitmq receive failed for {self._settings.queue_name}: {exc}") from exc
        return batch

    def _track(self, incoming: AbstractIncomingMessage) -> QueueMessage:
        receipt_handle = f"{self._generation}:{incoming.delivery_tag}"
        self._inflight[receipt_handle] = incoming
        return QueueMessage(
            message_id=incoming.message_id or receipt_handle,
            body=incoming.body,
            receipt_handle=receipt_handle,
            receive_count=self._receive_count(incoming),
        )

    @staticmethod
    def _receive_count(incoming: AbstractIncomingMessage) -> int:
        # Quorum queues count previous deliveries in x-delivery-count; classic queues only flag redelivery.
        headers = incoming.headers or {}
        delivery_count = headers.get("x-delivery-count")
        if isinstance(delivery_count, int):
            return delivery_count + 1
        return 2 if incoming.redelivered else 1

    async def _release(self, batch: list[QueueMessage]) -> None:
        for message in batch:
            incoming = self._inflight.pop(message.receipt_handle, None)
            if incoming is None:
                continue
            try:
                await incoming.nack(requeue=True)
            except _BROKER_ERRORS as e:
                logger.warning("requeue of partially received message failed: {}", e)

    async def delete(self, receipt_handle: str) -> None:
        incoming = self._inflight.pop(receipt_handle, None)
        if incoming is None:
            raise QueueDeleteError(f"unknown or expired receipt handle: {receipt_handle}")
        try:
            await incoming.ack()
        except _BROKER_ERRORS as exc:
            raise QueueDeleteError(f"rabbitmq ack failed: {exc}") from exc

    async def dead_letter(self, message: QueueMessage, reason: str) -> None:
        incoming = self._inflight.pop(message.receipt_handle, None)
        if incoming is None:
            raise QueueDeleteError(f"unknown or expired receipt handle: {message.receipt_handle}")
        try:
            await incoming.reject(requeue=False)
        except _BROKER_ERRORS as exc:
            raise QueueClientError(f"rabbitmq reject failed: {exc}") from exc
        _log("rmq_rejected", message_id=message.message_id, reason=reason)

    async def _close_channel_and_connection(self) -> None:
        self._queue = None
        if self._channel:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            self._channel = None
        if self._connection:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None

    async def close(self) -> None:
        self._closing = True
        self._set_state(ConsumerState.CLOSING)
        _log("consumer_shutdown", unacked=len(self._inflight))
        self._inflight.clear()
        await self._close_channel_and_connection()
        self._set_state(ConsumerState.CLOSED)
