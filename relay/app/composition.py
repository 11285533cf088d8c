"""Relay composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any
from loguru import logger

from relay.app.application.message_processor import MessageProcessor
from relay.app.application.queue_poller import QueuePoller
from relay.app.config.settings import Settings
from relay.app.constants import SERVICE_NAME
from relay.app.domain.product_forwarder import ProductForwarder
from relay.app.infrastructure.http.factory import create_http_client
from relay.app.infrastructure.messaging.factory import create_queue_client
from relay.app.ports.http_client import AbstractHttpClient
from relay.app.ports.queue_client import QueueClient


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RelayDependencies:
    """Holds wired relay dependencies and their lifecycle."""

    def __init__(
        self,
        *,
        settings: Settings,
        queue_client: QueueClient | None = None,
        http_client: AbstractHttpClient | None = None,
    ) -> None:
        self._settings = settings
        self._queue_client = queue_client
        self._http_client = http_client
        self._processor: MessageProcessor | None = None
        self._poller: QueuePoller | None = None
        self._connected = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def queue_client(self) -> QueueClient:
        if self._queue_client is None:
            raise RuntimeError("queue_client is not initialized")
        return self._queue_client

    @property
    def processor(self) -> MessageProcessor:
        if self._processor is None:
            raise RuntimeError("processor is not initialized")
        return self._processor

    @property
    def poller(self) -> QueuePoller:
        if self._poller is None:
            raise RuntimeError("poller is not initialized")
        return self._poller

    async def connect(self) -> None:
        if self._queue_client is None:
            self._queue_client = create_queue_client(self._settings)
        await self._queue_client.connect()

        if self._http_client is None:
            self._http_client = create_http_client(self._settings)

        forwarder = ProductForwarder(
            self._http_client,
            self._settings.api_base_url,
            connect_timeout_seconds=self._settings.forward_connect_timeout_seconds,
            read_timeout_seconds=self._settings.forward_read_timeout_seconds,
        )
        self._processor = MessageProcessor(
            self._queue_client,
            forwarder,
            max_receive_count=self._settings.max_receive_count,
        )
        self._poller = QueuePoller(
            self._queue_client,
            self._processor,
            max_messages=self._settings.max_messages,
            wait_time_seconds=self._settings.wait_time_seconds,
            retry_delay_seconds=self._settings.retry_delay_seconds,
        )
        self._connected = True
        _log(
            "relay_dependencies_connected",
            queue_backend=self._settings.queue_backend,
            downstream=forwarder.endpoint,
        )

    async def close(self) -> None:
        if self._poller is not None:
            try:
                await self._poller.stop(timeout=self._settings.stop_timeout_seconds)
            except Exception as exc:
                logger.warning("poller stop failed: {}", exc)
            self._poller = None

        if self._queue_client is not None:
            try:
                await self._queue_client.close()
            except Exception as exc:
                logger.warning("queue client close failed: {}", exc)
            self._queue_client = None

        if self._http_client is not None:
            try:
                await self._http_client.close()
            except Exception as exc:
                logger.warning("http client close failed: {}", exc)
            self._http_client = None

        self._processor = None
        self._connected = False


def create_relay_dependencies(settings: Settings | None = None) -> RelayDependencies:
    return RelayDependencies(settings=settings or Settings())
