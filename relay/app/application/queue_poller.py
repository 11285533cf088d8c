"""
Queue poller: owns the background receive loop.

Lifecycle:
  start()/init() -> one poll task on the running event loop. Calling it again while
  running is a no-op. If the previous run is still finishing its in-flight message,
  the new run waits for it before its first receive.
  request_stop() -> clears the run flag and wakes a pending retry sleep. Thread-safe.
  stop()/shutdown() -> request_stop(), then wait for the loop to exit; cancel it if
  the optional timeout elapses.

Loop:
  receive(max_messages, wait_time_seconds) -> dispatch each message in receipt order,
  re-checking the run flag before each one. Messages are handled one at a time; no
  fan-out. Receive failures are logged and retried after a fixed delay with no
  attempt ceiling; only a stop ends the loop. Undispatched messages of an interrupted
  batch stay invisible until the queue redelivers them.
"""
from __future__ import annotations

import asyncio
import threading
from typing import Any

from loguru import logger

from relay.app.application.message_processor import MessageProcessor
from relay.app.constants import MAX_MESSAGES, RETRY_DELAY_SECONDS, WAIT_TIME_SECONDS
from relay.app.constants import SERVICE_NAME
from relay.app.domain.models import QueueMessage
from relay.app.ports.queue_client import QueueClient


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class QueuePoller:
    """Single background poll loop feeding a MessageProcessor."""

    def __init__(
        self,
        queue: QueueClient,
        processor: MessageProcessor,
        *,
        max_messages: int = MAX_MESSAGES,
        wait_time_seconds: int = WAIT_TIME_SECONDS,
        retry_delay_seconds: float = RETRY_DELAY_SECONDS,
    ) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        if wait_time_seconds < 0:
            raise ValueError("wait_time_seconds must be non-negative")
        if retry_delay_seconds < 0:
            raise ValueError("retry_delay_seconds must be non-negative")
        self._queue = queue
        self._processor = processor
        self._max_messages = int(max_messages)
        self._wait_time_seconds = int(wait_time_seconds)
        self._retry_delay_seconds = float(retry_delay_seconds)

        self._lock = threading.Lock()
        self._run_flag: threading.Event | None = None
        self._wakeup: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        run_flag = self._run_flag
        return run_flag is not None and run_flag.is_set()

    def start(self) -> None:
        """Launch the poll task on the running event loop. Must be called from that loop."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self.running:
                _log("poller_already_running")
                return
            previous = self._task if self._task is not None and not self._task.done() else None
            run_flag = threading.Event()
            run_flag.set()
            wakeup = asyncio.Event()
            self._run_flag = run_flag
            self._wakeup = wakeup
            self._loop = loop
            self._task = loop.create_task(
                self._poll_loop(run_flag, wakeup, previous),
                name="queue-poller",
            )
            self._task.add_done_callback(self._on_task_done)
        _log(
            "poller_started",
            max_messages=self._max_messages,
            wait_time_seconds=self._wait_time_seconds,
            retry_delay_seconds=self._retry_delay_seconds,
        )

    def init(self) -> None:
        self.start()

    def request_stop(self) -> bool:
        """Signal the loop to exit at its next check. Safe from any thread; returns False if not running."""
        with self._lock:
            run_flag, wakeup, loop = self._run_flag, self._wakeup, self._loop
            if run_flag is None or not run_flag.is_set():
                return False
            run_flag.clear()
        if loop is not None and wakeup is not None and not loop.is_closed():
            loop.call_soon_threadsafe(wakeup.set)
        _log("poller_stop_requested")
        return True

    async def stop(self, timeout: float | None = None) -> None:
        self.request_stop()
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("poll loop did not exit within {}s, cancelling it", timeout)
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        with self._lock:
            if self._task is task:
                self._task = None
        _log("poller_stopped")

    async def shutdown(self, timeout: float | None = None) -> None:
        await self.stop(timeout)

    async def _poll_loop(
        self,
        run_flag: threading.Event,
        wakeup: asyncio.Event,
        previous: asyncio.Task[None] | None,
    ) -> None:
        if previous is not None:
            await asyncio.wait({previous})

        while run_flag.is_set():
            try:
                messages = await self._queue.receive(self._max_messages, self._wait_time_seconds)
            except Exception as exc:
                logger.error(
                    "queue receive failed, retrying in {}s: {}",
                    self._retry_delay_seconds,
                    exc,
                )
                await self._sleep_before_retry(wakeup)
                continue

            if not messages:
                logger.debug("no messages received")
                # Yield only; the next long poll starts right away.
                await asyncio.sleep(0)
                continue

            _log("batch_received", count=len(messages))
            await self._dispatch_batch(messages, run_flag)

        _log("poll_loop_exited")

    async def _dispatch_batch(self, messages: list[QueueMessage], run_flag: threading.Event) -> None:
        for index, message in enumerate(messages):
            if not run_flag.is_set():
                _log("batch_interrupted", undispatched=len(messages) - index)
                return
            try:
                await self._processor.process(message)
            except Exception as exc:
                logger.exception("unexpected error processing message {}: {}", message.message_id, exc)

    async def _sleep_before_retry(self, wakeup: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(wakeup.wait(), timeout=self._retry_delay_seconds)
        except asyncio.TimeoutError:
            pass

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error("poll loop crashed: {}", exc)
