"""Relay entry points.

Hosted: ``uvicorn relay.app.main:app`` runs the poller beside the health probes; the
lifespan starts it after dependencies connect and stops it before they close.
Standalone: ``python -m relay.app.main`` runs the poller until SIGINT/SIGTERM.
"""
import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from loguru import logger

from relay.app.composition import RelayDependencies, create_relay_dependencies
from relay.app.config.settings import Settings
from relay.app.constants import SERVICE_NAME
from relay.app.core.logging import configure_logging
from relay.app.routers.health import health_router


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def create_app(dependencies: RelayDependencies | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        deps = dependencies or create_relay_dependencies()
        settings = deps.settings
        configure_logging(settings.log_level, serialize=settings.log_json)
        _log("relay_starting")
        try:
            await deps.connect()
            app.state.settings = settings
            app.state.dependencies = deps
            app.state.queue_client = deps.queue_client
            app.state.poller = deps.poller
            deps.poller.start()
            yield
        finally:
            _log("relay_stopping")
            await deps.close()

    application = FastAPI(
        title="Queue to Products API Relay",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.include_router(health_router)
    return application


app = create_app()


async def run_worker(settings: Settings | None = None) -> None:
    deps = create_relay_dependencies(settings)
    configure_logging(deps.settings.log_level, serialize=deps.settings.log_json)
    shutdown = asyncio.Event()

    def request_shutdown() -> None:
        if not shutdown.is_set():
            _log("shutdown_signal")
            shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            pass

    try:
        await deps.connect()
        deps.poller.init()
        _log("worker_started")
        await shutdown.wait()
        await deps.poller.shutdown(timeout=deps.settings.stop_timeout_seconds)
    finally:
        await deps.close()
        _log("worker_stopped")


def main() -> None:
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        _log("worker_interrupted")
    except Exception as e:
        logger.exception("worker failed: {}", e)
        raise


if __name__ == "__main__":
    main()
