"""Worker process entrypoint: wire the collaborators and run the pool."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import socket

from cas_analyzer.analytics import PowerScoreCalculator
from cas_analyzer.config import get_settings
from cas_analyzer.core.logging import setup_logging
from cas_analyzer.core.telemetry import setup_telemetry, shutdown_telemetry
from cas_analyzer.db.init import init_database
from cas_analyzer.db.session import get_engine, get_session_factory
from cas_analyzer.infrastructure.cache import JobStatusCache
from cas_analyzer.infrastructure.queue import RabbitJobQueue
from cas_analyzer.infrastructure.storage import DocumentStorage
from cas_analyzer.providers import MfApiClient
from cas_analyzer.services.jobs import JobStore
from cas_analyzer.services.nav import NavService

from .pipeline import JobProcessor
from .pool import WorkerPool

logger = logging.getLogger(__name__)


def _install_signal_handlers(pool: WorkerPool) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, pool.request_stop)
        except NotImplementedError:
            # Windows event loops do not support signal handlers.
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(pool.request_stop))


async def run_worker(concurrency: int | None = None) -> None:
    settings = get_settings()
    engine = get_engine()
    setup_telemetry(settings, engine=engine)
    logger.info("Starting %s with settings %s", settings.app_name, settings.dict_for_logging())

    await init_database(engine)

    cache = JobStatusCache()
    nav_client = MfApiClient()
    queue = RabbitJobQueue()
    await queue.connect()

    processor = JobProcessor(
        JobStore(get_session_factory(), cache),
        DocumentStorage(),
        PowerScoreCalculator(NavService(nav_client)),
    )
    pool = WorkerPool(
        concurrency or settings.worker_concurrency,
        queue.open_consumer,
        processor,
        worker_prefix=f"{socket.gethostname()}-{os.getpid()}",
    )
    _install_signal_handlers(pool)

    try:
        await pool.run_until_stopped()
    finally:
        await queue.close()
        await nav_client.aclose()
        await cache.close()
        await engine.dispose()
        shutdown_telemetry()


def main() -> None:
    parser = argparse.ArgumentParser(description="Process queued CAS statements")
    parser.add_argument("--concurrency", type=int, default=None, help="Number of concurrent workers")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    setup_logging(args.log_level or get_settings().log_level)
    asyncio.run(run_worker(args.concurrency))


if __name__ == "__main__":
    main()
