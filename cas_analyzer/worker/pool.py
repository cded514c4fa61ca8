"""Supervised pool of queue consumers."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Protocol

from pydantic import ValidationError

from cas_analyzer.config import get_settings
from cas_analyzer.infrastructure.queue import Delivery, DeliverySource
from cas_analyzer.models import JobStatus
from cas_analyzer.schemas import JobMessage

logger = logging.getLogger(__name__)

SourceFactory = Callable[[], Awaitable[DeliverySource]]


class Processor(Protocol):
    async def process(self, message: JobMessage, worker_id: str) -> JobStatus | None:
        ...


class JobWorker:
    """Consume deliveries one at a time, acknowledging each after processing."""

    def __init__(
        self,
        worker_id: str,
        source: DeliverySource,
        processor: Processor,
        stop_event: asyncio.Event,
    ) -> None:
        self.worker_id = worker_id
        self._source = source
        self._processor = processor
        self._stop = stop_event
        self.busy = False
        self.handled = 0

    async def run(self) -> None:
        async for delivery in self._source.deliveries():
            if self._stop.is_set():
                await delivery.reject(requeue=True)
                break
            self.busy = True
            try:
                await self._handle(delivery)
            finally:
                self.busy = False
            if self._stop.is_set():
                break

    async def _handle(self, delivery: Delivery) -> None:
        try:
            message = JobMessage.model_validate_json(delivery.body)
        except ValidationError as exc:
            logger.error("%s discarding undecodable message: %s", self.worker_id, exc)
            await delivery.ack()
            return
        status = await self._processor.process(message, self.worker_id)
        await delivery.ack()
        self.handled += 1
        logger.info(
            "%s finished job %s (%s)",
            self.worker_id,
            message.job_id,
            status.value if status is not None else "unknown job",
        )


class WorkerPool:
    """Keep ``size`` workers running until a stop is requested.

    A worker that crashes or whose delivery stream ends is replaced after
    ``restart_delay`` seconds. On stop, idle workers are cancelled at once
    and busy ones get ``grace_seconds`` to finish their current job.
    """

    def __init__(
        self,
        size: int,
        source_factory: SourceFactory,
        processor: Processor,
        *,
        restart_delay: float | None = None,
        grace_seconds: float | None = None,
        worker_prefix: str = "worker",
    ) -> None:
        if size < 1:
            raise ValueError("Worker pool size must be at least 1")
        settings = get_settings()
        self.size = size
        self._source_factory = source_factory
        self._processor = processor
        self._restart_delay = (
            settings.worker_restart_delay_seconds if restart_delay is None else restart_delay
        )
        self._grace_seconds = (
            settings.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        )
        self._worker_prefix = worker_prefix
        self._stop = asyncio.Event()
        self._slots: Dict[int, asyncio.Task[None]] = {}
        self._workers: Dict[int, JobWorker] = {}
        self.restarts = 0

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    @property
    def active_workers(self) -> int:
        return sum(1 for task in self._slots.values() if not task.done())

    def request_stop(self) -> None:
        if not self._stop.is_set():
            logger.info("Stop requested; draining %d workers", len(self._slots))
            self._stop.set()

    async def run_until_stopped(self) -> None:
        self._slots = {
            index: asyncio.create_task(self._supervise(index), name=self._worker_id(index))
            for index in range(self.size)
        }
        logger.info("Started %d workers", self.size)
        await self._stop.wait()
        await self._drain()
        logger.info("All workers stopped")

    def _worker_id(self, index: int) -> str:
        return f"{self._worker_prefix}-{index}"

    async def _supervise(self, index: int) -> None:
        worker_id = self._worker_id(index)
        while not self._stop.is_set():
            source: DeliverySource | None = None
            try:
                source = await self._source_factory()
                worker = JobWorker(worker_id, source, self._processor, self._stop)
                self._workers[index] = worker
                await worker.run()
                if not self._stop.is_set():
                    logger.warning("%s stopped consuming; restarting", worker_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s crashed; restarting", worker_id)
            finally:
                self._workers.pop(index, None)
                if source is not None:
                    await self._close_source(worker_id, source)

            if self._stop.is_set():
                break
            self.restarts += 1
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._restart_delay)
            except asyncio.TimeoutError:
                pass

    @staticmethod
    async def _close_source(worker_id: str, source: DeliverySource) -> None:
        try:
            await source.close()
        except Exception:
            logger.warning("%s failed to close its consumer", worker_id, exc_info=True)

    async def _drain(self) -> None:
        busy: list[asyncio.Task[None]] = []
        for index, task in self._slots.items():
            worker = self._workers.get(index)
            if worker is not None and worker.busy:
                busy.append(task)
            else:
                task.cancel()

        if busy:
            logger.info("Waiting up to %.0fs for %d busy workers", self._grace_seconds, len(busy))
            _, pending = await asyncio.wait(busy, timeout=self._grace_seconds)
            for task in pending:
                logger.warning("%s did not finish in time; cancelling", task.get_name())
                task.cancel()

        results = await asyncio.gather(*self._slots.values(), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Worker ended with error during shutdown: %s", result)


__all__ = ["JobWorker", "WorkerPool", "Processor", "SourceFactory"]
