"""Worker loop and pool supervision tests with an in-memory broker."""

from __future__ import annotations

import asyncio

import pytest

from cas_analyzer.models import JobStatus
from cas_analyzer.schemas import JobMessage
from cas_analyzer.worker.pool import JobWorker, WorkerPool


def _body(job_id: str) -> bytes:
    return JobMessage(job_id=job_id, user_id="user-1", document_key=f"uploads/{job_id}.pdf").model_dump_json(
        by_alias=True
    ).encode()


class StubDelivery:
    def __init__(self, body: bytes) -> None:
        self.body = body
        self.acked = False
        self.rejected: bool | None = None

    async def ack(self) -> None:
        self.acked = True

    async def reject(self, requeue: bool = False) -> None:
        self.rejected = requeue


class StubSource:
    def __init__(self, broker: asyncio.Queue) -> None:
        self._broker = broker
        self.closed = False

    async def deliveries(self):
        while True:
            yield await self._broker.get()

    async def close(self) -> None:
        self.closed = True


class RecordingProcessor:
    def __init__(self, *, fail_first: bool = False, release: asyncio.Event | None = None) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail_first = fail_first
        self.release = release
        self.started = asyncio.Event()

    async def process(self, message: JobMessage, worker_id: str) -> JobStatus:
        self.calls.append((message.job_id, worker_id))
        self.started.set()
        if self.fail_first and len(self.calls) == 1:
            raise RuntimeError("worker blew up")
        if self.release is not None:
            await self.release.wait()
        return JobStatus.COMPLETED


async def _eventually(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def _pool(broker: asyncio.Queue, processor, sources: list[StubSource], **kwargs) -> WorkerPool:
    async def factory() -> StubSource:
        source = StubSource(broker)
        sources.append(source)
        return source

    kwargs.setdefault("restart_delay", 0)
    kwargs.setdefault("grace_seconds", 1)
    return WorkerPool(kwargs.pop("size", 1), factory, processor, **kwargs)


@pytest.mark.asyncio
async def test_deliveries_are_acked_after_processing():
    broker: asyncio.Queue = asyncio.Queue()
    processor = RecordingProcessor()
    sources: list[StubSource] = []
    pool = _pool(broker, processor, sources, size=2)
    deliveries = [StubDelivery(_body(f"job-{n}")) for n in range(3)]
    for delivery in deliveries:
        broker.put_nowait(delivery)

    runner = asyncio.create_task(pool.run_until_stopped())
    await _eventually(lambda: all(delivery.acked for delivery in deliveries))
    pool.request_stop()
    await asyncio.wait_for(runner, timeout=2)

    assert sorted(job_id for job_id, _ in processor.calls) == ["job-0", "job-1", "job-2"]
    assert {worker_id for _, worker_id in processor.calls} <= {"worker-0", "worker-1"}
    assert all(source.closed for source in sources)


@pytest.mark.asyncio
async def test_undecodable_message_is_acked_and_skipped():
    broker: asyncio.Queue = asyncio.Queue()
    processor = RecordingProcessor()
    pool = _pool(broker, processor, [])
    poison = StubDelivery(b"{not json")
    broker.put_nowait(poison)

    runner = asyncio.create_task(pool.run_until_stopped())
    await _eventually(lambda: poison.acked)
    pool.request_stop()
    await asyncio.wait_for(runner, timeout=2)

    assert processor.calls == []


@pytest.mark.asyncio
async def test_crashed_worker_is_restarted_and_leaves_delivery_unacked():
    broker: asyncio.Queue = asyncio.Queue()
    processor = RecordingProcessor(fail_first=True)
    sources: list[StubSource] = []
    pool = _pool(broker, processor, sources)
    first, second = StubDelivery(_body("job-1")), StubDelivery(_body("job-2"))
    broker.put_nowait(first)
    broker.put_nowait(second)

    runner = asyncio.create_task(pool.run_until_stopped())
    await _eventually(lambda: second.acked)
    pool.request_stop()
    await asyncio.wait_for(runner, timeout=2)

    assert not first.acked
    assert pool.restarts == 1
    assert len(sources) == 2
    assert sources[0].closed
    assert pool.size == 1


@pytest.mark.asyncio
async def test_stop_waits_for_busy_worker_within_grace():
    broker: asyncio.Queue = asyncio.Queue()
    release = asyncio.Event()
    processor = RecordingProcessor(release=release)
    pool = _pool(broker, processor, [], grace_seconds=2)
    delivery = StubDelivery(_body("job-1"))
    broker.put_nowait(delivery)

    runner = asyncio.create_task(pool.run_until_stopped())
    await asyncio.wait_for(processor.started.wait(), timeout=2)
    pool.request_stop()
    await asyncio.sleep(0.05)
    assert not runner.done()
    release.set()
    await asyncio.wait_for(runner, timeout=2)

    assert delivery.acked


@pytest.mark.asyncio
async def test_busy_worker_is_cancelled_after_grace():
    broker: asyncio.Queue = asyncio.Queue()
    processor = RecordingProcessor(release=asyncio.Event())
    pool = _pool(broker, processor, [], grace_seconds=0.05)
    delivery = StubDelivery(_body("job-1"))
    broker.put_nowait(delivery)

    runner = asyncio.create_task(pool.run_until_stopped())
    await asyncio.wait_for(processor.started.wait(), timeout=2)
    pool.request_stop()
    await asyncio.wait_for(runner, timeout=2)

    assert not delivery.acked
    assert pool.active_workers == 0


@pytest.mark.asyncio
async def test_delivery_after_stop_is_requeued():
    broker: asyncio.Queue = asyncio.Queue()
    stop = asyncio.Event()
    stop.set()
    processor = RecordingProcessor()
    delivery = StubDelivery(_body("job-1"))
    broker.put_nowait(delivery)

    await JobWorker("worker-0", StubSource(broker), processor, stop).run()

    assert delivery.rejected is True
    assert not delivery.acked
    assert processor.calls == []


def test_pool_rejects_non_positive_size():
    with pytest.raises(ValueError):
        WorkerPool(0, lambda: None, RecordingProcessor())
