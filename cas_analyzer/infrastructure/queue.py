"""RabbitMQ job queue built on aio-pika."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Protocol

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue, AbstractRobustConnection

from cas_analyzer.config import get_settings
from cas_analyzer.schemas import JobMessage

logger = logging.getLogger(__name__)


class Delivery(Protocol):
    body: bytes

    async def ack(self) -> None:
        ...

    async def reject(self, requeue: bool = False) -> None:
        ...


class DeliverySource(Protocol):
    """Stream of deliveries owned by a single worker."""

    def deliveries(self) -> AsyncIterator[Delivery]:
        ...

    async def close(self) -> None:
        ...


@dataclass(frozen=True)
class QueueStats:
    message_count: int
    consumer_count: int


class RabbitDeliverySource:
    """One channel with ``prefetch_count=1`` consuming the job queue."""

    def __init__(self, channel: AbstractChannel, queue: AbstractQueue) -> None:
        self._channel = channel
        self._queue = queue

    async def deliveries(self) -> AsyncIterator[AbstractIncomingMessage]:
        async with self._queue.iterator() as queue_iter:
            async for message in queue_iter:
                yield message

    async def close(self) -> None:
        if not self._channel.is_closed:
            await self._channel.close()


class RabbitJobQueue:
    """Publishes job messages and hands out per-worker consumers."""

    def __init__(self, url: str | None = None, queue_name: str | None = None) -> None:
        settings = get_settings()
        self._url = url or settings.rabbitmq_url
        self._queue_name = queue_name or settings.rabbitmq_queue
        self._connection: AbstractRobustConnection | None = None
        self._publish_channel: AbstractChannel | None = None

    @property
    def queue_name(self) -> str:
        return self._queue_name

    async def connect(self) -> None:
        if self._connection is not None and not self._connection.is_closed:
            return
        self._connection = await aio_pika.connect_robust(self._url)
        self._publish_channel = await self._connection.channel()
        await self._declare(self._publish_channel)
        logger.info("Connected to RabbitMQ queue %s", self._queue_name)

    async def _declare(self, channel: AbstractChannel) -> AbstractQueue:
        return await channel.declare_queue(self._queue_name, durable=True)

    def _require_connection(self) -> AbstractRobustConnection:
        if self._connection is None:
            raise RuntimeError("RabbitJobQueue.connect() must be awaited first")
        return self._connection

    async def publish(self, message: JobMessage) -> None:
        if self._publish_channel is None:
            raise RuntimeError("RabbitJobQueue.connect() must be awaited first")
        body = message.model_dump_json(by_alias=True).encode("utf-8")
        await self._publish_channel.default_exchange.publish(
            aio_pika.Message(
                body=body,
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
            ),
            routing_key=self._queue_name,
        )
        logger.info("Queued job %s", message.job_id)

    async def stats(self) -> QueueStats:
        connection = self._require_connection()
        channel = await connection.channel()
        try:
            queue = await channel.declare_queue(self._queue_name, durable=True, passive=True)
            result = queue.declaration_result
            return QueueStats(
                message_count=result.message_count or 0,
                consumer_count=result.consumer_count or 0,
            )
        finally:
            await channel.close()

    async def open_consumer(self) -> RabbitDeliverySource:
        connection = self._require_connection()
        channel = await connection.channel()
        await channel.set_qos(prefetch_count=1)
        queue = await self._declare(channel)
        return RabbitDeliverySource(channel, queue)

    async def close(self) -> None:
        if self._connection is not None and not self._connection.is_closed:
            await self._connection.close()
        self._connection = None
        self._publish_channel = None


__all__ = [
    "Delivery",
    "DeliverySource",
    "QueueStats",
    "RabbitDeliverySource",
    "RabbitJobQueue",
]
