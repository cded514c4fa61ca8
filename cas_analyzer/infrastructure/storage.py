"""Object store access for uploaded statements."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_fixed

from cas_analyzer.config import WorkerSettings, get_settings
from cas_analyzer.errors import DownloadFailure

logger = logging.getLogger(__name__)


class DocumentSource(Protocol):
    async def fetch(self, key: str) -> bytes:
        ...


class DocumentStorage:
    """Reads statement uploads from an S3 compatible bucket."""

    def __init__(self, bucket: str | None = None, *, client: Any | None = None) -> None:
        settings = get_settings()
        self._bucket = bucket or settings.s3_bucket
        self._client = client or _build_s3_client(settings)

    async def fetch(self, key: str) -> bytes:
        try:
            return await asyncio.to_thread(self._get_object, key)
        except (BotoCoreError, ClientError) as exc:
            raise DownloadFailure(f"Failed to download s3://{self._bucket}/{key}: {exc}") from exc

    def _get_object(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self._bucket, Key=key)
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()


def _build_s3_client(settings: WorkerSettings) -> Any:
    return boto3.client(
        "s3",
        region_name=settings.aws_region,
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
    )


async def download_with_retry(
    source: DocumentSource,
    key: str,
    *,
    attempts: int | None = None,
    delay_seconds: float | None = None,
) -> bytes:
    """Fetch ``key``, retrying a fixed number of times before giving up."""

    settings = get_settings()
    attempts = attempts or settings.download_max_attempts
    delay_seconds = settings.download_retry_delay_seconds if delay_seconds is None else delay_seconds

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_fixed(delay_seconds),
            retry=retry_if_exception_type(DownloadFailure),
        ):
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.warning("Retrying download of %s (attempt %d/%d)", key, number, attempts)
                return await source.fetch(key)
    except RetryError as exc:
        cause = exc.last_attempt.exception()
        raise DownloadFailure(
            f"Failed to download document after {attempts} attempts: {cause}"
        ) from cause
    raise DownloadFailure(f"Failed to download document {key}")


__all__ = ["DocumentSource", "DocumentStorage", "download_with_retry"]
