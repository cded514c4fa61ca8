"""End-to-end processing of one CAS job.

``JobProcessor.process`` walks a job from PROCESSING to COMPLETED or FAILED:
download, extract, parse, persist lots, score, rebalance and store the
report. It never raises for a job-level failure; the outcome is written to
the job row instead. Cancellation is let through untouched so an
interrupted job stays unacknowledged and is redelivered.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from opentelemetry import metrics, trace
from opentelemetry.trace import Status, StatusCode

from cas_analyzer.analytics import PowerScoreCalculator, calculate_rebalance
from cas_analyzer.errors import CasAnalyzerError
from cas_analyzer.infrastructure.storage import DocumentSource, download_with_retry
from cas_analyzer.models import JobStatus
from cas_analyzer.parsing import extract_text, parse_statement
from cas_analyzer.schemas import JobMessage
from cas_analyzer.services.jobs import JobStore
from cas_analyzer.services.reports import build_power_score_summary, build_report

logger = logging.getLogger(__name__)

tracer = trace.get_tracer(__name__)
meter = metrics.get_meter(__name__)
jobs_counter = meter.create_counter(
    "cas_jobs_processed",
    unit="1",
    description="CAS jobs that reached a terminal state, by status",
)


class JobProcessor:
    def __init__(
        self,
        store: JobStore,
        documents: DocumentSource,
        calculator: PowerScoreCalculator,
        *,
        download_attempts: int | None = None,
        download_delay_seconds: float | None = None,
    ) -> None:
        self._store = store
        self._documents = documents
        self._calculator = calculator
        self._download_attempts = download_attempts
        self._download_delay_seconds = download_delay_seconds

    async def process(self, message: JobMessage, worker_id: str) -> JobStatus | None:
        """Run ``message`` to a terminal state and return that state.

        Returns ``None`` when the job is unknown to the store.
        """

        with tracer.start_as_current_span("cas.process_job") as span:
            span.set_attribute("cas.job_id", message.job_id)
            span.set_attribute("cas.worker_id", worker_id)

            job = await self._store.get_job(message.job_id)
            if job is None:
                logger.warning("Job %s not found; dropping message", message.job_id)
                return None
            if job.status.is_terminal:
                logger.info("Job %s already %s; skipping", job.id, job.status.value)
                return job.status

            try:
                await self._store.mark_processing(message.job_id, worker_id)
                await self._run(message)
            except CasAnalyzerError as exc:
                logger.error("Job %s failed: %s", message.job_id, exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                return await self._fail(message.job_id, str(exc))
            except Exception as exc:
                logger.exception("Job %s failed unexpectedly", message.job_id)
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                return await self._fail(message.job_id, f"Unexpected error: {exc}")

            jobs_counter.add(1, {"status": JobStatus.COMPLETED.value})
            return JobStatus.COMPLETED

    async def _run(self, message: JobMessage) -> None:
        logger.info("Processing job %s for user %s", message.job_id, message.user_id)

        document = await download_with_retry(
            self._documents,
            message.document_key,
            attempts=self._download_attempts,
            delay_seconds=self._download_delay_seconds,
        )
        logger.info("Downloaded %d bytes for job %s", len(document), message.job_id)

        text = await asyncio.to_thread(extract_text, document, message.file_name)
        lots = await asyncio.to_thread(parse_statement, text, message.user_id, message.job_id)
        await self._store.replace_lots(message.job_id, lots)

        scores = await self._calculator.score(message.user_id, lots)
        plan = calculate_rebalance(lots)
        report = build_report(lots, scores, plan, datetime.now(timezone.utc))
        await self._store.complete(
            message.job_id,
            message.user_id,
            report,
            build_power_score_summary(scores),
        )

    async def _fail(self, job_id: str, reason: str) -> JobStatus:
        jobs_counter.add(1, {"status": JobStatus.FAILED.value})
        try:
            await self._store.mark_failed(job_id, reason)
        except Exception:
            logger.exception("Could not record failure for job %s", job_id)
        return JobStatus.FAILED


__all__ = ["JobProcessor"]
