"""Persistence of jobs, their lots and reports, plus the status cache."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Sequence

from sqlalchemy import Column, delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from cas_analyzer.db.session import SessionFactory
from cas_analyzer.domain import Lot
from cas_analyzer.errors import PersistenceFailure
from cas_analyzer.infrastructure.cache import JobStatusCache
from cas_analyzer.models import Job, JobLot, JobReport, JobStatus
from cas_analyzer.schemas import JobStatusView, PowerScoreSummary, Report

logger = logging.getLogger(__name__)

ERROR_MESSAGE_LIMIT = 2048


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _fit(value: str | None, column: Column) -> str | None:
    """Clip free text pulled from statements or hostnames to the column width."""

    if value is None:
        return None
    return value[: column.type.length]


def _status_view(job: Job) -> JobStatusView:
    return JobStatusView(
        id=job.id,
        status=job.status,
        file_name=job.file_name,
        processed_by=job.processed_by,
        created_at=job.created_at,
        completed_at=job.completed_at,
        error_message=job.error_message,
    )


class JobStore:
    """Job lifecycle transitions backed by SQLAlchemy.

    Every write runs in its own transaction and drops the cached status
    document for the job afterwards.
    """

    def __init__(self, session_factory: SessionFactory, cache: JobStatusCache | None = None) -> None:
        self._session_factory = session_factory
        self._cache = cache

    async def create_job(
        self,
        job_id: str,
        user_id: str,
        document_key: str,
        file_name: str,
    ) -> Job:
        job = Job(
            id=job_id,
            user_id=user_id,
            document_key=document_key,
            file_name=file_name,
            status=JobStatus.PENDING,
        )
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(job)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Failed to create job {job_id}: {exc}") from exc
        logger.info("Created job %s for user %s", job_id, user_id)
        return job

    async def get_job(self, job_id: str) -> Job | None:
        try:
            async with self._session_factory() as session:
                return await session.get(Job, job_id)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Failed to load job {job_id}: {exc}") from exc

    async def get_status(self, job_id: str) -> JobStatusView | None:
        if self._cache is not None:
            cached = await self._cache.get_json(job_id)
            if cached is not None:
                return JobStatusView.model_validate(cached)
        job = await self.get_job(job_id)
        if job is None:
            return None
        view = _status_view(job)
        if self._cache is not None:
            await self._cache.set_json(job_id, view.to_document())
        return view

    async def list_lots(self, job_id: str) -> list[JobLot]:
        stmt = select(JobLot).where(JobLot.job_id == job_id).order_by(JobLot.id)
        try:
            async with self._session_factory() as session:
                return list((await session.execute(stmt)).scalars().all())
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Failed to list lots for job {job_id}: {exc}") from exc

    async def get_report(self, job_id: str) -> JobReport | None:
        stmt = select(JobReport).where(JobReport.job_id == job_id)
        try:
            async with self._session_factory() as session:
                return await session.scalar(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Failed to load report for job {job_id}: {exc}") from exc

    async def mark_processing(self, job_id: str, worker_id: str) -> None:
        await self._transition(
            job_id,
            status=JobStatus.PROCESSING,
            processed_by=_fit(worker_id, Job.__table__.c.processed_by),
            error_message=None,
            completed_at=None,
        )
        logger.info("Job %s picked up by %s", job_id, worker_id)

    async def replace_lots(self, job_id: str, lots: Sequence[Lot]) -> int:
        """Swap the job's stored lots for ``lots`` atomically."""

        lot_columns = JobLot.__table__.c
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(delete(JobLot).where(JobLot.job_id == job_id))
                    session.add_all(
                        JobLot(
                            job_id=job_id,
                            user_id=lot.user_id,
                            fund_name=_fit(lot.fund_name, lot_columns.fund_name),
                            folio_number=_fit(lot.folio_number, lot_columns.folio_number),
                            transaction_date=lot.transaction_date,
                            transaction_type=_fit(lot.transaction_type, lot_columns.transaction_type),
                            units=lot.units,
                            nav=lot.nav,
                            amount=lot.amount,
                            is_long_term=lot.is_long_term,
                        )
                        for lot in lots
                    )
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Failed to store lots for job {job_id}: {exc}") from exc
        logger.info("Stored %d lots for job %s", len(lots), job_id)
        return len(lots)

    async def complete(
        self,
        job_id: str,
        user_id: str,
        report: Report,
        summary: PowerScoreSummary,
    ) -> None:
        """Store the report and mark the job COMPLETED in one transaction."""

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(delete(JobReport).where(JobReport.job_id == job_id))
                    session.add(
                        JobReport(
                            job_id=job_id,
                            user_id=user_id,
                            report_data=report.to_document(),
                            power_score_summary=summary.to_document(),
                            total_investment=Decimal(str(report.summary.total_investment)),
                        )
                    )
                    await session.execute(
                        update(Job)
                        .where(Job.id == job_id)
                        .values(
                            status=JobStatus.COMPLETED,
                            completed_at=_utcnow(),
                            error_message=None,
                        )
                    )
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Failed to store report for job {job_id}: {exc}") from exc
        finally:
            await self._invalidate(job_id)
        logger.info("Job %s completed", job_id)

    async def mark_failed(self, job_id: str, message: str) -> None:
        await self._transition(
            job_id,
            status=JobStatus.FAILED,
            error_message=message[:ERROR_MESSAGE_LIMIT],
            completed_at=_utcnow(),
        )
        logger.info("Job %s marked FAILED", job_id)

    async def _transition(self, job_id: str, **values: object) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        update(Job).where(Job.id == job_id).values(**values)
                    )
                    if result.rowcount == 0:
                        raise PersistenceFailure(f"Job {job_id} does not exist")
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"Failed to update job {job_id}: {exc}") from exc
        finally:
            await self._invalidate(job_id)

    async def _invalidate(self, job_id: str) -> None:
        if self._cache is not None:
            await self._cache.invalidate(job_id)


__all__ = ["JobStore", "ERROR_MESSAGE_LIMIT"]
