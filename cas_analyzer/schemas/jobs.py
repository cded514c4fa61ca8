"""Job status view cached for the API layer."""

from __future__ import annotations

from datetime import datetime

from cas_analyzer.models import JobStatus

from .base import CamelModel


class JobStatusView(CamelModel):
    id: str
    status: JobStatus
    file_name: str
    processed_by: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None


__all__ = ["JobStatusView"]
