"""Database model exports."""

from .job import Job, JobLot, JobReport, JobStatus

__all__ = ["Job", "JobLot", "JobReport", "JobStatus"]
