"""Queue consumers that run CAS jobs end to end."""

from .pipeline import JobProcessor
from .pool import JobWorker, WorkerPool

__all__ = ["JobProcessor", "JobWorker", "WorkerPool"]
