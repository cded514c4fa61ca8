"""Configuration package for the CAS Analyzer worker."""

from .settings import WorkerSettings, get_settings

__all__ = ["WorkerSettings", "get_settings"]
