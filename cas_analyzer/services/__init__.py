"""Application services used by the worker."""
