"""External market data providers."""

from .mfapi import MfApiClient

__all__ = ["MfApiClient"]
