"""
Custom exceptions so callers can tell catalog, source and config failures apart.
"""

from __future__ import annotations


class CratedigError(Exception):
    """Base exception for all application-specific errors."""


class ConfigError(CratedigError):
    """Raised when the configuration file is missing or cannot be parsed."""


class PayloadError(CratedigError, ValueError):
    """Raised when an API payload does not have the expected shape."""


class CatalogError(CratedigError):
    """Raised when a MusicBrainz call fails after retries or is rejected."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class SourceError(CratedigError):
    """Raised when an slskd call fails or returns an unexpected status."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
