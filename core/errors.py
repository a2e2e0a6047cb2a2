from __future__ import annotations

from typing import Optional


class NaldaSyncError(Exception):
    """Base class for all errors raised by the feed exporter."""


class ValidationError(NaldaSyncError):
    """Bad or missing configuration / request input; nothing was attempted."""


class ConnectivityError(NaldaSyncError):
    """FTP/SFTP failure. `kind` is one of unavailable, connect, auth, path, transfer."""

    def __init__(self, message: str, kind: str = "connect") -> None:
        super().__init__(message)
        self.kind = kind


class DataError(NaldaSyncError):
    """A sellable unit cannot be exported; counted as a skip, never fatal."""

    def __init__(self, reason: str, detail: Optional[str] = None) -> None:
        super().__init__(detail or reason)
        self.reason = reason


class ExportSystemError(NaldaSyncError):
    """Export directory or feed file cannot be created; aborts the run."""


class NotFoundError(NaldaSyncError):
    """Unknown/expired run id, or no feed file written yet."""
