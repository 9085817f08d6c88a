"""
Exception classes for Multipart Transport.

Provides the error taxonomy surfaced by the resumable transport and the
storage client adapter.
"""

from typing import Any, Dict, Optional


class MultipartTransportError(Exception):
    """Base exception for all Multipart Transport errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class LocalFileNotFoundError(MultipartTransportError):
    """Raised when the local source file is missing."""

    def __init__(self, file_path: str) -> None:
        super().__init__(f"File not found: {file_path}", {"file_path": file_path})
        self.file_path = file_path


class RemoteNotFoundError(MultipartTransportError):
    """Raised when the remote object does not exist."""

    def __init__(self, bucket: str, key: str) -> None:
        super().__init__(
            f"Remote object not found: {bucket}/{key}", {"bucket": bucket, "key": key}
        )
        self.bucket = bucket
        self.key = key
        self.status_code = 404


class StorageClientError(MultipartTransportError):
    """Raised for any failure reported by the remote storage service."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        details = {"status_code": status_code} if status_code else {}
        super().__init__(message, details)
        self.status_code = status_code


class StallAbortError(MultipartTransportError):
    """Raised when a part stream makes no progress within the idle timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(
            f"Upload stalled: no progress for {timeout:g}s", {"idle_timeout": timeout}
        )
        self.timeout = timeout


class TransferPausedError(MultipartTransportError):
    """Raised when an upload is interrupted by an explicit pause."""

    def __init__(self, message: str = "Upload paused") -> None:
        super().__init__(message)


class PartLimitError(MultipartTransportError):
    """Raised when bytes remain but the service part budget is exhausted."""

    def __init__(self, max_parts: int, accepted_parts: int) -> None:
        super().__init__(
            "Part budget exhausted",
            {"max_parts": max_parts, "accepted_parts": accepted_parts},
        )
        self.max_parts = max_parts
        self.accepted_parts = accepted_parts


class ConfigurationError(MultipartTransportError):
    """Raised for configuration-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


def describe_error(err: Any) -> str:
    """Render any raised value as the message carried by an ``error`` event."""
    if isinstance(err, str):
        return err
    message = getattr(err, "message", None)
    if isinstance(message, str):
        return message
    if isinstance(err, BaseException) and str(err):
        return str(err)
    status_code = getattr(err, "status_code", None)
    if status_code is not None:
        return f"Server code = {status_code}"
    return "Unknown error"
