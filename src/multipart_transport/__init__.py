"""
Multipart Transport - resumable multipart uploads to S3-compatible storage.

This package provides:
- A resumable transport that uploads one file part by part, skipping parts
  the remote already holds and objects that are already up to date
- Pause/resume with idle-stall detection
- An S3 storage client adapter built on boto3
- A CLI for uploading files from the terminal
"""

__version__ = "1.0.0"

from .core.events import EventEmitter
from .core.exceptions import (
    ConfigurationError,
    LocalFileNotFoundError,
    MultipartTransportError,
    PartLimitError,
    RemoteNotFoundError,
    StallAbortError,
    StorageClientError,
    TransferPausedError,
)
from .core.file_source import CancellationToken, LocalFileSource
from .core.models import (
    ObjectMetadata,
    PartDescriptor,
    S3Config,
    TransportConfig,
    TransportSession,
    TransportState,
)
from .core.s3_client import S3StorageClient
from .core.transport import ResumableTransport, decompose

__all__ = [
    # Core classes
    "ResumableTransport",
    "S3StorageClient",
    "LocalFileSource",
    "EventEmitter",
    "CancellationToken",
    "decompose",
    # Models
    "TransportSession",
    "TransportConfig",
    "TransportState",
    "S3Config",
    "PartDescriptor",
    "ObjectMetadata",
    # Exceptions
    "MultipartTransportError",
    "LocalFileNotFoundError",
    "RemoteNotFoundError",
    "StorageClientError",
    "StallAbortError",
    "TransferPausedError",
    "PartLimitError",
    "ConfigurationError",
    # Metadata
    "__version__",
]
