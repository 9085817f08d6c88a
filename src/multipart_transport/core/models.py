"""
Pydantic models for Multipart Transport.

These models describe upload sessions, part plans, remote object metadata,
configuration and the lifecycle events delivered to subscribers.
"""

from enum import Enum
from typing import ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MiB = 1024 * 1024
GiB = 1024 * MiB


class TransportState(str, Enum):
    """Lifecycle states of a resumable transport."""

    IDLE = "idle"
    CHECKING = "checking"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    FINISHED = "finished"
    PAUSED = "paused"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (
            TransportState.FINISHED,
            TransportState.PAUSED,
            TransportState.ERRORED,
        )


class TransportSession(BaseModel):
    """Identifies one resumable upload of a local file."""

    id: str = Field(..., min_length=1, description="Caller-supplied correlation token")
    bucket: str = Field(..., min_length=1, description="Destination bucket")
    object_key: str = Field(..., min_length=1, description="Destination object key")
    local_path: str = Field(..., min_length=1, description="Source file path")
    upload_session_id: Optional[str] = Field(
        None, description="Remote multipart upload id, absent until initiated"
    )


class PartDescriptor(BaseModel):
    """A contiguous byte range of the source file uploaded as one part."""

    model_config = ConfigDict(frozen=True)

    part_number: int = Field(..., ge=1)
    byte_offset: int = Field(..., ge=0)
    byte_length: int = Field(..., gt=0)

    @property
    def byte_end(self) -> int:
        """Exclusive end offset of the range."""
        return self.byte_offset + self.byte_length


class UploadedPart(BaseModel):
    """A part already accepted by the remote multipart session."""

    part_number: int = Field(..., ge=1)
    size: int = Field(..., ge=0)
    etag: Optional[str] = None


class PartListing(BaseModel):
    """Parts accepted so far plus the service cap on part count."""

    parts: List[UploadedPart] = Field(default_factory=list)
    max_parts: int = Field(..., ge=1)

    @property
    def uploaded_bytes(self) -> int:
        return sum(part.size for part in self.parts)


class ObjectMetadata(BaseModel):
    """Remote object metadata consulted by the consistency check."""

    size: int = Field(..., ge=0)
    origin: Optional[str] = None
    modified_time: Optional[int] = Field(
        None, description="Source modification time in epoch milliseconds"
    )
    md5: Optional[str] = None


class FileStat(BaseModel):
    """Local file size and modification time (epoch milliseconds)."""

    size: int = Field(..., ge=0)
    modified_time: int


class TransportConfig(BaseModel):
    """Tunables for the resumable transport."""

    part_size: int = Field(20 * MiB, ge=1, description="Baseline part size in bytes")
    idle_timeout: float = Field(
        10.0, gt=0, description="Seconds without progress before a stream is aborted"
    )
    hash_size_limit: int = Field(
        4 * GiB, ge=0, description="Files at or above this size are not hashed"
    )
    read_chunk_size: int = Field(
        64 * 1024, ge=1, description="Largest read served per progress notification"
    )


class S3Config(BaseModel):
    """S3 configuration model."""

    access_key: Optional[str] = Field(None, description="S3 access key")
    secret_key: Optional[str] = Field(None, description="S3 secret key")
    region: Optional[str] = Field(None, description="S3 region")
    endpoint_url: Optional[str] = Field(None, description="S3 endpoint URL")
    max_retries: int = Field(5, ge=1, le=20, description="botocore retry attempts")
    max_parts: int = Field(
        10000, ge=1, description="Maximum number of parts in one multipart upload"
    )

    @field_validator("endpoint_url")
    @classmethod
    def validate_endpoint_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate endpoint URL scheme."""
        if v is not None and not v.startswith(("http://", "https://")):
            raise ValueError("Endpoint URL must start with http:// or https://")
        return v


# Lifecycle events
class TransportEvent(BaseModel):
    """Base class for lifecycle notifications."""

    name: ClassVar[str] = ""

    session_id: str


class StartEvent(TransportEvent):
    name: ClassVar[str] = "start"

    upload_session_id: str
    local_path: str


class ProgressEvent(TransportEvent):
    name: ClassVar[str] = "progress"

    rate: float = Field(..., description="Current part throughput in bytes per second")
    bytes_written: int = Field(..., description="Bytes committed plus in-flight bytes")


class PauseEvent(TransportEvent):
    name: ClassVar[str] = "pause"


class FinishEvent(TransportEvent):
    name: ClassVar[str] = "finish"

    local_path: str


class ErrorEvent(TransportEvent):
    name: ClassVar[str] = "error"

    error: str
