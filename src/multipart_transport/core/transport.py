"""Resumable multipart upload of a single local file."""

import logging
import threading
from collections import deque
from typing import Any, Iterable, List, Optional, Sequence

from .events import EventEmitter, EventHandler
from .exceptions import (
    LocalFileNotFoundError,
    MultipartTransportError,
    PartLimitError,
    RemoteNotFoundError,
    StallAbortError,
    TransferPausedError,
    describe_error,
)
from .file_source import CancellationToken, CancelReason, IdleWatchdog, LocalFileSource
from .hashing import md5_file
from .headers import (
    CONTENT_LENGTH,
    CONTENT_TYPE,
    META_FROM,
    META_MD5,
    META_MODIFIED_TIME,
    OCTET_STREAM,
    TRANSPORT_ORIGIN,
)
from .models import (
    ErrorEvent,
    FileStat,
    FinishEvent,
    PartDescriptor,
    PauseEvent,
    ProgressEvent,
    StartEvent,
    TransportConfig,
    TransportEvent,
    TransportSession,
    TransportState,
    UploadedPart,
)

logger = logging.getLogger(__name__)

DEFAULT_PART_SIZE = TransportConfig().part_size


def decompose(
    ordered_parts: Sequence[UploadedPart],
    max_parts: int,
    uploaded_size: int,
    total_size: int,
    part_size: int = DEFAULT_PART_SIZE,
) -> List[PartDescriptor]:
    """Plan the parts still to upload after ``uploaded_size`` bytes.

    The part size is raised above ``part_size`` when needed so that the
    whole file fits in the parts left under ``max_parts``. All generated
    parts but the last have the same size; numbering continues after the
    parts the remote already holds.
    """
    left_size = total_size - uploaded_size
    if left_size <= 0:
        return []

    part_budget = max_parts - len(ordered_parts)
    if part_budget <= 0:
        raise PartLimitError(max_parts, len(ordered_parts))

    min_part_size = -(-total_size // part_budget)
    average_part_size = max(part_size, min_part_size)

    remaining = []
    offset = uploaded_size
    part_number = len(ordered_parts) + 1
    while left_size > 0:
        size = min(left_size, average_part_size)
        remaining.append(
            PartDescriptor(part_number=part_number, byte_offset=offset, byte_length=size)
        )
        left_size -= size
        offset += size
        part_number += 1

    return remaining


class ResumableTransport:
    """Uploads one local file through a resumable multipart session.

    Parts are sent strictly one at a time. ``start`` blocks until the run
    reaches a terminal state and emits exactly one of ``finish``,
    ``pause`` or ``error``; ``pause`` may be called from any thread,
    including from inside an event handler.
    """

    def __init__(
        self,
        client: Any,
        session: TransportSession,
        config: Optional[TransportConfig] = None,
        file_source: Optional[Any] = None,
        events: Optional[EventEmitter] = None,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Remote storage client (e.g. ``S3StorageClient``)
            session: Upload coordinates and an optional upload id to reuse
            config: Transport tunables (defaults to ``TransportConfig()``)
            file_source: Local file access (defaults to ``LocalFileSource``)
            events: Event sink shared with other transports, if any
        """
        self.client = client
        self.session = session
        self.config = config or TransportConfig()
        self.file_source = file_source or LocalFileSource(self.config.read_chunk_size)
        self.events = events or EventEmitter()

        self._upload_session_id: Optional[str] = session.upload_session_id
        self._paused = True
        self._state = TransportState.IDLE
        self._uploaded_size = 0
        self._md5sum: Optional[str] = None
        self._md5_computed = False

        self._token: Optional[CancellationToken] = None
        self._stream = None
        self._terminal_emitted = False
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def upload_session_id(self) -> Optional[str]:
        return self._upload_session_id

    @property
    def uploaded_bytes(self) -> int:
        return self._uploaded_size

    def is_paused(self) -> bool:
        return self._paused

    def on(self, name: str, handler: EventHandler) -> EventHandler:
        """Subscribe to ``start``, ``progress``, ``pause``, ``finish`` or ``error``."""
        return self.events.on(name, handler)

    # Lifecycle notifications

    def _emit_terminal(self, event: TransportEvent, state: TransportState) -> bool:
        with self._lock:
            if self._terminal_emitted:
                return False
            self._terminal_emitted = True
            self._state = state
        self.events.emit(event)
        return True

    def _enter_state(self, state: TransportState, token: CancellationToken) -> None:
        """Move to a non-terminal state unless the run was already stopped."""
        with self._lock:
            token.raise_if_cancelled()
            if self._terminal_emitted:
                raise TransferPausedError()
            self._state = state

    def _check_finish(self) -> None:
        if self._paused:
            self._emit_terminal(PauseEvent(session_id=self.session_id), TransportState.PAUSED)
            return

        self._paused = True
        self._emit_terminal(
            FinishEvent(session_id=self.session_id, local_path=self.session.local_path),
            TransportState.FINISHED,
        )

    def _check_error(self, err: Any) -> None:
        if self._paused or isinstance(err, TransferPausedError):
            self._paused = True
            self._emit_terminal(PauseEvent(session_id=self.session_id), TransportState.PAUSED)
            return

        self._paused = True
        message = describe_error(err)
        logger.error(f"Upload of {self.session.local_path} failed: {message}")
        self._emit_terminal(
            ErrorEvent(session_id=self.session_id, error=message),
            TransportState.ERRORED,
        )

    # Consistency

    def _compute_content_hash(self, size: int) -> Optional[str]:
        """MD5 of the local file, or None when it is too large to hash."""
        if not self._md5_computed:
            if size < self.config.hash_size_limit:
                self._md5sum = md5_file(self.session.local_path)
            else:
                logger.info(
                    f"Skipping MD5 of {self.session.local_path}: "
                    f"{size} bytes exceeds {self.config.hash_size_limit}"
                )
            self._md5_computed = True
        return self._md5sum

    def _check_consistency(self, stat: FileStat) -> bool:
        """Return True if the remote object already represents the local file.

        Objects uploaded by other means are only compared by size. Objects
        produced by this transport are compared by MD5 when both sides have
        one, and by modification time otherwise.
        """
        try:
            meta = self.client.get_object_metadata(
                self.session.bucket, self.session.object_key
            )
        except RemoteNotFoundError:
            return False

        if meta.size != stat.size:
            return False

        if meta.origin == TRANSPORT_ORIGIN:
            md5sum = self._compute_content_hash(stat.size) if meta.md5 else None
            if md5sum is not None:
                return md5sum == meta.md5
            return meta.modified_time == stat.modified_time

        return True

    # Upload

    def _set_upload_session_id(self, upload_session_id: str) -> None:
        if self._upload_session_id is not None:
            raise MultipartTransportError(
                "Upload session id is already set",
                {"upload_session_id": self._upload_session_id},
            )
        self._upload_session_id = upload_session_id

    def _fetch_parts(self):
        return self.client.list_uploaded_parts(
            self.session.bucket, self.session.object_key, self._upload_session_id
        )

    def _invoke(self, part: PartDescriptor, token: CancellationToken) -> None:
        """Stream one part to the storage client and commit its bytes."""
        committed = self._uploaded_size

        def on_idle() -> None:
            token.cancel(CancelReason.STALL, StallAbortError(self.config.idle_timeout))

        watchdog = IdleWatchdog(self.config.idle_timeout, on_idle)
        high_water = 0

        def on_progress(bytes_written: int, rate: float) -> None:
            nonlocal high_water
            watchdog.kick()
            # A client retry rewinds the body; reported progress never goes back.
            high_water = max(high_water, bytes_written)
            self.events.emit(
                ProgressEvent(
                    session_id=self.session_id,
                    rate=rate,
                    bytes_written=committed + high_water,
                )
            )

        headers = {CONTENT_LENGTH: part.byte_length, CONTENT_TYPE: OCTET_STREAM}
        params = {"partNumber": part.part_number, "uploadId": self._upload_session_id}

        stream = self.file_source.open_range(
            self.session.local_path,
            part.byte_offset,
            part.byte_end,
            token=token,
            on_progress=on_progress,
        )
        with self._lock:
            self._stream = stream
        try:
            with watchdog:
                self.client.put_part(
                    self.session.bucket, self.session.object_key, stream, headers, params
                )
        except Exception as e:
            # The client may wrap or retry an aborted read, so the token decides
            # whether this was a pause, a stall or a genuine failure.
            if token.cancelled and e is not token.error:
                raise token.error from e
            raise
        finally:
            with self._lock:
                self._stream = None
            stream.close()

        self._uploaded_size += part.byte_length
        logger.info(
            f"Part {part.part_number}: uploaded {part.byte_length} bytes "
            f"({self._uploaded_size} bytes committed)"
        )

    def _drain(self, parts: Iterable[PartDescriptor], token: CancellationToken) -> None:
        self._enter_state(TransportState.UPLOADING, token)
        queue = deque(parts)
        while queue:
            token.raise_if_cancelled()
            self._invoke(queue.popleft(), token)

    def _complete_upload(self) -> None:
        listing = self._fetch_parts()
        stat = self.file_source.stat(self.session.local_path)
        if listing.uploaded_bytes != stat.size:
            raise MultipartTransportError(
                "Uploaded parts do not cover the local file",
                {"uploaded_bytes": listing.uploaded_bytes, "file_size": stat.size},
            )

        metadata = {
            META_FROM: TRANSPORT_ORIGIN,
            META_MODIFIED_TIME: str(stat.modified_time),
        }
        md5sum = self._compute_content_hash(stat.size)
        if md5sum:
            metadata[META_MD5] = md5sum

        self.client.complete_multipart_session(
            self.session.bucket,
            self.session.object_key,
            self._upload_session_id,
            sorted(listing.parts, key=lambda p: p.part_number),
            metadata,
        )

    def resume(self, remaining_parts: Iterable[PartDescriptor] = ()) -> None:
        """Upload ``remaining_parts`` in order, one at a time.

        Raises on the first failed part; already accepted parts stay on the
        remote session so a later ``start`` skips them. Completion is left to
        ``start``, so the transport is left paused when this returns.
        """
        if not self._upload_session_id:
            raise MultipartTransportError("Cannot resume without an upload session id")
        if not self._run_lock.acquire(blocking=False):
            raise MultipartTransportError("Transport is already uploading")
        try:
            with self._lock:
                self._paused = False
                self._terminal_emitted = False
                if self._token is None or self._token.cancelled:
                    self._token = CancellationToken()
                token = self._token
            self._drain(remaining_parts, token)
        finally:
            with self._lock:
                self._paused = True
                if not self._terminal_emitted:
                    self._state = TransportState.PAUSED
            self._run_lock.release()

    def pause(self) -> None:
        """Stop the upload; it must be restarted with ``start``."""
        with self._lock:
            if self._state.is_terminal:
                logger.debug(f"Ignoring pause of {self.session_id} in state {self._state.value}")
                return
            self._paused = True
            stream = self._stream
            token = self._token

        if token is not None:
            token.cancel(CancelReason.PAUSE)
        if stream is None:
            self._emit_terminal(PauseEvent(session_id=self.session_id), TransportState.PAUSED)

    def start(self) -> TransportState:
        """Check, upload and complete the file; returns the terminal state."""
        if not self._run_lock.acquire(blocking=False):
            logger.warning(f"Transport {self.session_id} is already running")
            return self._state
        try:
            self._run()
        finally:
            self._run_lock.release()
        return self._state

    def _run(self) -> None:
        with self._lock:
            self._paused = False
            self._terminal_emitted = False
            self._state = TransportState.CHECKING
            self._token = token = CancellationToken()

        local_path = self.session.local_path
        if not self.file_source.exists(local_path):
            return self._check_error(LocalFileNotFoundError(local_path))

        try:
            stat = self.file_source.stat(local_path)

            if self._check_consistency(stat):
                logger.info(
                    f"{self.session.bucket}/{self.session.object_key} already matches "
                    f"{local_path}, skipping upload"
                )
                return self._check_finish()
            token.raise_if_cancelled()

            if not self._upload_session_id:
                self._set_upload_session_id(
                    self.client.initiate_multipart_session(
                        self.session.bucket, self.session.object_key
                    )
                )
            else:
                logger.info(f"Resuming multipart upload {self._upload_session_id}")
            token.raise_if_cancelled()

            listing = self._fetch_parts()
            ordered_parts = sorted(listing.parts, key=lambda p: p.part_number)
            self._uploaded_size = listing.uploaded_bytes
            remaining_parts = decompose(
                ordered_parts,
                listing.max_parts,
                self._uploaded_size,
                stat.size,
                self.config.part_size,
            )
            logger.info(
                f"{len(ordered_parts)} parts already uploaded, "
                f"{len(remaining_parts)} remaining for {local_path}"
            )
            token.raise_if_cancelled()

            if remaining_parts:
                self.events.emit(
                    StartEvent(
                        session_id=self.session_id,
                        upload_session_id=self._upload_session_id,
                        local_path=local_path,
                    )
                )
                self._drain(remaining_parts, token)

            self._enter_state(TransportState.COMPLETING, token)
            self._complete_upload()
            self._check_finish()
        except Exception as e:
            self._check_error(e)
