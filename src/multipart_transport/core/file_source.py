"""Local file access: stat, existence checks and bounded byte-range streams."""

import logging
import os
import threading
import time
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from .exceptions import MultipartTransportError, TransferPausedError
from .models import FileStat

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, float], None]


class CancelReason(str, Enum):
    """Why a cancellation token was tripped."""

    PAUSE = "pause"
    STALL = "stall"


class CancellationToken:
    """Thread-safe one-shot cancellation signal.

    The first ``cancel`` wins; later calls keep the original reason and
    error so an interruption is classified by what actually caused it.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[CancelReason] = None
        self._error: Optional[MultipartTransportError] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[CancelReason]:
        return self._reason

    @property
    def error(self) -> Optional[MultipartTransportError]:
        return self._error

    def cancel(
        self,
        reason: CancelReason,
        error: Optional[MultipartTransportError] = None,
    ) -> bool:
        """Trip the token. Returns False if it was already cancelled."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._error = error or TransferPausedError()
            self._event.set()
            return True

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise self._error


class IdleWatchdog:
    """Deadman timer that fires ``on_idle`` after ``timeout`` seconds without a kick.

    One daemon thread per armed watchdog waits on the deadline; ``kick`` only
    moves the deadline forward.
    """

    def __init__(self, timeout: float, on_idle: Callable[[], None]) -> None:
        self.timeout = timeout
        self.on_idle = on_idle
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._deadline = 0.0

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._deadline = time.monotonic() + self.timeout
            self._stopped = threading.Event()
            self._thread = threading.Thread(
                target=self._watch, args=(self._stopped,), daemon=True
            )
            self._thread.start()

    def kick(self) -> None:
        """Reset the deadline; called on every progress notification."""
        with self._lock:
            self._deadline = time.monotonic() + self.timeout

    def stop(self) -> None:
        with self._lock:
            self._stopped.set()
            self._thread = None

    def _watch(self, stopped: threading.Event) -> None:
        while True:
            with self._lock:
                remaining = self._deadline - time.monotonic()
            if remaining <= 0:
                break
            if stopped.wait(remaining):
                return

        with self._lock:
            if stopped.is_set():
                return
            stopped.set()
            self._thread = None
        logger.warning(f"No upload progress for {self.timeout:g}s, aborting stream")
        self.on_idle()

    def __enter__(self) -> "IdleWatchdog":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()


class RangeReader:
    """Read-only, seekable view over ``[start, end)`` of a file.

    Every read checks the cancellation token first and then reports
    ``(bytes_written, rate)`` to ``on_progress``, where ``bytes_written``
    is the position inside the range and ``rate`` is bytes per second
    since the reader was opened. Reads are served in slices of at most
    ``chunk_size`` bytes so progress stays fine-grained.
    """

    def __init__(
        self,
        path: str,
        start: int,
        end: int,
        token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
        chunk_size: int = 64 * 1024,
    ) -> None:
        if start < 0 or end < start:
            raise ValueError(f"Invalid byte range [{start}, {end})")
        self.path = path
        self.start = start
        self.end = end
        self.token = token or CancellationToken()
        self.on_progress = on_progress
        self.chunk_size = chunk_size
        self._file: BinaryIO = open(path, "rb")
        self._file.seek(start)
        self._position = 0
        self._opened_at = time.monotonic()

    def __len__(self) -> int:
        return self.end - self.start

    @property
    def closed(self) -> bool:
        return self._file.closed

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._position

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if whence == os.SEEK_SET:
            target = offset
        elif whence == os.SEEK_CUR:
            target = self._position + offset
        elif whence == os.SEEK_END:
            target = len(self) + offset
        else:
            raise ValueError(f"Invalid whence: {whence}")
        self._position = max(0, min(target, len(self)))
        self._file.seek(self.start + self._position)
        return self._position

    def read(self, size: Optional[int] = -1) -> bytes:
        if size is None or size < 0:
            chunks = []
            while True:
                chunk = self._read_chunk(self.chunk_size)
                if not chunk:
                    break
                chunks.append(chunk)
            return b"".join(chunks)
        return self._read_chunk(min(size, self.chunk_size))

    def _read_chunk(self, size: int) -> bytes:
        self.token.raise_if_cancelled()
        remaining = len(self) - self._position
        if remaining <= 0 or size == 0:
            return b""
        data = self._file.read(min(size, remaining))
        self._position += len(data)
        if data and self.on_progress is not None:
            elapsed = time.monotonic() - self._opened_at
            rate = self._position / elapsed if elapsed > 0 else 0.0
            self.on_progress(self._position, rate)
        return data

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "RangeReader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class LocalFileSource:
    """File Source backed by the local filesystem."""

    def __init__(self, chunk_size: int = 64 * 1024) -> None:
        self.chunk_size = chunk_size

    def exists(self, path: str) -> bool:
        return Path(path).is_file()

    def stat(self, path: str) -> FileStat:
        st = os.stat(path)
        return FileStat(size=st.st_size, modified_time=st.st_mtime_ns // 1_000_000)

    def open_range(
        self,
        path: str,
        start: int,
        end: int,
        token: Optional[CancellationToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RangeReader:
        """Open ``[start, end)`` of ``path`` as a progress-reporting stream."""
        return RangeReader(
            path,
            start,
            end,
            token=token,
            on_progress=on_progress,
            chunk_size=self.chunk_size,
        )
