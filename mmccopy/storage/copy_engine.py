"""Chunked copy between an open source and destination with progress reporting.

The engine reads at most one buffer (1 MiB) at a time and writes that chunk
completely before reading again. A single buffer is reused for the whole
transfer; there is no read-ahead.

Short writes are looped until the chunk is fully written. A write interrupted
by a signal is retried with the same remaining slice. Any other read or write
error aborts the transfer: bytes already written to a block device cannot be
rolled back.
"""

from __future__ import annotations

import os
import sys
import time
from typing import Optional, TextIO

from mmccopy.domain import ProgressMode, TransferSession
from mmccopy.logging import EventLogger, ThrottledLogger, get_logger
from mmccopy.storage.exceptions import (
    DeviceOpenError,
    TransferReadError,
    TransferWriteError,
)
from mmccopy.storage.sizes import ONE_MiB, calculate_progress, pretty_size

COPY_BUFFER_SIZE = ONE_MiB
PROGRESS_LOG_INTERVAL_SECONDS = 5.0

log = get_logger(source="transfer", tags=["transfer", "storage"])
chunk_log = get_logger(source="transfer", tags=["transfer", "progress"])


class ProgressReporter:
    """Writes progress to the output stream according to a ProgressMode.

    Numeric mode prints one bare percentage per report. Human mode rewrites a
    single line with the percentage, or with the byte count when the total is
    unknown, and ends it with a newline when the transfer finishes.
    """

    def __init__(
        self, mode: ProgressMode = ProgressMode.HUMAN, stream: Optional[TextIO] = None
    ):
        self.mode = mode
        self.stream = stream if stream is not None else sys.stdout
        self.last_reported: Optional[int] = None

    def report(self, done: int, total: int) -> None:
        self.last_reported = done
        if self.mode is ProgressMode.QUIET:
            return
        if self.mode is ProgressMode.NUMERIC:
            self.stream.write(f"{calculate_progress(done, total)}\n")
        elif total > 0:
            self.stream.write(f"\r{calculate_progress(done, total)}%")
        else:
            self.stream.write(f"\r{pretty_size(done)}     ")
        self.stream.flush()

    def finish(self, done: int, total: int) -> None:
        """Report the final count once and terminate the progress line."""
        if self.last_reported != done:
            self.report(done, total)
        # Numeric progress already ends every report with a newline.
        if self.mode is ProgressMode.HUMAN:
            self.stream.write("\n")
            self.stream.flush()


def _read_chunk(source, view: memoryview) -> int:
    readinto = getattr(source, "readinto", None)
    if readinto is not None:
        return readinto(view) or 0
    data = source.read(len(view))
    view[: len(data)] = data
    return len(data)


def _write_chunk(dest, chunk: memoryview, bytes_done: int) -> None:
    """Write all of ``chunk``, looping over short and interrupted writes."""
    cursor = 0
    while cursor < len(chunk):
        try:
            written = dest.write(chunk[cursor:])
        except InterruptedError:
            continue
        except OSError as error:
            raise TransferWriteError(
                bytes_done + cursor, error.strerror or str(error)
            ) from error
        if not written:
            raise TransferWriteError(bytes_done + cursor, "destination accepted no data")
        cursor += written


def copy_stream(
    source,
    dest,
    total_to_copy: int = 0,
    progress: Optional[ProgressReporter] = None,
    buffer_size: int = COPY_BUFFER_SIZE,
) -> int:
    """Copy from ``source`` to ``dest`` in chunks.

    Args:
        source: Object with readinto() or read()
        dest: Object whose write() returns the number of bytes accepted
        total_to_copy: Bytes to copy; 0 copies until the source is exhausted
        progress: Reporter called after every chunk (default: silent)
        buffer_size: Maximum bytes per chunk

    Returns:
        Number of bytes copied. Less than ``total_to_copy`` only when the
        source ran out first.

    Raises:
        TransferReadError: If reading fails
        TransferWriteError: If writing fails for any reason other than an
            interrupted call
    """
    if total_to_copy < 0:
        raise ValueError(f"total_to_copy must not be negative: {total_to_copy}")
    progress = progress or ProgressReporter(ProgressMode.QUIET)
    throttled = ThrottledLogger(log, interval_seconds=PROGRESS_LOG_INTERVAL_SECONDS)

    buffer = bytearray(buffer_size)
    view = memoryview(buffer)
    total_written = 0
    start_time = time.monotonic()

    progress.report(0, total_to_copy)
    while total_to_copy == 0 or total_written < total_to_copy:
        amount_to_read = buffer_size
        if total_to_copy != 0:
            amount_to_read = min(amount_to_read, total_to_copy - total_written)

        try:
            amount_read = _read_chunk(source, view[:amount_to_read])
        except OSError as error:
            raise TransferReadError(total_written, error.strerror or str(error)) from error
        if amount_read == 0:
            break

        _write_chunk(dest, view[:amount_read], total_written)
        total_written += amount_read

        chunk_log.trace(f"Copied chunk of {amount_read} bytes ({total_written} total)")
        progress.report(total_written, total_to_copy)
        throttled.debug(
            "progress",
            f"Copied {pretty_size(total_written)}",
            percent=calculate_progress(total_written, total_to_copy),
            bytes_copied=total_written,
        )

    progress.finish(total_written, total_to_copy)
    elapsed = time.monotonic() - start_time
    speed_mbps = (total_written / ONE_MiB) / elapsed if elapsed > 0 else 0.0
    EventLogger.log_transfer_progress(
        log,
        calculate_progress(total_written, total_to_copy),
        total_written,
        speed_mbps,
    )
    return total_written


def run_session(
    session: TransferSession,
    progress: Optional[ProgressReporter] = None,
    buffer_size: int = COPY_BUFFER_SIZE,
) -> int:
    """Seek the device to the session offset once, then copy.

    Raises:
        DeviceOpenError: If the device cannot be positioned
        TransferReadError, TransferWriteError: From copy_stream()
    """
    try:
        session.device_handle.seek(session.offset, os.SEEK_SET)
    except OSError as error:
        name = getattr(session.device_handle, "name", "device")
        raise DeviceOpenError(str(name), f"seek failed: {error.strerror or error}") from error

    session.bytes_done = copy_stream(
        session.source,
        session.dest,
        session.total_bytes,
        progress=progress,
        buffer_size=buffer_size,
    )
    return session.bytes_done
