"""Memory card copy service tying detection, confirmation and transfer together.

This module decides how many bytes to copy, which device to use and in which
direction, then runs the transfer:

    validate options -> compute total -> find/confirm device
        -> unmount filesystems -> open handles -> seek -> copy

Everything that can be rejected without touching a device (conflicting
options, a missing size for card reads, numeric progress without a known
total) is rejected first.
"""

from __future__ import annotations

import os
import stat
import sys
from contextlib import ExitStack
from dataclasses import dataclass
from typing import BinaryIO, Callable, Optional, TextIO

from mmccopy.domain import (
    DeviceCandidate,
    ProgressMode,
    TransferDirection,
    TransferSession,
)
from mmccopy.logging import EventLogger, get_logger, operation_context
from mmccopy.storage.copy_engine import ProgressReporter, run_session
from mmccopy.storage.devices import BlockDeviceEnumerator, device_size, find_memory_card
from mmccopy.storage.exceptions import (
    ConfigurationError,
    ConfirmationDeclinedError,
    ConfirmationUnavailableError,
    DeviceOpenError,
)
from mmccopy.storage.mount import MOUNT_TABLE_PATH, unmount_all_under
from mmccopy.ui.confirmation import confirm_device

log = get_logger(source=__name__)

STDIO_PATH = "-"


@dataclass
class CopyRequest:
    """Everything the command line resolved for one copy."""

    device_path: Optional[str] = None
    data_path: str = STDIO_PATH
    offset: int = 0
    size: int = 0
    direction: TransferDirection = TransferDirection.WRITE_TO_CARD
    auto_accept: bool = False
    progress_mode: ProgressMode = ProgressMode.HUMAN
    max_card_size_bytes: Optional[int] = None
    mount_table: str = MOUNT_TABLE_PATH

    @property
    def uses_stdio(self) -> bool:
        return self.data_path == STDIO_PATH


def validate_request(request: CopyRequest) -> None:
    """Reject option combinations that can never succeed.

    Raises:
        ConfigurationError: On negative offsets or sizes, or a card read
            without an explicit size
    """
    if request.offset < 0:
        raise ConfigurationError(f"Offset must not be negative: {request.offset}")
    if request.size < 0:
        raise ConfigurationError(f"Size must not be negative: {request.size}")
    if request.direction.is_read and request.size == 0:
        raise ConfigurationError(
            "Specify the amount to copy (-s) when reading from memory card."
        )


def effective_progress_mode(request: CopyRequest) -> ProgressMode:
    # Card data written to stdout must not be interleaved with progress.
    if request.direction.is_read and request.uses_stdio:
        return ProgressMode.QUIET
    return request.progress_mode


def source_size(data_path: str) -> Optional[int]:
    """Size of a finite input, or None when it cannot be known in advance.

    Raises:
        DeviceOpenError: If the path does not exist or cannot be inspected
    """
    if data_path == STDIO_PATH:
        return None
    try:
        info = os.stat(data_path)
    except OSError as error:
        raise DeviceOpenError(data_path, error.strerror or str(error)) from error
    if stat.S_ISREG(info.st_mode):
        return info.st_size
    if stat.S_ISBLK(info.st_mode):
        return device_size(data_path) or None
    return None


def resolve_total(
    request: CopyRequest,
    known_source_size: Optional[int],
    progress_mode: Optional[ProgressMode] = None,
) -> int:
    """Number of bytes to copy; 0 means until the source is exhausted.

    Writing to the card is capped at the size of the input when it is known.
    Reading from the card uses the requested size.

    Raises:
        ConfigurationError: If numeric progress is requested without a total
    """
    progress_mode = progress_mode or effective_progress_mode(request)
    if request.direction.is_read or known_source_size is None:
        total = request.size
    elif request.size == 0 or known_source_size < request.size:
        total = known_source_size
    else:
        total = request.size

    if progress_mode is ProgressMode.NUMERIC and total == 0:
        raise ConfigurationError("Specify input size to report numeric progress")
    return total


def resolve_device(
    request: CopyRequest,
    confirm: Callable[[DeviceCandidate], bool] = confirm_device,
    enumerator: Optional[BlockDeviceEnumerator] = None,
) -> str:
    """Return the device to use, detecting and confirming it when needed.

    Raises:
        DeviceNotFoundError, AmbiguousDeviceError: From detection
        ConfirmationUnavailableError: If confirmation is needed but the
            console carries the image data
        ConfirmationDeclinedError: If the operator declines
    """
    if request.device_path:
        return request.device_path

    candidate = find_memory_card(enumerator, request.max_card_size_bytes)
    if request.auto_accept:
        return candidate.path
    if request.uses_stdio:
        raise ConfirmationUnavailableError(candidate.path)
    if not confirm(candidate):
        raise ConfirmationDeclinedError(candidate.path)
    return candidate.path


def _open_data(
    request: CopyRequest, stdin: BinaryIO, stdout: BinaryIO
) -> tuple[BinaryIO, bool]:
    """Open the image side of the copy; the flag says whether we own it."""
    if request.uses_stdio:
        return (stdout if request.direction.is_read else stdin), False
    try:
        if request.direction.is_read:
            fd = os.open(
                request.data_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644
            )
            return os.fdopen(fd, "wb", buffering=0), True
        return open(request.data_path, "rb", buffering=0), True
    except OSError as error:
        raise DeviceOpenError(request.data_path, error.strerror or str(error)) from error


def _open_device(device_path: str, direction: TransferDirection) -> BinaryIO:
    """Open the card read-only, or for synchronous writes."""
    if direction.is_read:
        flags, mode = os.O_RDONLY, "rb"
    else:
        flags, mode = os.O_WRONLY | getattr(os, "O_SYNC", 0), "wb"
    try:
        fd = os.open(device_path, flags)
    except OSError as error:
        raise DeviceOpenError(device_path, error.strerror or str(error)) from error
    return os.fdopen(fd, mode, buffering=0)


def copy_card(
    request: CopyRequest,
    *,
    confirm: Callable[[DeviceCandidate], bool] = confirm_device,
    unmount: Optional[Callable[[str], None]] = None,
    enumerator: Optional[BlockDeviceEnumerator] = None,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[BinaryIO] = None,
    progress_stream: Optional[TextIO] = None,
) -> int:
    """Copy an image to or from a memory card.

    Args:
        request: Resolved options
        confirm: Asks the operator about a detected card
        unmount: Unmounts one mount point (default: umount(8))
        enumerator: Device paths to probe (default: Linux naming)
        stdin: Binary stream used when writing from "-"
        stdout: Binary stream used when reading to "-"
        progress_stream: Text stream for progress (default: sys.stdout)

    Returns:
        Number of bytes copied

    Raises:
        StorageError: Any of its subclasses; all are fatal
    """
    validate_request(request)
    progress_mode = effective_progress_mode(request)
    known_size = None if request.direction.is_read else source_size(request.data_path)
    total = resolve_total(request, known_size, progress_mode)
    log.debug(f"Transfer length {total} bytes (input size {known_size})")
    device_path = resolve_device(request, confirm, enumerator)

    stdin = stdin if stdin is not None else sys.stdin.buffer
    stdout = stdout if stdout is not None else sys.stdout.buffer

    with operation_context(
        request.direction.value,
        device=device_path,
        offset=request.offset,
        total_bytes=total,
    ) as op_log:
        # Unmount before the device is opened so nothing is cached underneath us.
        unmount_all_under(device_path, request.mount_table, unmount)

        with ExitStack() as stack:
            data, owned = _open_data(request, stdin, stdout)
            if owned:
                stack.enter_context(data)
            device = stack.enter_context(_open_device(device_path, request.direction))

            if request.direction.is_read:
                session = TransferSession(
                    source=device,
                    dest=data,
                    device_handle=device,
                    offset=request.offset,
                    total_bytes=total,
                )
                source_name, target_name = device_path, request.data_path
            else:
                session = TransferSession(
                    source=data,
                    dest=device,
                    device_handle=device,
                    offset=request.offset,
                    total_bytes=total,
                )
                source_name, target_name = request.data_path, device_path

            EventLogger.log_transfer_started(op_log, source_name, target_name, total)
            run_session(session, ProgressReporter(progress_mode, progress_stream))
            if not owned:
                data.flush()

        op_log.info(f"Copied {session.bytes_done} bytes")
        return session.bytes_done
