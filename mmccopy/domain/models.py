"""Minimal domain model for memory card transfers.

Candidates and mount entries are transient: they exist only while a device is
being chosen or unmounted. A TransferSession lives for one copy and is owned
by the caller that opened its handles.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO

from mmccopy.storage.sizes import pretty_size


# ==============================================================================
# Device Domain
# ==============================================================================


@dataclass(frozen=True)
class DeviceCandidate:
    """A block device that looks like a removable memory card."""

    path: str  # e.g., "/dev/sdc" or "/dev/mmcblk0"
    size_bytes: int  # Addressable size found by seeking to the end

    @property
    def name(self) -> str:
        """Device name without the /dev/ prefix (e.g., sdc)."""
        return self.path.rsplit("/", 1)[-1]

    def format_label(self) -> str:
        """Format a human-readable label, e.g. "/dev/sdc (7.40 GiB)"."""
        return f"{self.path} ({pretty_size(self.size_bytes)})"


@dataclass(frozen=True)
class MountEntry:
    """One line of the live mount table."""

    device_path: str  # e.g., "/dev/sdc1"
    mount_point: str  # e.g., "/media/user/boot"

    def is_backed_by(self, device_path: str) -> bool:
        """True when ``device_path`` is a literal prefix of this entry's device.

        A whole-disk path therefore also owns its partitions: /dev/sdc owns
        /dev/sdc1 and /dev/sdc2.
        """
        return self.device_path.startswith(device_path)


# ==============================================================================
# Transfer Domain
# ==============================================================================


class TransferDirection(Enum):
    """Which way the bytes flow relative to the memory card."""

    WRITE_TO_CARD = "write"
    READ_FROM_CARD = "read"

    @property
    def is_read(self) -> bool:
        return self is TransferDirection.READ_FROM_CARD


class ProgressMode(Enum):
    """How progress is reported on stdout."""

    HUMAN = "human"  # in-place percentage or byte count
    NUMERIC = "numeric"  # one bare percentage per line
    QUIET = "quiet"  # nothing


@dataclass
class TransferSession:
    """A single copy between an open source and destination.

    ``total_bytes`` is the capped length to copy; 0 means copy until the
    source is exhausted. ``offset`` is applied once to ``device_handle``
    before the first read or write and never changes afterwards.
    """

    source: BinaryIO | Any
    dest: BinaryIO | Any
    device_handle: BinaryIO | Any
    offset: int = 0
    total_bytes: int = 0
    bytes_done: int = 0

    @property
    def is_bounded(self) -> bool:
        return self.total_bytes != 0

    def remaining(self) -> int | None:
        """Bytes left to copy, or None for an unbounded session."""
        if not self.is_bounded:
            return None
        return self.total_bytes - self.bytes_done
