"""Memory card detection by probing well-known block device names.

When no device is given on the command line, every plausible device node is
probed and the ones that look like removable memory cards are returned.

Device Detection:
    Candidate paths come from a BlockDeviceEnumerator. On Linux these are:
    - USB card readers: /dev/sdb .. /dev/sdy (never /dev/sda, which is the
      system disk in every setup this tool is used on)
    - SD host controllers: /dev/mmcblk0 .. /dev/mmcblk15

Filtering Logic:
    1. The node must open read-only (missing nodes and permission errors skip it)
    2. Seeking to the end must report a non-zero size
    3. The size must not exceed the card size threshold (32 GiB by default);
       anything larger is assumed to be a fixed disk

    The threshold is a guess, not a property of memory cards. It is therefore
    configurable through the max_card_size_bytes setting and --max-card-size.

Result Policy:
    - find_memory_card() returns the single candidate
    - no candidates raises DeviceNotFoundError
    - several candidates raise AmbiguousDeviceError listing all of them

Nothing is cached: every call rescans the live system.
"""

from __future__ import annotations

import os
from typing import Iterable, Optional

from mmccopy.config import settings
from mmccopy.domain import DeviceCandidate
from mmccopy.logging import LoggerFactory
from mmccopy.storage.exceptions import (
    AmbiguousDeviceError,
    DeviceNotFoundError,
    TooManyDevicesError,
)

log = LoggerFactory.for_device()

MAX_CANDIDATES = 64


class BlockDeviceEnumerator:
    """Base class for sources of device paths that might hold a memory card."""

    def candidate_paths(self) -> Iterable[str]:
        """Yield device paths to probe, in preference order."""
        raise NotImplementedError


class LinuxBlockDeviceEnumerator(BlockDeviceEnumerator):
    """USB disks /dev/sd[b-y] followed by SD controllers /dev/mmcblk[0-15]."""

    def __init__(self, dev_dir: str = "/dev", mmc_count: int = 16):
        self.dev_dir = dev_dir
        self.mmc_count = mmc_count

    def candidate_paths(self) -> Iterable[str]:
        for letter in "bcdefghijklmnopqrstuvwxy":
            yield f"{self.dev_dir}/sd{letter}"
        for index in range(self.mmc_count):
            yield f"{self.dev_dir}/mmcblk{index}"


class StaticBlockDeviceEnumerator(BlockDeviceEnumerator):
    """A fixed list of paths, for other platforms and tests."""

    def __init__(self, paths: Iterable[str]):
        self.paths = list(paths)

    def candidate_paths(self) -> Iterable[str]:
        return iter(self.paths)


def default_max_card_size() -> int:
    return settings.get_int("max_card_size_bytes", settings.DEFAULT_MAX_CARD_SIZE)


def device_size(path: str) -> int:
    """Size of a device in bytes, or 0 when it cannot be opened or measured."""
    try:
        with open(path, "rb", buffering=0) as device:
            return device.seek(0, os.SEEK_END)
    except OSError:
        return 0


def probe_device(path: str, max_size_bytes: int) -> Optional[DeviceCandidate]:
    """Return a candidate if ``path`` looks like a memory card."""
    size = device_size(path)
    if size <= 0:
        return None
    if size > max_size_bytes:
        log.debug(f"Skipping {path}: {size} bytes exceeds card limit {max_size_bytes}")
        return None
    return DeviceCandidate(path=path, size_bytes=size)


def scan_devices(
    enumerator: Optional[BlockDeviceEnumerator] = None,
    max_size_bytes: Optional[int] = None,
) -> list[DeviceCandidate]:
    """Probe every enumerated path and return those that pass the filters.

    Raises:
        TooManyDevicesError: If more than MAX_CANDIDATES devices qualify
    """
    enumerator = enumerator or LinuxBlockDeviceEnumerator()
    if max_size_bytes is None:
        max_size_bytes = default_max_card_size()

    candidates: list[DeviceCandidate] = []
    for path in enumerator.candidate_paths():
        candidate = probe_device(path, max_size_bytes)
        if candidate is None:
            continue
        if len(candidates) == MAX_CANDIDATES:
            raise TooManyDevicesError(MAX_CANDIDATES)
        log.debug(f"Possible memory card: {candidate.format_label()}")
        candidates.append(candidate)
    return candidates


def _not_found_hint() -> str:
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() != 0:
        return "Try running as root or specify -h for help"
    return ""


def find_memory_card(
    enumerator: Optional[BlockDeviceEnumerator] = None,
    max_size_bytes: Optional[int] = None,
) -> DeviceCandidate:
    """Find the one memory card attached to the system.

    Raises:
        DeviceNotFoundError: If nothing qualifies
        AmbiguousDeviceError: If more than one device qualifies
        TooManyDevicesError: If the scan exceeds MAX_CANDIDATES
    """
    candidates = scan_devices(enumerator, max_size_bytes)
    if not candidates:
        raise DeviceNotFoundError(_not_found_hint())
    if len(candidates) > 1:
        raise AmbiguousDeviceError(candidates)
    log.info(f"Found memory card {candidates[0].format_label()}")
    return candidates[0]
