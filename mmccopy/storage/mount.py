"""Unmount every filesystem backed by a memory card before raw access.

Writing underneath a mounted filesystem risks silent corruption from cached
metadata, so every filesystem whose device path starts with the target device
path is unmounted before the device is opened. A whole-disk path also matches
its partitions (/dev/sdc owns /dev/sdc1).

Functions:
    - read_mount_table(): Parse the live mount table into MountEntry objects
    - find_mounts_under(): Select the entries backed by a device
    - unmount_mount_point(): Unmount one mount point with umount(8)
    - unmount_all_under(): Collect, then unmount, everything on a device

Any failure is fatal. The guard never reports partial success: either every
matching mount point is gone, or an exception stops the operation before the
device is opened.

Example:
    >>> unmounted = unmount_all_under("/dev/sdc")
    >>> print(unmounted)
    ['/media/user/boot', '/media/user/rootfs']
"""

import re
import subprocess
from typing import Callable, Iterable, Optional

from mmccopy.domain import MountEntry
from mmccopy.logging import EventLogger, LoggerFactory
from mmccopy.storage.exceptions import (
    MountTableError,
    TooManyMountsError,
    UnmountFailedError,
)

# Module logger
log = LoggerFactory.for_mount()

MOUNT_TABLE_PATH = "/proc/mounts"
MAX_MOUNTS_PER_DEVICE = 64

# The kernel escapes space, tab, newline and backslash as \ooo in /proc/mounts.
_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def _unescape(field: str) -> str:
    return _OCTAL_ESCAPE.sub(lambda match: chr(int(match.group(1), 8)), field)


def read_mount_table(path: str = MOUNT_TABLE_PATH) -> list[MountEntry]:
    """Read the live mount table.

    Args:
        path: Mount table to parse (default: /proc/mounts)

    Returns:
        One MountEntry per well-formed line, in table order

    Raises:
        MountTableError: If the table cannot be read
    """
    entries = []
    try:
        with open(path, "r", encoding="utf-8", errors="surrogateescape") as mounts_file:
            for line in mounts_file:
                parts = line.split()
                if len(parts) < 2:
                    continue
                entries.append(MountEntry(_unescape(parts[0]), _unescape(parts[1])))
    except OSError as error:
        raise MountTableError(path, error.strerror or str(error)) from error
    return entries


def find_mounts_under(
    device_path: str, entries: Iterable[MountEntry]
) -> list[MountEntry]:
    """Return the entries whose device field starts with ``device_path``.

    Raises:
        TooManyMountsError: If more than MAX_MOUNTS_PER_DEVICE entries match
    """
    matches = []
    for entry in entries:
        if not entry.is_backed_by(device_path):
            continue
        if len(matches) == MAX_MOUNTS_PER_DEVICE:
            raise TooManyMountsError(device_path, MAX_MOUNTS_PER_DEVICE)
        matches.append(entry)
    return matches


def unmount_mount_point(mount_point: str) -> None:
    """Unmount a single mount point.

    Raises:
        UnmountFailedError: If umount is missing or exits non-zero
    """
    try:
        subprocess.run(
            ["umount", mount_point], check=True, capture_output=True, text=True
        )
    except subprocess.CalledProcessError as e:
        raise UnmountFailedError(mount_point, (e.stderr or "").strip()) from e
    except FileNotFoundError as e:
        raise UnmountFailedError(mount_point, "umount not found") from e


def unmount_all_under(
    device_path: str,
    mount_table: str = MOUNT_TABLE_PATH,
    unmount: Optional[Callable[[str], None]] = None,
) -> list[str]:
    """Unmount every filesystem mounted from ``device_path`` or its partitions.

    The full list is collected before the first unmount so that the table is
    never re-read while it is changing.

    Args:
        device_path: Target device (e.g., '/dev/sdc')
        mount_table: Mount table to read (default: /proc/mounts)
        unmount: Callable unmounting one mount point (default: umount(8))

    Returns:
        The mount points that were unmounted, in table order

    Raises:
        MountTableError: If the table cannot be read
        TooManyMountsError: If the device is mounted implausibly often
        UnmountFailedError: On the first mount point that fails to unmount
    """
    unmount = unmount or unmount_mount_point
    owned = find_mounts_under(device_path, read_mount_table(mount_table))
    if not owned:
        log.debug(f"No mounted filesystems on {device_path}")
        return []

    log.debug(
        f"{device_path} has {len(owned)} mounted filesystem(s): "
        f"{', '.join(entry.mount_point for entry in owned)}"
    )
    unmounted = []
    for entry in owned:
        unmount(entry.mount_point)
        EventLogger.log_unmount(log, device_path, entry.mount_point)
        unmounted.append(entry.mount_point)
    return unmounted
