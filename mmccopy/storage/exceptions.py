"""Custom exceptions for memory card operations.

Every condition in this module is fatal: callers inside the package never
catch these to continue, and the command line entry point turns them into a
message on stderr and a non-zero exit status.

Exception Hierarchy:
    StorageError (base)
        ├── ConfigurationError
        ├── DeviceError
        │   ├── DeviceNotFoundError
        │   ├── AmbiguousDeviceError
        │   └── TooManyDevicesError
        ├── ConfirmationError
        │   ├── ConfirmationUnavailableError
        │   └── ConfirmationDeclinedError
        ├── MountError
        │   ├── MountTableError
        │   ├── TooManyMountsError
        │   └── UnmountFailedError
        └── TransferError
            ├── DeviceOpenError
            ├── TransferReadError
            └── TransferWriteError

Usage:
    from mmccopy.storage.exceptions import AmbiguousDeviceError

    if len(candidates) > 1:
        raise AmbiguousDeviceError(candidates)
"""

from __future__ import annotations

from typing import Sequence


class StorageError(Exception):
    """Base exception for all memory card operations."""



class ConfigurationError(StorageError):
    """Conflicting or incomplete options, detected before any device I/O."""



class DeviceError(StorageError):
    """Base exception for device detection errors."""



class DeviceNotFoundError(DeviceError):
    """No memory card could be found automatically."""

    def __init__(self, hint: str = ""):
        self.hint = hint
        msg = "No memory cards found."
        if hint:
            msg = f"Memory card couldn't be found automatically.\n{hint}"
        super().__init__(msg)


class AmbiguousDeviceError(DeviceError):
    """More than one device looks like a memory card."""

    def __init__(self, candidates: Sequence):
        self.candidates = list(candidates)
        paths = ", ".join(candidate.path for candidate in self.candidates)
        super().__init__(f"Too many possible memory cards found: {paths}")


class TooManyDevicesError(DeviceError):
    """Detection found more candidates than the sanity limit allows."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"More than {limit} possible memory cards found")


class ConfirmationError(StorageError):
    """Base exception for device confirmation errors."""



class ConfirmationUnavailableError(ConfirmationError):
    """Cannot prompt because the console is carrying the image data."""

    def __init__(self, device_path: str):
        self.device_path = device_path
        super().__init__(
            f"Cannot confirm use of {device_path} when using stdin/stdout.\n"
            f"Rerun with -y if location is correct."
        )


class ConfirmationDeclinedError(ConfirmationError):
    """The operator did not accept the detected device."""

    def __init__(self, device_path: str):
        self.device_path = device_path
        super().__init__("aborted")


class MountError(StorageError):
    """Base exception for mount-related errors."""



class MountTableError(MountError):
    """The live mount table could not be read."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        msg = f"Cannot read mount table {path}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TooManyMountsError(MountError):
    """Device is mounted more times than the sanity limit allows."""

    def __init__(self, device_path: str, limit: int):
        self.device_path = device_path
        self.limit = limit
        super().__init__(f"Device {device_path} mounted too many times (limit {limit})")


class UnmountFailedError(MountError):
    """Failed to unmount a filesystem backed by the target device."""

    def __init__(self, mount_point: str, reason: str = ""):
        self.mount_point = mount_point
        self.reason = reason
        msg = f"umount {mount_point} failed"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TransferError(StorageError):
    """Base exception for transfer errors."""



class DeviceOpenError(TransferError):
    """A device or data path could not be opened or positioned."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        msg = str(path)
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TransferReadError(TransferError):
    """Reading from the source failed mid-transfer."""

    def __init__(self, bytes_done: int, reason: str = ""):
        self.bytes_done = bytes_done
        self.reason = reason
        super().__init__(f"read failed after {bytes_done} bytes: {reason}")


class TransferWriteError(TransferError):
    """Writing to the destination failed mid-transfer."""

    def __init__(self, bytes_done: int, reason: str = ""):
        self.bytes_done = bytes_done
        self.reason = reason
        super().__init__(f"write failed after {bytes_done} bytes: {reason}")
