"""Domain models for memory card transfers.

This package contains type-safe domain objects shared by device detection,
the mount guard and the transfer engine.
"""

from __future__ import annotations

from .models import (
    DeviceCandidate,
    MountEntry,
    ProgressMode,
    TransferDirection,
    TransferSession,
)


__all__ = [
    "DeviceCandidate",
    "MountEntry",
    "ProgressMode",
    "TransferDirection",
    "TransferSession",
]
