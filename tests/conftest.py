"""
Pytest configuration and shared fixtures for mmccopy tests.

Block devices are simulated with regular files in tmp_path, and the live
mount table with a text file in /proc/mounts format.
"""

import os
from pathlib import Path
from typing import Callable, List
from unittest.mock import Mock

import pytest
from loguru import logger

from mmccopy.config import settings

MiB = 1024 * 1024


def pattern_bytes(size: int, seed: int = 0) -> bytes:
    """Deterministic content whose period (251) never lines up with a chunk."""
    block = bytes((index * 7 + seed) % 256 for index in range(251))
    return (block * (size // len(block) + 1))[:size]


# ==============================================================================
# Isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def silence_logging():
    """
    Auto-use fixture that removes loguru's default stderr sink.

    Tests that check stderr output would otherwise see log lines mixed in.
    """
    logger.remove()
    yield
    logger.remove()


@pytest.fixture(autouse=True)
def default_settings(tmp_path, monkeypatch):
    """Point settings at a temporary file and reset them to defaults."""
    monkeypatch.setattr(settings, "SETTINGS_PATH", tmp_path / "settings.json")
    settings.load_settings()
    yield
    settings.settings_store.values = dict(settings.DEFAULT_SETTINGS)


# ==============================================================================
# Device and Mount Table Fixtures
# ==============================================================================


@pytest.fixture
def make_device(tmp_path) -> Callable[..., Path]:
    """
    Factory fixture creating a file that stands in for a block device.

    Returns:
        Callable(name, size, fill=b"\\0") -> Path
    """

    def _make(name: str = "sdc", size: int = 4 * MiB, fill: bytes = b"\0") -> Path:
        path = tmp_path / name
        with open(path, "wb") as handle:
            handle.write(fill * size)
        return path

    return _make


@pytest.fixture
def make_image(tmp_path) -> Callable[..., Path]:
    """
    Factory fixture creating an image file with patterned content.

    Returns:
        Callable(size, name="image.img", seed=0) -> Path
    """

    def _make(size: int, name: str = "image.img", seed: int = 0) -> Path:
        path = tmp_path / name
        path.write_bytes(pattern_bytes(size, seed))
        return path

    return _make


@pytest.fixture
def mount_table(tmp_path) -> Callable[[List[str]], Path]:
    """
    Factory fixture writing a mount table in /proc/mounts format.

    Returns:
        Callable(lines) -> Path
    """

    def _write(lines: List[str]) -> Path:
        path = tmp_path / "mounts"
        path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def empty_mount_table(mount_table) -> Path:
    """Mount table with only system mounts unrelated to test devices."""
    return mount_table(
        [
            "/dev/sda2 / ext4 rw,relatime 0 0",
            "proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0",
            "/dev/sda1 /boot vfat rw,relatime 0 0",
        ]
    )


@pytest.fixture
def mock_unmount() -> Mock:
    """Stand-in for umount(8) that records the mount points it was given."""
    return Mock(return_value=None)


@pytest.fixture
def not_root(mocker):
    """Pretend the tests run as an unprivileged user."""
    if hasattr(os, "geteuid"):
        mocker.patch("os.geteuid", return_value=1000)
