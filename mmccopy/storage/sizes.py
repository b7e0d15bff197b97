"""Byte count formatting, progress percentages and size suffix parsing."""

import re

ONE_KiB = 1024
ONE_MiB = 1024 * ONE_KiB
ONE_GiB = 1024 * ONE_MiB

# Order matters for the usage listing only; lookups are exact matches.
SIZE_SUFFIXES = (
    ("b", 512),
    ("kB", 1000),
    ("K", ONE_KiB),
    ("KiB", ONE_KiB),
    ("MB", 1000 * 1000),
    ("M", ONE_MiB),
    ("MiB", ONE_MiB),
    ("GB", 1000 * 1000 * 1000),
    ("G", ONE_GiB),
    ("GiB", ONE_GiB),
)

_SIZE_PATTERN = re.compile(r"^\s*(\d+)(.*)$", re.DOTALL)


def pretty_size(amount):
    """Format a byte count the way progress and prompts display it.

    >>> pretty_size(3 * ONE_GiB // 2)
    '1.50 GiB'
    >>> pretty_size(1536)
    '1 KiB'
    """
    if amount >= ONE_GiB:
        return f"{amount / ONE_GiB:.2f} GiB"
    if amount >= ONE_MiB:
        return f"{amount / ONE_MiB:.2f} MiB"
    if amount >= ONE_KiB:
        return f"{amount // ONE_KiB} KiB"
    return f"{amount} bytes"


def calculate_progress(written, total):
    """Integer percentage complete, or 0 when the total is unknown."""
    if total > 0:
        return 100 * written // total
    return 0


def parse_size(text):
    """Parse a byte count with an optional suffix from SIZE_SUFFIXES.

    Raises:
        ValueError: If the text has no leading number or an unknown suffix
    """
    match = _SIZE_PATTERN.match(text)
    if not match:
        raise ValueError(f"Expecting number but got '{text}'")
    value = int(match.group(1))
    suffix = match.group(2)
    if not suffix:
        return value
    for name, multiple in SIZE_SUFFIXES:
        if name == suffix:
            return value * multiple
    raise ValueError(f"Unknown size multiplier '{suffix}'")
