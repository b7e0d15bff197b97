"""Console confirmation before using an automatically detected card."""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from mmccopy.domain import DeviceCandidate
from mmccopy.storage.sizes import pretty_size


def confirm_device(
    candidate: DeviceCandidate,
    stdin: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> bool:
    """Ask on stderr whether to use ``candidate``; only an answer starting
    with y or Y accepts it. End of input declines."""
    stdin = stdin if stdin is not None else sys.stdin
    stderr = stderr if stderr is not None else sys.stderr

    stderr.write(
        f"Use {pretty_size(candidate.size_bytes)} memory card found at "
        f"{candidate.path}? [y/N] "
    )
    stderr.flush()
    response = stdin.readline()
    return response[:1] in ("y", "Y")
