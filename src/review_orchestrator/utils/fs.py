"""
review-orchestrator — filesystem utilities

File: src/review_orchestrator/utils/fs.py

Purpose
- Provide bounded reads for sandboxed file access.

Functional requirements
- Bounded reads never load more than the configured byte limit.

Non-functional requirements
- Standard library only and cross-platform behavior where feasible.
"""

from __future__ import annotations

import os
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "read_text_bounded",
]


def read_text_bounded(path: PathLike, *, max_bytes: int, encoding: str = "utf-8") -> str:
    """Read at most ``max_bytes`` from ``path`` and decode with replacement."""

    if max_bytes <= 0:
        raise ValueError("max_bytes must be > 0")
    with Path(path).open("rb") as file_handle:
        data = file_handle.read(max_bytes)
    return data.decode(encoding, errors="replace")
