"""
review-orchestrator — path validation

File: src/review_orchestrator/security/path_guard.py

Purpose
- Decide whether a caller-supplied path may be read from inside a declared root.

Functional requirements
- Reject traversal segments, home references, control characters, shell-significant
  symbols, and Windows reserved device names before touching the filesystem.
- Resolve both sides once and require the candidate to equal or sit below the root.
- Bound the length of the resolved path.

Non-functional requirements
- Deterministic; no retries and no partial acceptance.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Final

from review_orchestrator.constants import MAX_PATH_LENGTH

if TYPE_CHECKING:
    from collections.abc import Iterable

PathLike = str | os.PathLike[str]

_CONTROL_CHARS: Final[re.Pattern[str]] = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_DISALLOWED_SYMBOLS: Final[re.Pattern[str]] = re.compile(r"[<>|*?\"`$]")
_SEGMENT_SPLIT: Final[re.Pattern[str]] = re.compile(r"[\\/]+")
_RESERVED_NAMES: Final[re.Pattern[str]] = re.compile(
    r"^(?:con|prn|aux|nul|com[0-9]|lpt[0-9])$", re.IGNORECASE
)


class PathViolation(ValueError):
    """Raised when a candidate path fails validation."""

    def __init__(self, candidate: str, reason: str) -> None:
        self.candidate = candidate
        self.reason = reason
        super().__init__(f"path rejected ({reason}): {candidate!r}")


class PathGuard:
    """Validate candidate paths against a root directory."""

    __slots__ = ("_max_path_length",)

    def __init__(self, *, max_path_length: int = MAX_PATH_LENGTH) -> None:
        if max_path_length <= 0:
            raise ValueError("max_path_length must be > 0")
        self._max_path_length = max_path_length

    @property
    def max_path_length(self) -> int:
        return self._max_path_length

    def validate(self, root: PathLike, candidate: PathLike) -> Path:
        """Return the resolved absolute path of ``candidate`` or raise ``PathViolation``."""

        text = os.fspath(candidate)
        if not isinstance(text, str):
            raise PathViolation(repr(text), "path must be text")
        _check_lexical(text)

        resolved_root = Path(root).resolve()
        raw = Path(text)
        joined = raw if raw.is_absolute() else resolved_root / raw
        resolved = joined.resolve()

        if resolved != resolved_root and not resolved.is_relative_to(resolved_root):
            raise PathViolation(text, "outside root")
        if len(str(resolved)) > self._max_path_length:
            raise PathViolation(text, f"longer than {self._max_path_length} characters")
        return resolved

    def validate_many(self, root: PathLike, candidates: Iterable[PathLike]) -> tuple[Path, ...]:
        """Validate each candidate in order; the first violation aborts the batch."""

        return tuple(self.validate(root, candidate) for candidate in candidates)

    def is_allowed(self, root: PathLike, candidate: PathLike) -> bool:
        try:
            self.validate(root, candidate)
        except PathViolation:
            return False
        return True


def _check_lexical(text: str) -> None:
    if not text.strip():
        raise PathViolation(text, "empty path")
    if _CONTROL_CHARS.search(text):
        raise PathViolation(text, "control character")
    if _DISALLOWED_SYMBOLS.search(text):
        raise PathViolation(text, "disallowed character")
    if "~" in text:
        raise PathViolation(text, "home directory reference")

    for segment in _SEGMENT_SPLIT.split(text):
        if segment == "..":
            raise PathViolation(text, "parent directory traversal")
        stem = segment.split(".", 1)[0].rstrip(" ")
        if stem and _RESERVED_NAMES.match(stem):
            raise PathViolation(text, f"reserved device name {segment!r}")


__all__ = [
    "PathGuard",
    "PathViolation",
]
