"""
review-orchestrator — hashing utilities

File: src/review_orchestrator/utils/hashing.py

Purpose
- Provide deterministic SHA-256 helpers for bytes, text, files, and JSON payloads.

Functional requirements
- File digests are read in bounded chunks and may refuse oversized files.
- JSON digests use a canonical encoding (sorted keys, compact separators).

Non-functional requirements
- Standard library only; behavior is cross-platform deterministic.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path

PathLike = str | os.PathLike[str]

_FILE_READ_CHUNK_BYTES = 1024 * 1024

__all__ = [
    "FileTooLargeError",
    "canonical_json",
    "sha256_bytes",
    "sha256_file",
    "sha256_json",
    "sha256_text",
]


class FileTooLargeError(OSError):
    """Raised when a file exceeds the size accepted for digesting."""


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding, errors="surrogatepass"))


def sha256_file(
    path: PathLike,
    *,
    chunk_size: int = _FILE_READ_CHUNK_BYTES,
    max_bytes: int | None = None,
) -> str:
    """Return SHA-256 hex digest for a file read in chunks.

    When ``max_bytes`` is set, files larger than the limit raise
    :class:`FileTooLargeError` instead of being read.
    """

    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    target = Path(path)
    if max_bytes is not None:
        size = target.stat().st_size
        if size > max_bytes:
            raise FileTooLargeError(f"{target!s} is {size} bytes; limit is {max_bytes}")
    digest = hashlib.sha256()
    with target.open("rb") as file_handle:
        while True:
            chunk = file_handle.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def canonical_json(value: object) -> str:
    """Serialize ``value`` with sorted keys and compact separators."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_json(value: object) -> str:
    """Return SHA-256 hex digest of the canonical JSON encoding of ``value``."""

    return sha256_text(canonical_json(value))
