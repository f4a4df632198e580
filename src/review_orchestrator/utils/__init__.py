"""Utility exports for filesystem, hashing, and concurrency helpers."""

from review_orchestrator.utils.concurrency import (
    gather_settled,
    run_with_timeout,
)
from review_orchestrator.utils.fs import read_text_bounded
from review_orchestrator.utils.hashing import (
    FileTooLargeError,
    canonical_json,
    sha256_bytes,
    sha256_file,
    sha256_json,
    sha256_text,
)

__all__ = [
    "FileTooLargeError",
    "canonical_json",
    "gather_settled",
    "read_text_bounded",
    "run_with_timeout",
    "sha256_bytes",
    "sha256_file",
    "sha256_json",
    "sha256_text",
]
