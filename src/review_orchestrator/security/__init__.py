"""
review-orchestrator — public security utilities

File: src/review_orchestrator/security/__init__.py

Purpose
- Path validation and output sanitization shared by the sandbox and scheduler.

Functional requirements
- Must fail closed: a rejected path is never read and a sanitized string never
  carries a recognised credential.
"""

from review_orchestrator.security.path_guard import PathGuard, PathViolation
from review_orchestrator.security.redaction import (
    HOME_PLACEHOLDER,
    REDACTION_MARKER,
    OutputSanitizer,
    escape_markup,
    is_sensitive_key,
    redact_for_logging,
    redact_text,
    scrub_text,
)

__all__ = [
    "HOME_PLACEHOLDER",
    "REDACTION_MARKER",
    "OutputSanitizer",
    "PathGuard",
    "PathViolation",
    "escape_markup",
    "is_sensitive_key",
    "redact_for_logging",
    "redact_text",
    "scrub_text",
]
