"""
review-orchestrator — settings schema and validation.

File: src/review_orchestrator/config/schema.py

Purpose
- Define the runtime settings record, its defaults, and strict validation.

What should be included in this file
- ``ReviewSettings`` and its defaults.
- Validation of a flat mapping into settings with structured errors (field path + message).
- Redacted dict dump for logging.

Functional requirements
- Reject unknown fields, wrong types and out-of-range values.
- ``max_concurrency`` and ``max_iterations`` are bounded to 1..10.

Non-functional requirements
- Deterministic; no I/O.
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, fields
from typing import Any, Final, cast

from review_orchestrator.constants import (
    CACHE_BUCKET_SECONDS,
    CACHE_CAPACITY,
    CACHE_TTL_SECONDS,
    COMMAND_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_ITERATIONS,
    MAX_CONCURRENCY_LIMIT,
    MAX_ITERATIONS_LIMIT,
    MAX_MEMORY_BYTES,
    MAX_OUTPUT_BYTES,
    MAX_PATH_LENGTH,
)
from review_orchestrator.security.redaction import redact_for_logging

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_WORKER_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]{0,127}$")
_LAUNCHER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,63}$")


@dataclass(frozen=True, slots=True)
class ReviewSettings:
    """Effective runtime settings for one orchestrator instance."""

    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    cache_enabled: bool = True
    cache_ttl_seconds: float = CACHE_TTL_SECONDS
    cache_capacity: int = CACHE_CAPACITY
    cache_bucket_seconds: float = CACHE_BUCKET_SECONDS
    command_timeout_seconds: float = COMMAND_TIMEOUT_SECONDS
    max_output_bytes: int = MAX_OUTPUT_BYTES
    max_memory_bytes: int = MAX_MEMORY_BYTES
    max_path_length: int = MAX_PATH_LENGTH
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    escape_markup: bool = True
    launcher: str | None = None
    disabled_workers: tuple[str, ...] = ()
    log_level: str = "INFO"

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["disabled_workers"] = list(self.disabled_workers)
        return payload


SETTING_NAMES: Final[tuple[str, ...]] = tuple(item.name for item in fields(ReviewSettings))


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when settings validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid settings:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_settings() -> ReviewSettings:
    return ReviewSettings()


def validate_settings(payload: Mapping[str, object]) -> ReviewSettings:
    """Validate ``payload`` layered over defaults; raise ``ConfigValidationError``."""

    issues = _IssueCollector()
    for key in sorted(payload):
        if key not in SETTING_NAMES:
            issues.add(f"review.{key}", "unknown field")

    defaults = default_settings()

    def pick(name: str) -> object:
        return payload.get(name, getattr(defaults, name))

    values: dict[str, Any] = {
        "max_concurrency": _as_int(
            pick("max_concurrency"),
            "review.max_concurrency",
            issues,
            minimum=1,
            maximum=MAX_CONCURRENCY_LIMIT,
        ),
        "cache_enabled": _as_bool(pick("cache_enabled"), "review.cache_enabled", issues),
        "cache_ttl_seconds": _as_positive_float(
            pick("cache_ttl_seconds"), "review.cache_ttl_seconds", issues
        ),
        "cache_capacity": _as_int(
            pick("cache_capacity"), "review.cache_capacity", issues, minimum=1
        ),
        "cache_bucket_seconds": _as_positive_float(
            pick("cache_bucket_seconds"), "review.cache_bucket_seconds", issues
        ),
        "command_timeout_seconds": _as_positive_float(
            pick("command_timeout_seconds"), "review.command_timeout_seconds", issues
        ),
        "max_output_bytes": _as_int(
            pick("max_output_bytes"), "review.max_output_bytes", issues, minimum=1
        ),
        "max_memory_bytes": _as_int(
            pick("max_memory_bytes"), "review.max_memory_bytes", issues, minimum=1
        ),
        "max_path_length": _as_int(
            pick("max_path_length"), "review.max_path_length", issues, minimum=1
        ),
        "max_iterations": _as_int(
            pick("max_iterations"),
            "review.max_iterations",
            issues,
            minimum=1,
            maximum=MAX_ITERATIONS_LIMIT,
        ),
        "escape_markup": _as_bool(pick("escape_markup"), "review.escape_markup", issues),
        "launcher": _as_launcher(pick("launcher"), "review.launcher", issues),
        "disabled_workers": _as_worker_ids(
            pick("disabled_workers"), "review.disabled_workers", issues
        ),
        "log_level": _as_log_level(pick("log_level"), "review.log_level", issues),
    }

    if issues.has_issues:
        raise ConfigValidationError(issues.items())
    return ReviewSettings(**values)


def dump_redacted(settings: ReviewSettings) -> dict[str, Any]:
    """Return a redacted settings dict suitable for logging."""

    return cast("dict[str, Any]", redact_for_logging(settings.to_dict()))


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    if maximum is not None and value > maximum:
        issues.add(path, f"must be <= {maximum}")
        return None
    return value


def _as_positive_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    if parsed <= 0:
        issues.add(path, "must be > 0")
        return None
    return parsed


def _as_launcher(value: object, path: str, issues: _IssueCollector) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        return None
    if not _LAUNCHER_PATTERN.fullmatch(parsed):
        issues.add(path, "must be a bare executable name")
        return None
    return parsed


def _as_worker_ids(value: object, path: str, issues: _IssueCollector) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Sequence):
        issues.add(path, f"expected list of worker ids, got {type(value).__name__}")
        return ()
    out: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str) or not _WORKER_ID_PATTERN.fullmatch(item.strip()):
            issues.add(f"{path}[{index}]", "must be a worker id")
            continue
        out.append(item.strip())
    return tuple(dict.fromkeys(out))


def _as_log_level(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip().upper()
    if parsed not in LOG_LEVELS:
        issues.add(path, f"invalid value {value!r}; expected one of: {', '.join(LOG_LEVELS)}")
        return None
    return parsed


__all__ = [
    "LOG_LEVELS",
    "SETTING_NAMES",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ReviewSettings",
    "default_settings",
    "dump_redacted",
    "validate_settings",
]
