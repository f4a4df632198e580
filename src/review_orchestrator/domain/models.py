"""Dataclass domain models for review workers, issues, and execution results."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum, StrEnum
from typing import NoReturn, TypeVar

from review_orchestrator.constants import PRIORITY_TIERS, WORKER_TIMEOUT_SECONDS

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 8192
_MAX_COLLECTION = 256

_WORKER_ID_RE = re.compile(r"^[a-z0-9][a-z0-9._-]{0,127}$")
_MODEL_TAG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]{0,127}$")
_SUBCOMMAND_RE = re.compile(r"^[a-z][a-z0-9-]{0,63}$")


class PriorityTier(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Execution order position; ``critical`` runs first."""
        return PRIORITY_TIERS.index(self.value)


class WorkerCategory(StrEnum):
    SECURITY = "security"
    BUG = "bug"
    QUALITY = "quality"
    DOCUMENTATION = "documentation"
    GENERAL = "general"


class IssueLevel(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUGGESTION = "suggestion"


class SandboxState(StrEnum):
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Worker:
    """Immutable description of one external analysis worker."""

    id: str
    display_name: str
    category: WorkerCategory
    priority_tier: PriorityTier
    model_tag: str = "sonnet"
    error_type_taxonomy: tuple[str, ...] = ()
    can_auto_fix: bool = False
    allowed_subcommands: tuple[str, ...] = ("git",)
    timeout_seconds: float = WORKER_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _as_pattern(self.id, "Worker.id", _WORKER_ID_RE))
        object.__setattr__(
            self, "display_name", _as_str(self.display_name, "Worker.display_name", max_len=256)
        )
        object.__setattr__(
            self, "category", _as_enum(WorkerCategory, self.category, "Worker.category")
        )
        object.__setattr__(
            self,
            "priority_tier",
            _as_enum(PriorityTier, self.priority_tier, "Worker.priority_tier"),
        )
        object.__setattr__(
            self, "model_tag", _as_pattern(self.model_tag, "Worker.model_tag", _MODEL_TAG_RE)
        )
        object.__setattr__(
            self,
            "error_type_taxonomy",
            tuple(
                item.lower()
                for item in _as_str_tuple(
                    self.error_type_taxonomy,
                    "Worker.error_type_taxonomy",
                    allow_empty=True,
                    max_len=128,
                )
            ),
        )
        object.__setattr__(
            self, "can_auto_fix", _as_bool(self.can_auto_fix, "Worker.can_auto_fix")
        )
        subcommands = _as_str_tuple(
            self.allowed_subcommands,
            "Worker.allowed_subcommands",
            allow_empty=True,
            max_len=64,
        )
        for index, item in enumerate(subcommands):
            _as_pattern(item, f"Worker.allowed_subcommands[{index}]", _SUBCOMMAND_RE)
        object.__setattr__(self, "allowed_subcommands", subcommands)
        timeout = _as_float(self.timeout_seconds, "Worker.timeout_seconds")
        if timeout <= 0:
            _fail("Worker.timeout_seconds", "must be > 0")
        object.__setattr__(self, "timeout_seconds", timeout)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Worker:
        parsed = _expect_object(
            data,
            "Worker",
            required={"id", "name", "category", "priority"},
            optional={
                "model",
                "error_types",
                "can_auto_fix",
                "allowed_commands",
                "timeout_seconds",
            },
        )
        path = f"Worker[{parsed['id']!r}]" if isinstance(parsed["id"], str) else "Worker"
        return cls(
            id=_as_str(parsed["id"], f"{path}.id"),
            display_name=_as_str(parsed["name"], f"{path}.name", max_len=256),
            category=_as_enum(WorkerCategory, parsed["category"], f"{path}.category"),
            priority_tier=_as_enum(PriorityTier, parsed["priority"], f"{path}.priority"),
            model_tag=_as_str(parsed.get("model", "sonnet"), f"{path}.model", max_len=128),
            error_type_taxonomy=_as_str_tuple(
                parsed.get("error_types", ()),
                f"{path}.error_types",
                allow_empty=True,
                max_len=128,
            ),
            can_auto_fix=_as_bool(parsed.get("can_auto_fix", False), f"{path}.can_auto_fix"),
            allowed_subcommands=_as_str_tuple(
                parsed.get("allowed_commands", ("git",)),
                f"{path}.allowed_commands",
                allow_empty=True,
                max_len=64,
            ),
            timeout_seconds=_as_float(
                parsed.get("timeout_seconds", WORKER_TIMEOUT_SECONDS),
                f"{path}.timeout_seconds",
            ),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "name": self.display_name,
            "category": self.category.value,
            "priority": self.priority_tier.value,
            "model": self.model_tag,
            "error_types": list(self.error_type_taxonomy),
            "can_auto_fix": self.can_auto_fix,
            "allowed_commands": list(self.allowed_subcommands),
            "timeout_seconds": self.timeout_seconds,
        }


@dataclass(frozen=True, slots=True)
class Issue:
    """One finding extracted from a worker's output."""

    level: IssueLevel
    message: str
    category: WorkerCategory
    priority: PriorityTier
    source_worker_id: str
    type: str = "general"
    file: str | None = None
    line: int | None = None
    auto_fix_available: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "level", _as_enum(IssueLevel, self.level, "Issue.level"))
        object.__setattr__(
            self, "category", _as_enum(WorkerCategory, self.category, "Issue.category")
        )
        object.__setattr__(
            self, "priority", _as_enum(PriorityTier, self.priority, "Issue.priority")
        )
        if self.line is not None and (isinstance(self.line, bool) or self.line <= 0):
            _fail("Issue.line", "must be a positive integer")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "level": self.level.value,
            "message": self.message,
            "category": self.category.value,
            "priority": self.priority.value,
            "source_worker_id": self.source_worker_id,
            "type": self.type,
            "file": self.file,
            "line": self.line,
            "auto_fix_available": self.auto_fix_available,
        }


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of one worker run, owned by the scheduler that produced it."""

    worker_id: str
    worker_name: str
    issues: list[Issue] = field(default_factory=list)
    raw_output_digest: str = ""
    execution_time_ms: float = 0.0
    error: str | None = None
    sandbox_id: str = ""
    state: SandboxState = SandboxState.COMPLETED
    cached: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "worker_id": self.worker_id,
            "worker_name": self.worker_name,
            "issues": [issue.to_dict() for issue in self.issues],
            "raw_output_digest": self.raw_output_digest,
            "execution_time_ms": self.execution_time_ms,
            "error": self.error,
            "sandbox_id": self.sandbox_id,
            "state": self.state.value,
            "cached": self.cached,
        }


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        _fail(path, "must not be empty")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_pattern(value: object, path: str, pattern: re.Pattern[str]) -> str:
    parsed = _as_str(value, path)
    if pattern.fullmatch(parsed) is None:
        _fail(path, f"invalid value {parsed!r}")
    return parsed


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_float(value: object, path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        _fail(path, f"expected number, got {type(value).__name__}")
    parsed = float(value)
    if not math.isfinite(parsed):
        _fail(path, "must be finite")
    return parsed


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value.strip().lower())
    except ValueError:
        allowed = ", ".join(sorted(item.value for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_str_tuple(
    value: object,
    path: str,
    *,
    allow_empty: bool,
    max_len: int = _MAX_TEXT,
) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        _fail(path, f"expected array, got {type(value).__name__}")
    if not allow_empty and not value:
        _fail(path, "must not be empty")
    if len(value) > _MAX_COLLECTION:
        _fail(path, f"too many items (>{_MAX_COLLECTION})")

    parsed = tuple(
        _as_str(item, f"{path}[{index}]", max_len=max_len) for index, item in enumerate(value)
    )
    if len(set(parsed)) != len(parsed):
        _fail(path, "contains duplicate values")
    return parsed


__all__ = [
    "ExecutionResult",
    "Issue",
    "IssueLevel",
    "JSONScalar",
    "JSONValue",
    "PriorityTier",
    "SandboxState",
    "Worker",
    "WorkerCategory",
]
