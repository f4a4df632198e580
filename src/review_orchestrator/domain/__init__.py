"""Domain model exports."""

from review_orchestrator.domain.models import (
    ExecutionResult,
    Issue,
    IssueLevel,
    PriorityTier,
    SandboxState,
    Worker,
    WorkerCategory,
)

__all__ = [
    "ExecutionResult",
    "Issue",
    "IssueLevel",
    "PriorityTier",
    "SandboxState",
    "Worker",
    "WorkerCategory",
]
