"""
review-orchestrator — sandbox package

File: src/review_orchestrator/sandbox/__init__.py

Purpose
- Guarded command execution and per-worker sandboxed runs.

Functional requirements
- Must enforce the command allow-list, filesystem scoping, and time/output limits.
"""

from review_orchestrator.sandbox.command_guard import (
    AsyncioProcessRunner,
    CommandGuard,
    CommandOutput,
    ProcessOutcome,
    ProcessRunner,
)
from review_orchestrator.sandbox.errors import (
    CommandBufferExceeded,
    CommandGuardError,
    CommandLaunchError,
    CommandRejected,
    CommandTimeout,
    SandboxError,
    SandboxPolicyError,
    WorkerFailure,
)
from review_orchestrator.sandbox.facades import ReadOnlyFileView, RestrictedCommandRunner
from review_orchestrator.sandbox.worker_sandbox import (
    LauncherNotFoundError,
    LauncherResolver,
    SandboxSession,
    WorkerSandbox,
)

__all__ = [
    "AsyncioProcessRunner",
    "CommandBufferExceeded",
    "CommandGuard",
    "CommandGuardError",
    "CommandLaunchError",
    "CommandOutput",
    "CommandRejected",
    "CommandTimeout",
    "LauncherNotFoundError",
    "LauncherResolver",
    "ProcessOutcome",
    "ProcessRunner",
    "ReadOnlyFileView",
    "RestrictedCommandRunner",
    "SandboxError",
    "SandboxPolicyError",
    "SandboxSession",
    "WorkerFailure",
    "WorkerSandbox",
]
