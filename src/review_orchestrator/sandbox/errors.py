"""Error taxonomy for command execution and worker sandboxes."""

from __future__ import annotations


class CommandGuardError(RuntimeError):
    """Base error for guarded command execution failures."""


class CommandRejected(CommandGuardError):
    """Raised before spawning when a command or its arguments violate policy."""

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"command rejected ({reason}): {command!r}")


class CommandTimeout(CommandGuardError):
    """Raised when a spawned command exceeds its time budget and was killed."""

    def __init__(self, command: str, timeout_seconds: float) -> None:
        self.command = command
        self.timeout_seconds = timeout_seconds
        super().__init__(f"command {command!r} timed out after {timeout_seconds} seconds")


class CommandBufferExceeded(CommandGuardError):
    """Raised when combined stdout/stderr exceed the output budget."""

    def __init__(self, command: str, limit_bytes: int) -> None:
        self.command = command
        self.limit_bytes = limit_bytes
        super().__init__(f"command {command!r} exceeded output limit of {limit_bytes} bytes")


class CommandLaunchError(CommandGuardError):
    """Raised when the operating system cannot start the command."""


class SandboxError(RuntimeError):
    """Base error for worker sandbox failures."""


class SandboxPolicyError(SandboxError):
    """Raised when a sandbox facade is asked for an operation it does not permit."""


class WorkerFailure(SandboxError):
    """Raised when a worker process exits unsuccessfully or its output is unusable."""

    def __init__(self, worker_id: str, message: str, *, returncode: int | None = None) -> None:
        self.worker_id = worker_id
        self.returncode = returncode
        super().__init__(message)


__all__ = [
    "CommandBufferExceeded",
    "CommandGuardError",
    "CommandLaunchError",
    "CommandRejected",
    "CommandTimeout",
    "SandboxError",
    "SandboxPolicyError",
    "WorkerFailure",
]
