"""
review-orchestrator — guarded external command execution

File: src/review_orchestrator/sandbox/command_guard.py

Purpose
- Sole gateway for spawning external processes on behalf of workers.

What should be included in this file
- Static allow-list enforcement before any process is created.
- Per-argument removal of shell metacharacters and an overall argv size bound.
- Child environment with credential-shaped variables removed.
- Injectable process runner; the default one drains pipes under a byte budget.

Functional requirements
- Never invoke a shell; arguments are passed as a vector.
- Kill the child when the time or output budget is exhausted.

Non-functional requirements
- The runner is never called for a rejected command.
"""

from __future__ import annotations

import asyncio
import os
import time
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Protocol

import structlog

from review_orchestrator.constants import (
    ALLOWED_COMMANDS,
    COMMAND_TIMEOUT_SECONDS,
    MAX_ARGUMENT_BYTES,
    MAX_OUTPUT_BYTES,
    SHELL_METACHARACTERS,
)
from review_orchestrator.sandbox.errors import (
    CommandBufferExceeded,
    CommandLaunchError,
    CommandRejected,
    CommandTimeout,
)
from review_orchestrator.security.path_guard import PathGuard, PathViolation
from review_orchestrator.security.redaction import is_sensitive_key, scrub_text

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

SENSITIVE_ENV_NAMES: Final[frozenset[str]] = frozenset(
    {
        "AWS_SECRET_ACCESS_KEY",
        "DATABASE_PASSWORD",
        "API_KEY",
        "SECRET_KEY",
        "PRIVATE_KEY",
        "TOKEN",
        "PASSWORD",
    }
)

_READ_CHUNK_BYTES: Final[int] = 64 * 1024
_METACHARACTER_TABLE: Final[dict[int, None]] = {ord(char): None for char in SHELL_METACHARACTERS}


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    """Raw exit status and decoded streams reported by a process runner."""

    returncode: int
    stdout: str
    stderr: str


@dataclass(frozen=True, slots=True)
class CommandOutput:
    """Normalized result of one guarded command execution."""

    command: str
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    duration_ms: float

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class ProcessRunner(Protocol):
    """Injectable process spawner used for deterministic/offline testing."""

    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str],
        timeout_seconds: float,
        max_output_bytes: int,
    ) -> ProcessOutcome: ...


class AsyncioProcessRunner:
    """Default runner backed by ``asyncio.create_subprocess_exec``."""

    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str],
        timeout_seconds: float,
        max_output_bytes: int,
    ) -> ProcessOutcome:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            env=dict(env),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        budget = _OutputBudget(command=argv[0], limit_bytes=max_output_bytes)
        try:
            stdout, stderr = await asyncio.wait_for(
                _collect_streams(process, budget), timeout=timeout_seconds
            )
            returncode = await process.wait()
        except TimeoutError as exc:
            raise CommandTimeout(argv[0], timeout_seconds) from exc
        finally:
            if process.returncode is None:
                with suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        return ProcessOutcome(
            returncode=returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )


class CommandGuard:
    """Validate and execute allow-listed commands with bounded resources."""

    def __init__(
        self,
        *,
        allowed_commands: Iterable[str] = ALLOWED_COMMANDS,
        runner: ProcessRunner | None = None,
        workspace_root: Path | str | None = None,
        path_guard: PathGuard | None = None,
        max_argument_bytes: int = MAX_ARGUMENT_BYTES,
        default_timeout_seconds: float = COMMAND_TIMEOUT_SECONDS,
        default_max_output_bytes: int = MAX_OUTPUT_BYTES,
        environ: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        allowed = frozenset(item.strip() for item in allowed_commands if item.strip())
        if not allowed:
            raise ValueError("allowed_commands must not be empty")
        if max_argument_bytes <= 0:
            raise ValueError("max_argument_bytes must be > 0")
        if default_timeout_seconds <= 0:
            raise ValueError("default_timeout_seconds must be > 0")
        if default_max_output_bytes <= 0:
            raise ValueError("default_max_output_bytes must be > 0")

        self._allowed_commands = allowed
        self._runner: ProcessRunner = runner if runner is not None else AsyncioProcessRunner()
        self._workspace_root = (
            Path(workspace_root).resolve() if workspace_root is not None else None
        )
        self._path_guard = path_guard if path_guard is not None else PathGuard()
        self._max_argument_bytes = max_argument_bytes
        self._default_timeout_seconds = float(default_timeout_seconds)
        self._default_max_output_bytes = default_max_output_bytes
        self._environ = environ
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def allowed_commands(self) -> frozenset[str]:
        return self._allowed_commands

    @property
    def workspace_root(self) -> Path | None:
        return self._workspace_root

    def is_allowed(self, command: str) -> bool:
        return command in self._allowed_commands

    async def execute(
        self,
        command: str,
        args: Sequence[object] = (),
        *,
        timeout_seconds: float | None = None,
        max_output_bytes: int | None = None,
        cwd: Path | str | None = None,
    ) -> CommandOutput:
        name = command.strip() if isinstance(command, str) else ""
        if name not in self._allowed_commands:
            self._logger.warning(
                "command_rejected", command=scrub_text(str(command)), reason="not allowed"
            )
            raise CommandRejected(str(command), "not in allow-list")

        sanitized_args = tuple(strip_metacharacters(str(arg)) for arg in args)
        argv_bytes = sum(len(item.encode("utf-8", errors="replace")) + 1 for item in sanitized_args)
        if argv_bytes > self._max_argument_bytes:
            self._logger.warning(
                "command_rejected",
                command=name,
                reason="argument vector too large",
                argv_bytes=argv_bytes,
            )
            raise CommandRejected(name, f"arguments exceed {self._max_argument_bytes} bytes")

        effective_timeout = (
            self._default_timeout_seconds if timeout_seconds is None else float(timeout_seconds)
        )
        if effective_timeout <= 0:
            raise ValueError("timeout_seconds must be > 0")
        effective_limit = (
            self._default_max_output_bytes if max_output_bytes is None else max_output_bytes
        )
        if effective_limit <= 0:
            raise ValueError("max_output_bytes must be > 0")

        resolved_cwd = self._resolve_cwd(name, cwd)
        env = self._build_environment()

        started = time.perf_counter()
        try:
            outcome = await self._runner.run(
                (name, *sanitized_args),
                cwd=resolved_cwd,
                env=env,
                timeout_seconds=effective_timeout,
                max_output_bytes=effective_limit,
            )
        except (CommandTimeout, CommandBufferExceeded) as exc:
            self._logger.warning("command_aborted", command=name, reason=type(exc).__name__)
            raise
        except OSError as exc:
            raise CommandLaunchError(f"unable to start {name!r}: {exc.strerror or exc}") from exc

        duration_ms = (time.perf_counter() - started) * 1000.0
        self._logger.debug(
            "command_finished",
            command=name,
            returncode=outcome.returncode,
            duration_ms=round(duration_ms, 3),
        )
        return CommandOutput(
            command=name,
            args=sanitized_args,
            returncode=outcome.returncode,
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            duration_ms=duration_ms,
        )

    def _resolve_cwd(self, command: str, cwd: Path | str | None) -> Path | None:
        if self._workspace_root is None:
            return Path(cwd).resolve() if cwd is not None else None
        if cwd is None:
            return self._workspace_root
        try:
            return self._path_guard.validate(self._workspace_root, cwd)
        except PathViolation as exc:
            self._logger.warning("command_rejected", command=command, reason=exc.reason)
            raise CommandRejected(command, f"working directory {exc.reason}") from exc

    def _build_environment(self) -> dict[str, str]:
        source = os.environ if self._environ is None else self._environ
        return {
            name: value for name, value in source.items() if not is_sensitive_env_name(name)
        }


def strip_metacharacters(value: str) -> str:
    """Remove ``; & | ` $ ( ) < >`` and line/tab control characters."""

    return value.translate(_METACHARACTER_TABLE)


def is_sensitive_env_name(name: str) -> bool:
    return name.upper() in SENSITIVE_ENV_NAMES or is_sensitive_key(name)


class _OutputBudget:
    __slots__ = ("_command", "_limit", "_used")

    def __init__(self, *, command: str, limit_bytes: int) -> None:
        self._command = command
        self._limit = limit_bytes
        self._used = 0

    def consume(self, size: int) -> None:
        self._used += size
        if self._used > self._limit:
            raise CommandBufferExceeded(self._command, self._limit)


async def _collect_streams(
    process: asyncio.subprocess.Process,
    budget: _OutputBudget,
) -> tuple[bytes, bytes]:
    stdout = bytearray()
    stderr = bytearray()
    tasks = [
        asyncio.create_task(_drain(process.stdout, stdout, budget)),
        asyncio.create_task(_drain(process.stderr, stderr, budget)),
    ]
    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    return bytes(stdout), bytes(stderr)


async def _drain(
    stream: asyncio.StreamReader | None,
    sink: bytearray,
    budget: _OutputBudget,
) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            return
        budget.consume(len(chunk))
        sink.extend(chunk)


__all__ = [
    "SENSITIVE_ENV_NAMES",
    "AsyncioProcessRunner",
    "CommandGuard",
    "CommandOutput",
    "ProcessOutcome",
    "ProcessRunner",
    "is_sensitive_env_name",
    "strip_metacharacters",
]
