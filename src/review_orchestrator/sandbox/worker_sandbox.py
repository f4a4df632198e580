"""
review-orchestrator — per-worker sandboxed execution

File: src/review_orchestrator/sandbox/worker_sandbox.py

Purpose
- Run one worker against a validated file set and always return an
  ``ExecutionResult``, whatever happens inside the run.

What should be included in this file
- Construction of the read-only file view and restricted command runner.
- Launcher resolution (configured, or discovered once) and bounded argv assembly.
- Timeout race, exit-status handling, parsing, and sanitization of failures.

Functional requirements
- ``run`` never raises except for task cancellation.
- A run that exceeds ``worker.timeout_seconds`` ends ``TIMED_OUT`` and is not retried.

Non-functional requirements
- Logical isolation only; the process runs with the orchestrator's OS privileges.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from review_orchestrator.constants import (
    LAUNCHER_CANDIDATES,
    LAUNCHER_DISCOVERY_TIMEOUT_SECONDS,
    MAX_MEMORY_BYTES,
    MAX_OUTPUT_BYTES,
)
from review_orchestrator.domain.models import ExecutionResult, SandboxState
from review_orchestrator.observability.logging import correlation_scope
from review_orchestrator.parsing.issue_parser import PatternIssueParser
from review_orchestrator.sandbox.errors import (
    CommandGuardError,
    CommandTimeout,
    SandboxError,
    WorkerFailure,
)
from review_orchestrator.sandbox.facades import ReadOnlyFileView, RestrictedCommandRunner
from review_orchestrator.security.path_guard import PathGuard
from review_orchestrator.security.redaction import OutputSanitizer, scrub_text
from review_orchestrator.utils.concurrency import run_with_timeout
from review_orchestrator.utils.hashing import sha256_text

if TYPE_CHECKING:
    from collections.abc import Sequence

    from review_orchestrator.domain.models import Issue, Worker
    from review_orchestrator.parsing.issue_parser import IssueParser
    from review_orchestrator.sandbox.command_guard import CommandGuard


class LauncherNotFoundError(SandboxError):
    """Raised when no launcher candidate answers ``--version``."""


class LauncherResolver:
    """Resolve the worker launcher executable once and memoize the answer."""

    def __init__(
        self,
        guard: CommandGuard,
        *,
        launcher: str | None = None,
        candidates: Sequence[str] = LAUNCHER_CANDIDATES,
        discovery_timeout_seconds: float = LAUNCHER_DISCOVERY_TIMEOUT_SECONDS,
        logger: Any | None = None,
    ) -> None:
        self._guard = guard
        self._configured = launcher
        self._candidates = tuple(candidates)
        self._discovery_timeout_seconds = discovery_timeout_seconds
        self._resolved: str | None = None
        self._lock = asyncio.Lock()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def resolve(self) -> str:
        if self._configured is not None:
            return self._configured
        if self._resolved is not None:
            return self._resolved
        async with self._lock:
            if self._resolved is None:
                self._resolved = await self._discover()
        return self._resolved

    async def _discover(self) -> str:
        for candidate in self._candidates:
            try:
                output = await self._guard.execute(
                    candidate,
                    ["--version"],
                    timeout_seconds=self._discovery_timeout_seconds,
                )
            except CommandGuardError as exc:
                self._logger.debug(
                    "launcher_candidate_failed", launcher=candidate, error=scrub_text(str(exc))
                )
                continue
            if output.succeeded:
                self._logger.info("launcher_resolved", launcher=candidate)
                return candidate
        raise LauncherNotFoundError(
            f"no worker launcher available; tried: {', '.join(self._candidates)}"
        )


@dataclass(frozen=True, slots=True)
class SandboxSession:
    """Facades and limits granted to one worker run."""

    sandbox_id: str
    worker: Worker
    files: ReadOnlyFileView
    terminal: RestrictedCommandRunner
    max_memory_bytes: int

    @property
    def timeout_seconds(self) -> float:
        return self.worker.timeout_seconds


class WorkerSandbox:
    """Execute one worker per call under logical isolation and bounded resources."""

    def __init__(
        self,
        root: Path | str,
        guard: CommandGuard,
        *,
        parser: IssueParser | None = None,
        sanitizer: OutputSanitizer | None = None,
        path_guard: PathGuard | None = None,
        launcher: LauncherResolver | None = None,
        max_memory_bytes: int = MAX_MEMORY_BYTES,
        max_output_bytes: int = MAX_OUTPUT_BYTES,
        logger: Any | None = None,
    ) -> None:
        if max_memory_bytes <= 0:
            raise ValueError("max_memory_bytes must be > 0")
        if max_output_bytes <= 0:
            raise ValueError("max_output_bytes must be > 0")
        self._root = Path(root).resolve()
        self._guard = guard
        self._sanitizer = sanitizer if sanitizer is not None else OutputSanitizer(markup=True)
        self._parser: IssueParser = (
            parser if parser is not None else PatternIssueParser(sanitizer=self._sanitizer)
        )
        self._path_guard = path_guard if path_guard is not None else PathGuard()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._launcher = (
            launcher if launcher is not None else LauncherResolver(guard, logger=self._logger)
        )
        self._max_memory_bytes = max_memory_bytes
        self._max_output_bytes = max_output_bytes

    @property
    def root(self) -> Path:
        return self._root

    @property
    def sanitizer(self) -> OutputSanitizer:
        return self._sanitizer

    async def run(
        self,
        worker: Worker,
        files: Sequence[Path | str],
        iteration: int = 1,
    ) -> ExecutionResult:
        sandbox_id = secrets.token_hex(8)
        with correlation_scope(worker_id=worker.id, sandbox_id=sandbox_id, iteration=iteration):
            return await self._run(worker, files, iteration, sandbox_id)

    async def _run(
        self,
        worker: Worker,
        files: Sequence[Path | str],
        iteration: int,
        sandbox_id: str,
    ) -> ExecutionResult:
        started = time.perf_counter()
        state = SandboxState.CREATED
        log = self._logger.bind(worker_id=worker.id, sandbox_id=sandbox_id, iteration=iteration)

        try:
            if iteration < 1:
                raise ValueError("iteration must be >= 1")
            session = self.open_session(worker, files, sandbox_id=sandbox_id)
            state = SandboxState.RUNNING
            log.debug("sandbox_run_started", files=len(session.files.files))
            issues, digest = await run_with_timeout(
                self._invoke(session, iteration),
                worker.timeout_seconds,
            )
        except asyncio.CancelledError:
            raise
        except (TimeoutError, CommandTimeout):
            state = SandboxState.TIMED_OUT
            error = self._sanitizer.sanitize(
                f"worker {worker.id} timed out after {worker.timeout_seconds:g} seconds"
            )
            log.warning("sandbox_run_timed_out", timeout_seconds=worker.timeout_seconds)
            return self._result(worker, sandbox_id, started, state=state, error=error)
        except Exception as exc:  # noqa: BLE001
            state = SandboxState.FAILED
            error = self._sanitizer.sanitize_error(exc)
            log.warning("sandbox_run_failed", error_type=type(exc).__name__, error=error)
            return self._result(worker, sandbox_id, started, state=state, error=error)

        state = SandboxState.COMPLETED
        result = self._result(
            worker, sandbox_id, started, state=state, issues=issues, digest=digest
        )
        log.info(
            "sandbox_run_finished",
            issues=len(issues),
            execution_time_ms=round(result.execution_time_ms, 3),
        )
        return result

    def build_launcher_args(
        self,
        worker: Worker,
        files: Sequence[Path],
        iteration: int,
    ) -> list[str]:
        """Assemble the launcher argument vector for one run."""

        args = [
            "agent",
            "run",
            worker.id,
            "--model",
            worker.model_tag,
            "--target",
            str(self._root),
            "--sandbox-mode",
        ]
        if files:
            args.extend(["--files", ",".join(str(path) for path in files)])
        if iteration > 1:
            args.extend(["--iteration", str(iteration)])
        args.extend(["--max-memory", str(self._max_memory_bytes)])
        args.extend(["--timeout", str(int(worker.timeout_seconds * 1000))])
        return args

    def open_session(
        self,
        worker: Worker,
        files: Sequence[Path | str],
        *,
        sandbox_id: str | None = None,
    ) -> SandboxSession:
        """Validate ``files`` and build the facades a worker run is allowed to use."""

        return SandboxSession(
            sandbox_id=sandbox_id if sandbox_id is not None else secrets.token_hex(8),
            worker=worker,
            files=ReadOnlyFileView(self._root, files, path_guard=self._path_guard),
            terminal=RestrictedCommandRunner(worker, self._guard, cwd=self._root),
            max_memory_bytes=self._max_memory_bytes,
        )

    async def _invoke(
        self,
        session: SandboxSession,
        iteration: int,
    ) -> tuple[list[Issue], str]:
        worker = session.worker
        launcher = await self._launcher.resolve()
        output = await self._guard.execute(
            launcher,
            self.build_launcher_args(worker, session.files.files, iteration),
            timeout_seconds=worker.timeout_seconds,
            max_output_bytes=self._max_output_bytes,
            cwd=self._root,
        )
        if not output.succeeded:
            detail = output.stderr.strip().splitlines()[-1:] or ["no diagnostic output"]
            raise WorkerFailure(
                worker.id,
                f"worker {worker.id} exited with status {output.returncode}: {detail[0]}",
                returncode=output.returncode,
            )
        issues = self._parser.parse(output.stdout, worker)
        digest = sha256_text(output.stdout) if output.stdout else ""
        return issues, digest

    def _result(
        self,
        worker: Worker,
        sandbox_id: str,
        started: float,
        *,
        state: SandboxState,
        issues: list[Issue] | None = None,
        digest: str = "",
        error: str | None = None,
    ) -> ExecutionResult:
        return ExecutionResult(
            worker_id=worker.id,
            worker_name=worker.display_name,
            issues=list(issues or []),
            raw_output_digest=digest,
            execution_time_ms=(time.perf_counter() - started) * 1000.0,
            error=error,
            sandbox_id=sandbox_id,
            state=state,
        )


__all__ = [
    "LauncherNotFoundError",
    "LauncherResolver",
    "SandboxSession",
    "WorkerSandbox",
]
