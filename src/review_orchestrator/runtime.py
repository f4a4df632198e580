"""
review-orchestrator — component wiring

File: src/review_orchestrator/runtime.py

Purpose
- Build the guard, sandbox, cache, scheduler and review loop for one repository
  root from a ``ReviewSettings`` record.

Functional requirements
- Every component receives its limits from settings; nothing reads globals.
- A configured launcher must already be on the command allow-list.
- ``start_logging`` opens the run log at ``settings.log_level``; callers close it.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, TextIO

import structlog

from review_orchestrator.config.schema import ReviewSettings, dump_redacted
from review_orchestrator.constants import ALLOWED_COMMANDS
from review_orchestrator.control_plane.result_cache import ResultCache
from review_orchestrator.control_plane.review_loop import ChangedFileDetector, ReviewLoop
from review_orchestrator.control_plane.scheduler import Scheduler, SchedulerLimits
from review_orchestrator.observability.logging import start_review_logging
from review_orchestrator.sandbox.command_guard import CommandGuard
from review_orchestrator.sandbox.worker_sandbox import LauncherResolver, WorkerSandbox
from review_orchestrator.security.path_guard import PathGuard
from review_orchestrator.security.redaction import OutputSanitizer

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from review_orchestrator.observability.logging import ReviewLogging
    from review_orchestrator.sandbox.command_guard import ProcessRunner


@dataclass(frozen=True, slots=True)
class ReviewRuntime:
    """Fully wired components for one repository root."""

    root: Path
    settings: ReviewSettings
    guard: CommandGuard
    sandbox: WorkerSandbox
    cache: ResultCache | None
    scheduler: Scheduler
    loop: ReviewLoop

    def start_logging(
        self,
        *,
        run_id: str | None = None,
        log_dir: Path | str | None = None,
        stream: TextIO | None = None,
    ) -> ReviewLogging:
        """Open this run's JSON-lines log at ``settings.log_level``; close it when done."""

        return start_review_logging(self.settings, run_id=run_id, log_dir=log_dir, stream=stream)


def build_runtime(
    root: Path | str,
    settings: ReviewSettings | None = None,
    *,
    runner: ProcessRunner | None = None,
    allowed_commands: Iterable[str] = ALLOWED_COMMANDS,
    environ: Mapping[str, str] | None = None,
    logger: Any | None = None,
) -> ReviewRuntime:
    effective = settings if settings is not None else ReviewSettings()
    resolved_root = Path(root).resolve()
    if not resolved_root.is_dir():
        raise NotADirectoryError(f"review root is not a directory: {resolved_root}")
    allowed = frozenset(allowed_commands)
    if effective.launcher is not None and effective.launcher not in allowed:
        raise ValueError(f"launcher {effective.launcher!r} is not an allowed command")

    log = logger if logger is not None else structlog.get_logger(__name__)
    path_guard = PathGuard(max_path_length=effective.max_path_length)
    sanitizer = OutputSanitizer(markup=effective.escape_markup)
    guard = CommandGuard(
        allowed_commands=allowed,
        runner=runner,
        workspace_root=resolved_root,
        path_guard=path_guard,
        default_timeout_seconds=effective.command_timeout_seconds,
        default_max_output_bytes=effective.max_output_bytes,
        environ=environ,
        logger=log,
    )
    sandbox = WorkerSandbox(
        resolved_root,
        guard,
        sanitizer=sanitizer,
        path_guard=path_guard,
        launcher=LauncherResolver(guard, launcher=effective.launcher, logger=log),
        max_memory_bytes=effective.max_memory_bytes,
        max_output_bytes=effective.max_output_bytes,
        logger=log,
    )
    cache = (
        ResultCache(
            ttl_seconds=effective.cache_ttl_seconds,
            capacity=effective.cache_capacity,
            bucket_seconds=effective.cache_bucket_seconds,
            root=resolved_root,
            path_guard=path_guard,
            logger=log,
        )
        if effective.cache_enabled
        else None
    )
    scheduler = Scheduler(
        sandbox,
        cache=cache,
        limits=SchedulerLimits(max_concurrency=effective.max_concurrency),
        sanitizer=sanitizer,
        logger=log,
    )
    loop = ReviewLoop(
        scheduler,
        detector=ChangedFileDetector(resolved_root, guard, path_guard=path_guard, logger=log),
        max_iterations=effective.max_iterations,
        logger=log,
    )
    log.info("review_runtime_built", root=resolved_root.name, settings=dump_redacted(effective))
    return ReviewRuntime(
        root=resolved_root,
        settings=effective,
        guard=guard,
        sandbox=sandbox,
        cache=cache,
        scheduler=scheduler,
        loop=loop,
    )


__all__ = [
    "ReviewRuntime",
    "build_runtime",
]
