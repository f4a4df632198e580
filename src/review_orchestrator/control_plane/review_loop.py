"""
review-orchestrator — iterative review loop

File: src/review_orchestrator/control_plane/review_loop.py

Purpose
- Drive repeated scheduler passes over the changed files of a repository until
  nothing auto-fixable remains, the tree stops changing, or the iteration limit
  is reached.

Functional requirements
- Changed files come from ``git diff --name-only HEAD~1`` run through the
  command guard; every path is re-validated and rejects are dropped.
- A git failure yields no files and is logged, never raised.
- Iterations are numbered from 1 and never exceed ``max_iterations``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from review_orchestrator.constants import DEFAULT_MAX_ITERATIONS, MAX_ITERATIONS_LIMIT
from review_orchestrator.domain.models import ExecutionResult, Issue, PriorityTier
from review_orchestrator.observability.logging import correlation_scope
from review_orchestrator.sandbox.errors import CommandGuardError
from review_orchestrator.security.path_guard import PathGuard, PathViolation
from review_orchestrator.security.redaction import scrub_text

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from review_orchestrator.control_plane.scheduler import Scheduler
    from review_orchestrator.domain.models import Worker
    from review_orchestrator.sandbox.command_guard import CommandGuard

_GIT_DIFF_ARGS = ("diff", "--name-only", "HEAD~1")


class ChangedFileDetector:
    """List files changed by the last commit, scoped to the repository root."""

    __slots__ = ("_guard", "_logger", "_path_guard", "_root")

    def __init__(
        self,
        root: Path | str,
        guard: CommandGuard,
        *,
        path_guard: PathGuard | None = None,
        logger: Any | None = None,
    ) -> None:
        self._root = Path(root).resolve()
        self._guard = guard
        self._path_guard = path_guard if path_guard is not None else PathGuard()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def detect(self) -> tuple[Path, ...]:
        try:
            output = await self._guard.execute("git", list(_GIT_DIFF_ARGS), cwd=self._root)
        except CommandGuardError as exc:
            self._logger.warning("changed_files_unavailable", error=scrub_text(str(exc)))
            return ()
        if not output.succeeded:
            self._logger.warning("changed_files_unavailable", returncode=output.returncode)
            return ()

        detected: list[Path] = []
        for line in output.stdout.splitlines():
            name = line.strip()
            if not name:
                continue
            try:
                detected.append(self._path_guard.validate(self._root, name))
            except PathViolation as exc:
                self._logger.info("changed_file_rejected", reason=exc.reason)
        return tuple(dict.fromkeys(detected))


@dataclass(frozen=True, slots=True)
class IterationReport:
    """Results of one scheduler pass."""

    number: int
    files: tuple[Path | str, ...]
    results: tuple[ExecutionResult, ...]

    @property
    def issues(self) -> tuple[Issue, ...]:
        return tuple(issue for result in self.results for issue in result.issues)

    @property
    def auto_fixable(self) -> int:
        return sum(1 for issue in self.issues if issue.auto_fix_available)


@dataclass(frozen=True, slots=True)
class ReviewSummary:
    """Aggregate outcome of a review loop run."""

    reports: tuple[IterationReport, ...]
    files_analyzed: int

    @property
    def iterations(self) -> int:
        return len(self.reports)

    @property
    def results(self) -> tuple[ExecutionResult, ...]:
        return tuple(result for report in self.reports for result in report.results)

    @property
    def issues(self) -> tuple[Issue, ...]:
        return tuple(issue for report in self.reports for issue in report.issues)

    @property
    def issues_found(self) -> int:
        return len(self.issues)

    @property
    def auto_fixable(self) -> int:
        return sum(report.auto_fixable for report in self.reports)

    @property
    def failed_workers(self) -> tuple[str, ...]:
        failed = (result.worker_id for result in self.results if result.error is not None)
        return tuple(dict.fromkeys(failed))


class ReviewLoop:
    """Repeat scheduler passes while auto-fixable issues keep appearing."""

    __slots__ = ("_detector", "_logger", "_max_iterations", "_scheduler")

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        detector: ChangedFileDetector | None = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        logger: Any | None = None,
    ) -> None:
        if isinstance(max_iterations, bool) or not 1 <= max_iterations <= MAX_ITERATIONS_LIMIT:
            raise ValueError(f"max_iterations must be between 1 and {MAX_ITERATIONS_LIMIT}")
        self._scheduler = scheduler
        self._detector = detector
        self._max_iterations = max_iterations
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    async def run(
        self,
        workers: Sequence[Worker],
        files: Sequence[Path | str] | None = None,
    ) -> ReviewSummary:
        """Review ``files``, or the detector's changed files when none are given."""

        if files is None:
            if self._detector is None:
                raise ValueError("files are required when no change detector is configured")
            current: tuple[Path | str, ...] = await self._detector.detect()
        else:
            current = tuple(files)
        if not current:
            self._logger.info("review_loop_no_changes")
            return ReviewSummary(reports=(), files_analyzed=0)

        analyzed = len(current)
        reports: list[IterationReport] = []
        for number in range(1, self._max_iterations + 1):
            with correlation_scope(iteration=number):
                results = await self._scheduler.execute_all(workers, current, number)
            report = IterationReport(number=number, files=current, results=tuple(results))
            reports.append(report)
            self._logger.info(
                "review_iteration_finished",
                iteration=number,
                issues=len(report.issues),
                auto_fixable=report.auto_fixable,
            )
            if report.auto_fixable == 0 or self._detector is None:
                break
            changed = await self._detector.detect()
            if not changed:
                break
            current = changed
            analyzed = max(analyzed, len(current))

        return ReviewSummary(reports=tuple(reports), files_analyzed=analyzed)


def filter_by_priority(
    issues: Iterable[Issue],
    threshold: PriorityTier | str = PriorityTier.MEDIUM,
) -> list[Issue]:
    """Keep issues whose priority is at or above ``threshold``."""

    limit = PriorityTier(threshold.strip().lower() if isinstance(threshold, str) else threshold)
    return [issue for issue in issues if issue.priority.rank <= limit.rank]


__all__ = [
    "ChangedFileDetector",
    "IterationReport",
    "ReviewLoop",
    "ReviewSummary",
    "filter_by_priority",
]
