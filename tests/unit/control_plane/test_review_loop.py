"""
review-orchestrator — unit tests for the iterative review loop

File: tests/unit/control_plane/test_review_loop.py

Purpose
- Verify changed-file detection, iteration stop conditions, summary
  aggregation, and priority filtering.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from structlog.testing import capture_logs

from review_orchestrator.control_plane.review_loop import (
    ChangedFileDetector,
    ReviewLoop,
    filter_by_priority,
)
from review_orchestrator.domain.models import (
    ExecutionResult,
    Issue,
    PriorityTier,
    SandboxState,
    Worker,
    WorkerCategory,
)
from review_orchestrator.sandbox.command_guard import CommandGuard, ProcessOutcome

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


def _issue(priority: str = "high", *, fixable: bool = False) -> Issue:
    return Issue(
        level="warning",  # type: ignore[arg-type]
        message="finding",
        category=WorkerCategory.BUG,
        priority=priority,  # type: ignore[arg-type]
        source_worker_id="bug",
        auto_fix_available=fixable,
    )


def _worker() -> Worker:
    return Worker(
        id="bug",
        display_name="Bug",
        category=WorkerCategory.BUG,
        priority_tier=PriorityTier.HIGH,
        can_auto_fix=True,
    )


class _FakeScheduler:
    def __init__(self, batches: list[list[ExecutionResult]]) -> None:
        self._batches = batches
        self.calls: list[tuple[tuple[Path | str, ...], int]] = []

    async def execute_all(
        self,
        workers: Sequence[Worker],
        files: Sequence[Path | str],
        iteration: int = 1,
    ) -> list[ExecutionResult]:
        self.calls.append((tuple(files), iteration))
        return self._batches[min(len(self.calls), len(self._batches)) - 1]


class _FakeDetector:
    def __init__(self, answers: list[tuple[Path, ...]]) -> None:
        self._answers = list(answers)
        self.calls = 0

    async def detect(self) -> tuple[Path, ...]:
        self.calls += 1
        return self._answers.pop(0) if self._answers else ()


class _GitRunner:
    def __init__(self, outcome: ProcessOutcome) -> None:
        self.outcome = outcome
        self.argvs: list[tuple[str, ...]] = []
        self.cwds: list[Path | None] = []

    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str],
        timeout_seconds: float,
        max_output_bytes: int,
    ) -> ProcessOutcome:
        self.argvs.append(tuple(argv))
        self.cwds.append(cwd)
        return self.outcome


def _result(*issues: Issue, error: str | None = None) -> ExecutionResult:
    return ExecutionResult(
        worker_id="bug",
        worker_name="Bug",
        issues=list(issues),
        error=error,
        state=SandboxState.FAILED if error else SandboxState.COMPLETED,
    )


@pytest.mark.asyncio
async def test_detector_lists_changed_files_inside_root(tmp_path: Path) -> None:
    runner = _GitRunner(
        ProcessOutcome(0, "src/app.py\n\nsrc/app.py\n../outside.py\nREADME.md\n", "")
    )
    guard = CommandGuard(runner=runner, workspace_root=tmp_path, environ={})

    detected = await ChangedFileDetector(tmp_path, guard).detect()

    root = tmp_path.resolve()
    assert detected == (root / "src" / "app.py", root / "README.md")
    assert runner.argvs == [("git", "diff", "--name-only", "HEAD~1")]
    assert runner.cwds == [root]


@pytest.mark.asyncio
async def test_detector_returns_nothing_when_git_fails(tmp_path: Path) -> None:
    runner = _GitRunner(ProcessOutcome(128, "", "fatal: bad revision 'HEAD~1'"))
    guard = CommandGuard(runner=runner, workspace_root=tmp_path, environ={})

    assert await ChangedFileDetector(tmp_path, guard).detect() == ()


class _BrokenGitRunner:
    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None,
        env: Mapping[str, str],
        timeout_seconds: float,
        max_output_bytes: int,
    ) -> ProcessOutcome:
        raise OSError("cannot read /home/alice/.gitconfig password=hunter22")


@pytest.mark.asyncio
async def test_detector_logs_launch_errors_without_secrets(tmp_path: Path) -> None:
    guard = CommandGuard(runner=_BrokenGitRunner(), workspace_root=tmp_path, environ={})

    with capture_logs() as events:
        detected = await ChangedFileDetector(tmp_path, guard).detect()

    assert detected == ()
    (event,) = [entry for entry in events if entry["event"] == "changed_files_unavailable"]
    assert event["error"] == (
        "unable to start 'git': "
        "cannot read /home/<user>/.gitconfig password=[REDACTED:password]"
    )
    assert "alice" not in str(events)
    assert "hunter22" not in str(events)


@pytest.mark.asyncio
async def test_detector_returns_nothing_when_git_is_not_allowed(tmp_path: Path) -> None:
    runner = _GitRunner(ProcessOutcome(0, "a.py\n", ""))
    guard = CommandGuard(
        allowed_commands=["claude"],
        runner=runner,
        workspace_root=tmp_path,
        environ={},
    )

    assert await ChangedFileDetector(tmp_path, guard).detect() == ()
    assert runner.argvs == []


@pytest.mark.asyncio
async def test_single_pass_without_auto_fixable_issues() -> None:
    scheduler = _FakeScheduler([[_result(_issue())]])
    detector = _FakeDetector([(Path("b.py"),)])
    loop = ReviewLoop(scheduler, detector=detector)  # type: ignore[arg-type]

    summary = await loop.run([_worker()], ["a.py"])

    assert summary.iterations == 1
    assert summary.issues_found == 1
    assert summary.auto_fixable == 0
    assert detector.calls == 0


@pytest.mark.asyncio
async def test_auto_fixable_issues_trigger_another_pass_on_changed_files() -> None:
    scheduler = _FakeScheduler(
        [
            [_result(_issue(fixable=True), _issue())],
            [_result(_issue())],
        ]
    )
    detector = _FakeDetector([(Path("a.py"), Path("b.py"))])
    loop = ReviewLoop(scheduler, detector=detector)  # type: ignore[arg-type]

    summary = await loop.run([_worker()], ["a.py"])

    assert scheduler.calls == [(("a.py",), 1), ((Path("a.py"), Path("b.py")), 2)]
    assert summary.iterations == 2
    assert summary.issues_found == 3
    assert summary.auto_fixable == 1
    assert summary.files_analyzed == 2


@pytest.mark.asyncio
async def test_loop_stops_when_nothing_changed() -> None:
    scheduler = _FakeScheduler([[_result(_issue(fixable=True))]])
    detector = _FakeDetector([])
    loop = ReviewLoop(scheduler, detector=detector)  # type: ignore[arg-type]

    summary = await loop.run([_worker()], ["a.py"])

    assert summary.iterations == 1
    assert detector.calls == 1


@pytest.mark.asyncio
async def test_loop_is_bounded_by_max_iterations() -> None:
    scheduler = _FakeScheduler([[_result(_issue(fixable=True))]])
    detector = _FakeDetector([(Path("a.py"),)] * 10)
    loop = ReviewLoop(scheduler, detector=detector, max_iterations=3)  # type: ignore[arg-type]

    summary = await loop.run([_worker()], ["a.py"])

    assert summary.iterations == 3
    assert [iteration for _, iteration in scheduler.calls] == [1, 2, 3]


@pytest.mark.asyncio
async def test_without_detector_the_loop_runs_once() -> None:
    scheduler = _FakeScheduler([[_result(_issue(fixable=True))]])

    summary = await ReviewLoop(scheduler).run([_worker()], ["a.py"])  # type: ignore[arg-type]

    assert summary.iterations == 1


@pytest.mark.asyncio
async def test_missing_files_use_the_detector() -> None:
    scheduler = _FakeScheduler([[_result()]])
    detector = _FakeDetector([(Path("x.py"),)])
    loop = ReviewLoop(scheduler, detector=detector)  # type: ignore[arg-type]

    summary = await loop.run([_worker()])

    assert scheduler.calls == [((Path("x.py"),), 1)]
    assert summary.files_analyzed == 1


@pytest.mark.asyncio
async def test_no_changed_files_returns_an_empty_summary() -> None:
    scheduler = _FakeScheduler([[_result()]])
    loop = ReviewLoop(scheduler, detector=_FakeDetector([]))  # type: ignore[arg-type]

    summary = await loop.run([_worker()])

    assert summary.iterations == 0
    assert summary.files_analyzed == 0
    assert scheduler.calls == []


@pytest.mark.asyncio
async def test_missing_files_without_detector_is_an_error() -> None:
    loop = ReviewLoop(_FakeScheduler([[_result()]]))  # type: ignore[arg-type]

    with pytest.raises(ValueError, match="change detector"):
        await loop.run([_worker()])


@pytest.mark.asyncio
async def test_summary_reports_failed_workers_once() -> None:
    scheduler = _FakeScheduler(
        [
            [_result(_issue(fixable=True)), _result(error="boom")],
            [_result(error="boom")],
        ]
    )
    detector = _FakeDetector([(Path("a.py"),)])
    loop = ReviewLoop(scheduler, detector=detector)  # type: ignore[arg-type]

    summary = await loop.run([_worker()], ["a.py"])

    assert summary.failed_workers == ("bug",)
    assert len(summary.results) == 3


@pytest.mark.parametrize("value", [0, 11, True])
def test_max_iterations_is_bounded(value: int) -> None:
    with pytest.raises(ValueError, match="max_iterations"):
        ReviewLoop(_FakeScheduler([]), max_iterations=value)  # type: ignore[arg-type]


def test_filter_by_priority_keeps_threshold_and_above() -> None:
    issues = [_issue("critical"), _issue("high"), _issue("medium"), _issue("low")]

    assert [issue.priority for issue in filter_by_priority(issues)] == [
        PriorityTier.CRITICAL,
        PriorityTier.HIGH,
        PriorityTier.MEDIUM,
    ]
    assert [issue.priority for issue in filter_by_priority(issues, "HIGH")] == [
        PriorityTier.CRITICAL,
        PriorityTier.HIGH,
    ]
    assert filter_by_priority(issues, PriorityTier.LOW) == issues
