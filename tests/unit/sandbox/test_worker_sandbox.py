"""
review-orchestrator — unit tests for sandboxed worker runs

File: tests/unit/sandbox/test_worker_sandbox.py

Purpose
- Verify that a worker run always yields an ``ExecutionResult`` with the right
  terminal state, and that launcher resolution and argv assembly are stable.

Functional requirements
- Offline only; the process runner is a scripted fake behind a real ``CommandGuard``.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
from structlog.testing import capture_logs

from review_orchestrator.domain.models import (
    IssueLevel,
    PriorityTier,
    SandboxState,
    Worker,
    WorkerCategory,
)
from review_orchestrator.sandbox.command_guard import CommandGuard, ProcessOutcome
from review_orchestrator.sandbox.worker_sandbox import (
    LauncherNotFoundError,
    LauncherResolver,
    WorkerSandbox,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from pathlib import Path


class _ScriptedRunner:
    def __init__(self, respond: Callable[[tuple[str, ...]], ProcessOutcome]) -> None:
        self._respond = respond
        self.argvs: list[tuple[str, ...]] = []
        self.delay = 0.0

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
        if self.delay:
            await asyncio.sleep(self.delay)
        return self._respond(tuple(argv))


def _worker(**overrides: object) -> Worker:
    fields: dict[str, object] = {
        "id": "security-auditor",
        "display_name": "Security auditor",
        "category": WorkerCategory.SECURITY,
        "priority_tier": PriorityTier.CRITICAL,
        "error_type_taxonomy": ("sql-injection", "xss"),
        "can_auto_fix": True,
        "timeout_seconds": 5.0,
    }
    fields.update(overrides)
    return Worker(**fields)  # type: ignore[arg-type]


def _workspace(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "db.py").write_text("query = 'x'\n", encoding="utf-8")
    (tmp_path / "src" / "view.py").write_text("html = 'y'\n", encoding="utf-8")
    return tmp_path


def _sandbox(root: Path, runner: _ScriptedRunner, **kwargs: object) -> WorkerSandbox:
    guard = CommandGuard(runner=runner, workspace_root=root, environ={})
    launcher = LauncherResolver(guard, launcher="claude")
    return WorkerSandbox(root, guard, launcher=launcher, **kwargs)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_successful_run_parses_issues(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    stdout = (
        "ERROR: SQL injection in src/db.py:42\n"
        "WARNING: possible XSS at src/view.py:7\n"
        "done\n"
    )
    runner = _ScriptedRunner(lambda argv: ProcessOutcome(0, stdout, ""))

    result = await _sandbox(root, runner).run(_worker(), ["src/db.py", "src/view.py"])

    assert result.state is SandboxState.COMPLETED
    assert result.error is None
    assert result.worker_id == "security-auditor"
    assert len(result.sandbox_id) == 16
    assert result.raw_output_digest
    assert result.execution_time_ms >= 0
    assert [issue.level for issue in result.issues] == [IssueLevel.ERROR, IssueLevel.WARNING]
    first = result.issues[0]
    assert (first.file, first.line, first.type) == ("src/db.py", 42, "sql-injection")
    assert first.auto_fix_available is True
    assert result.issues[1].type == "xss"


@pytest.mark.asyncio
async def test_launcher_argv_shape(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    runner = _ScriptedRunner(lambda argv: ProcessOutcome(0, "", ""))

    await _sandbox(root, runner, max_memory_bytes=1024).run(
        _worker(model_tag="opus"), ["src/db.py"], iteration=2
    )

    assert runner.argvs == [
        (
            "claude",
            "agent",
            "run",
            "security-auditor",
            "--model",
            "opus",
            "--target",
            str(root.resolve()),
            "--sandbox-mode",
            "--files",
            str(root.resolve() / "src" / "db.py"),
            "--iteration",
            "2",
            "--max-memory",
            "1024",
            "--timeout",
            "5000",
        )
    ]


@pytest.mark.asyncio
async def test_first_iteration_omits_iteration_flag(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    runner = _ScriptedRunner(lambda argv: ProcessOutcome(0, "", ""))

    result = await _sandbox(root, runner).run(_worker(), [])

    assert "--iteration" not in runner.argvs[0]
    assert "--files" not in runner.argvs[0]
    assert result.issues == []
    assert result.raw_output_digest == ""


@pytest.mark.asyncio
async def test_timeout_yields_timed_out_state(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    runner = _ScriptedRunner(lambda argv: ProcessOutcome(0, "ERROR: late\n", ""))
    runner.delay = 5.0

    result = await _sandbox(root, runner).run(_worker(timeout_seconds=0.05), ["src/db.py"])

    assert result.state is SandboxState.TIMED_OUT
    assert result.error == "worker security-auditor timed out after 0.05 seconds"
    assert result.issues == []
    assert len(runner.argvs) == 1


@pytest.mark.asyncio
async def test_non_zero_exit_yields_failed_state(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    runner = _ScriptedRunner(
        lambda argv: ProcessOutcome(2, "ERROR: ignored\n", "warming up\nmodel quota exhausted\n")
    )

    result = await _sandbox(root, runner).run(_worker(), ["src/db.py"])

    assert result.state is SandboxState.FAILED
    assert result.error == "worker security-auditor exited with status 2: model quota exhausted"
    assert result.issues == []


@pytest.mark.asyncio
async def test_invalid_file_fails_without_spawning(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    runner = _ScriptedRunner(lambda argv: ProcessOutcome(0, "", ""))

    result = await _sandbox(root, runner).run(_worker(), ["../outside.py"])

    assert result.state is SandboxState.FAILED
    assert result.error is not None
    assert "parent directory traversal" in result.error
    assert runner.argvs == []


@pytest.mark.asyncio
async def test_failure_messages_are_sanitized(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    stderr = "cannot read /home/alice/.config password=hunter22\n"
    runner = _ScriptedRunner(lambda argv: ProcessOutcome(1, "", stderr))

    result = await _sandbox(root, runner).run(_worker(), ["src/db.py"])

    assert result.error is not None
    assert "alice" not in result.error
    assert "hunter22" not in result.error
    assert "[REDACTED:password]" in result.error


@pytest.mark.asyncio
async def test_invalid_iteration_is_reported_as_failure(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    runner = _ScriptedRunner(lambda argv: ProcessOutcome(0, "", ""))

    result = await _sandbox(root, runner).run(_worker(), ["src/db.py"], iteration=0)

    assert result.state is SandboxState.FAILED
    assert result.error == "iteration must be &gt;= 1"


@pytest.mark.asyncio
async def test_cancellation_propagates(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    runner = _ScriptedRunner(lambda argv: ProcessOutcome(0, "", ""))
    runner.delay = 5.0

    task = asyncio.create_task(_sandbox(root, runner).run(_worker(), ["src/db.py"]))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_launcher_discovery_picks_first_responding_candidate(tmp_path: Path) -> None:
    def respond(argv: tuple[str, ...]) -> ProcessOutcome:
        if argv == ("claude-code", "--version"):
            return ProcessOutcome(127, "", "not found")
        return ProcessOutcome(0, "1.0.0\n", "")

    runner = _ScriptedRunner(respond)
    guard = CommandGuard(runner=runner, workspace_root=tmp_path, environ={})
    resolver = LauncherResolver(guard)

    assert await resolver.resolve() == "claude"
    assert await resolver.resolve() == "claude"
    assert runner.argvs == [("claude-code", "--version"), ("claude", "--version")]


@pytest.mark.asyncio
async def test_launcher_discovery_fails_when_nothing_answers(tmp_path: Path) -> None:
    runner = _ScriptedRunner(lambda argv: ProcessOutcome(1, "", ""))
    guard = CommandGuard(runner=runner, workspace_root=tmp_path, environ={})

    with pytest.raises(LauncherNotFoundError, match="claude-code, claude"):
        await LauncherResolver(guard).resolve()


@pytest.mark.asyncio
async def test_candidate_failures_are_logged_without_home_path_or_credentials(
    tmp_path: Path,
) -> None:
    def unlaunchable(argv: tuple[str, ...]) -> ProcessOutcome:
        raise OSError(f"cannot exec /home/alice/bin/{argv[0]} token=abcdef123456")

    guard = CommandGuard(runner=_ScriptedRunner(unlaunchable), workspace_root=tmp_path, environ={})

    with capture_logs() as events, pytest.raises(LauncherNotFoundError):
        await LauncherResolver(guard).resolve()

    failures = [entry for entry in events if entry["event"] == "launcher_candidate_failed"]
    assert [entry["launcher"] for entry in failures] == ["claude-code", "claude"]
    assert failures[0]["error"] == (
        "unable to start 'claude-code': "
        "cannot exec /home/<user>/bin/claude-code token=[REDACTED:token]"
    )
    assert "alice" not in str(events)
    assert "abcdef123456" not in str(events)


@pytest.mark.asyncio
async def test_missing_launcher_is_a_failed_run(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    runner = _ScriptedRunner(lambda argv: ProcessOutcome(1, "", ""))
    guard = CommandGuard(runner=runner, workspace_root=root, environ={})

    result = await WorkerSandbox(root, guard).run(_worker(), ["src/db.py"])

    assert result.state is SandboxState.FAILED
    assert result.error is not None
    assert "no worker launcher available" in result.error


def test_constructor_validates_limits(tmp_path: Path) -> None:
    guard = CommandGuard(environ={})

    with pytest.raises(ValueError, match="max_memory_bytes"):
        WorkerSandbox(tmp_path, guard, max_memory_bytes=0)
    with pytest.raises(ValueError, match="max_output_bytes"):
        WorkerSandbox(tmp_path, guard, max_output_bytes=0)
