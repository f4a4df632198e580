"""
review-orchestrator — tiered worker scheduler

File: src/review_orchestrator/control_plane/scheduler.py

Purpose
- Execute a batch of workers over one file set in strict priority-tier order,
  with bounded fan-out inside each tier.

What should be included in this file
- Tier partitioning (critical, high, medium, low; empty tiers dropped).
- Per-tier all-settled join under a fresh concurrency limit.
- Cache lookup before, and population after, each sandbox run.

Functional requirements
- No worker of a lower tier starts before every worker of a higher tier finished.
- Results keep input order within a tier; tiers are concatenated in rank order.
- A failing, timing-out or raising worker never aborts its siblings.

Non-functional requirements
- Cache key derivation reads files and runs off the event loop.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from review_orchestrator.constants import DEFAULT_MAX_CONCURRENCY, MAX_CONCURRENCY_LIMIT
from review_orchestrator.domain.models import ExecutionResult, PriorityTier, SandboxState
from review_orchestrator.security.redaction import OutputSanitizer
from review_orchestrator.utils.concurrency import gather_settled

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from review_orchestrator.control_plane.result_cache import ResultCache
    from review_orchestrator.domain.models import Worker


class SandboxRunner(Protocol):
    """Anything that runs one worker and returns its result."""

    async def run(
        self,
        worker: Worker,
        files: Sequence[Path | str],
        iteration: int = 1,
    ) -> ExecutionResult: ...


@dataclass(frozen=True, slots=True)
class SchedulerLimits:
    """Fan-out limits applied inside each priority tier."""

    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    def __post_init__(self) -> None:
        if isinstance(self.max_concurrency, bool) or not isinstance(self.max_concurrency, int):
            raise ValueError("max_concurrency must be an integer")
        if not 1 <= self.max_concurrency <= MAX_CONCURRENCY_LIMIT:
            raise ValueError(f"max_concurrency must be between 1 and {MAX_CONCURRENCY_LIMIT}")


def partition_by_tier(workers: Sequence[Worker]) -> list[tuple[PriorityTier, list[Worker]]]:
    """Group ``workers`` by priority tier in execution order, keeping input order."""

    tiers: dict[PriorityTier, list[Worker]] = {}
    for worker in workers:
        tiers.setdefault(worker.priority_tier, []).append(worker)
    return sorted(tiers.items(), key=lambda item: item[0].rank)


class Scheduler:
    """Run workers tier by tier through a sandbox, consulting an optional cache."""

    __slots__ = ("_cache", "_limits", "_logger", "_sandbox", "_sanitizer")

    def __init__(
        self,
        sandbox: SandboxRunner,
        *,
        cache: ResultCache | None = None,
        limits: SchedulerLimits | None = None,
        sanitizer: OutputSanitizer | None = None,
        logger: Any | None = None,
    ) -> None:
        self._sandbox = sandbox
        self._cache = cache
        self._limits = limits if limits is not None else SchedulerLimits()
        self._sanitizer = sanitizer if sanitizer is not None else OutputSanitizer(markup=True)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def limits(self) -> SchedulerLimits:
        return self._limits

    @property
    def cache(self) -> ResultCache | None:
        return self._cache

    async def execute_all(
        self,
        workers: Sequence[Worker],
        files: Sequence[Path | str],
        iteration: int = 1,
    ) -> list[ExecutionResult]:
        if iteration < 1:
            raise ValueError("iteration must be >= 1")
        file_list = list(files)
        results: list[ExecutionResult] = []

        for tier, members in partition_by_tier(workers):
            limit = min(self._limits.max_concurrency, len(members))
            self._logger.info(
                "scheduler_tier_started",
                tier=tier.value,
                workers=len(members),
                concurrency=limit,
                iteration=iteration,
            )
            started = time.perf_counter()
            settled = await gather_settled(
                (self._run_one(worker, file_list, iteration) for worker in members),
                limit=limit,
            )
            tier_results = [
                outcome
                if isinstance(outcome, ExecutionResult)
                else self._error_result(worker, outcome)
                for worker, outcome in zip(members, settled, strict=True)
            ]
            self._logger.info(
                "scheduler_tier_finished",
                tier=tier.value,
                workers=len(members),
                failed=sum(1 for result in tier_results if result.error is not None),
                cached=sum(1 for result in tier_results if result.cached),
                duration_ms=round((time.perf_counter() - started) * 1000.0, 3),
            )
            results.extend(tier_results)
        return results

    async def _run_one(
        self,
        worker: Worker,
        files: list[Path | str],
        iteration: int,
    ) -> ExecutionResult:
        cache = self._cache
        key: str | None = None
        if cache is not None:
            key = await asyncio.to_thread(cache.key, worker, files, iteration)
            hit = cache.get(key)
            if hit is not None:
                hit.cached = True
                self._logger.debug("scheduler_cache_hit", worker_id=worker.id)
                return hit

        result = await self._sandbox.run(worker, files, iteration)
        if cache is not None and key is not None and result.error is None:
            cache.put(key, result)
        return result

    def _error_result(self, worker: Worker, error: BaseException) -> ExecutionResult:
        if isinstance(error, asyncio.CancelledError):
            raise error
        message = self._sanitizer.sanitize_error(error)
        self._logger.warning(
            "scheduler_worker_errored",
            worker_id=worker.id,
            error_type=type(error).__name__,
            error=message,
        )
        return ExecutionResult(
            worker_id=worker.id,
            worker_name=worker.display_name,
            error=message,
            state=SandboxState.FAILED,
        )


__all__ = [
    "SandboxRunner",
    "Scheduler",
    "SchedulerLimits",
    "partition_by_tier",
]
