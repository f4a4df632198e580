"""Control plane: tiered scheduling, result caching, and the iterative review loop."""

from review_orchestrator.control_plane.result_cache import CacheIntegrityDegraded, ResultCache
from review_orchestrator.control_plane.review_loop import (
    ChangedFileDetector,
    IterationReport,
    ReviewLoop,
    ReviewSummary,
    filter_by_priority,
)
from review_orchestrator.control_plane.scheduler import (
    SandboxRunner,
    Scheduler,
    SchedulerLimits,
    partition_by_tier,
)

__all__ = [
    "CacheIntegrityDegraded",
    "ChangedFileDetector",
    "IterationReport",
    "ResultCache",
    "ReviewLoop",
    "ReviewSummary",
    "SandboxRunner",
    "Scheduler",
    "SchedulerLimits",
    "filter_by_priority",
    "partition_by_tier",
]
