"""Public observability primitives: per-run JSON-lines logging and correlation scopes."""

from review_orchestrator.observability.logging import (
    CORRELATION_KEYS,
    ROOT_LOGGER_NAME,
    LoggingConfig,
    ReviewLogging,
    configure_structlog,
    correlation_scope,
    new_run_id,
    setup_review_logging,
    start_review_logging,
)

__all__ = [
    "CORRELATION_KEYS",
    "ROOT_LOGGER_NAME",
    "LoggingConfig",
    "ReviewLogging",
    "configure_structlog",
    "correlation_scope",
    "new_run_id",
    "setup_review_logging",
    "start_review_logging",
]
