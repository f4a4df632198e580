"""
review-orchestrator config package public API.

File: src/review_orchestrator/config/__init__.py

Purpose
- Export settings loading/validation entrypoints, the worker catalog loaders,
  and public error types.

Functional requirements
- Support loading from ``review.toml`` + ``REVIEW_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from review_orchestrator.config.loader import (
    CONFIG_TABLE,
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    CatalogError,
    ConfigLoadError,
    default_worker_catalog,
    load_settings,
    load_worker_catalog,
    parse_worker_catalog,
)
from review_orchestrator.config.schema import (
    LOG_LEVELS,
    ConfigValidationError,
    ConfigValidationIssue,
    ReviewSettings,
    default_settings,
    dump_redacted,
    validate_settings,
)

__all__ = [
    "CONFIG_TABLE",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LOG_LEVELS",
    "CatalogError",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ReviewSettings",
    "default_settings",
    "default_worker_catalog",
    "dump_redacted",
    "load_settings",
    "load_worker_catalog",
    "parse_worker_catalog",
    "validate_settings",
]
