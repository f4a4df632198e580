"""
review-orchestrator — runtime settings and worker catalog loader.

File: src/review_orchestrator/config/loader.py

Purpose
- Load effective settings from defaults, a TOML file, env vars, and explicit overrides.
- Load the worker catalog from YAML, or fall back to the built-in reviewers.

What should be included in this file
- Precedence logic: overrides > env (REVIEW_) > file > defaults.
- TOML loading via ``tomllib``; YAML via ``yaml.safe_load``.
- Deterministic environment variable mapping and coercion.

Functional requirements
- Invalid settings raise ``ConfigLoadError``; invalid catalogs raise ``CatalogError``.
- Disabled workers (``enabled: false`` or listed in settings) are dropped.

Non-functional requirements
- Keep loading deterministic and reproducible.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Literal

import yaml

from review_orchestrator.config.schema import (
    SETTING_NAMES,
    ConfigValidationError,
    ReviewSettings,
    validate_settings,
)
from review_orchestrator.domain.models import PriorityTier, Worker, WorkerCategory

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_CONFIG_FILE: Final[str] = "review.toml"
CONFIG_TABLE: Final[str] = "review"
ENV_PREFIX: Final[str] = "REVIEW_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

# Descriptive catalog keys that carry no runtime meaning.
_IGNORED_CATALOG_KEYS: Final[frozenset[str]] = frozenset({"role", "description"})


@dataclass(frozen=True, slots=True)
class _Binding:
    name: str
    value_type: Literal["str", "int", "float", "bool", "list"]


_BINDINGS: Final[tuple[_Binding, ...]] = (
    _Binding("max_concurrency", "int"),
    _Binding("cache_enabled", "bool"),
    _Binding("cache_ttl_seconds", "float"),
    _Binding("cache_capacity", "int"),
    _Binding("cache_bucket_seconds", "float"),
    _Binding("command_timeout_seconds", "float"),
    _Binding("max_output_bytes", "int"),
    _Binding("max_memory_bytes", "int"),
    _Binding("max_path_length", "int"),
    _Binding("max_iterations", "int"),
    _Binding("escape_markup", "bool"),
    _Binding("launcher", "str"),
    _Binding("disabled_workers", "list"),
    _Binding("log_level", "str"),
)


class ConfigLoadError(ValueError):
    """Raised when settings cannot be loaded or overrides cannot be coerced."""


class CatalogError(ValueError):
    """Raised when a worker catalog is malformed."""


def load_settings(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> ReviewSettings:
    """Load effective settings with precedence: overrides > env > file > defaults."""

    resolved_path = _resolve_config_path(config_path)
    env_map = dict(os.environ if environ is None else environ)

    merged: dict[str, Any] = {}
    merged.update(_load_toml_file(resolved_path, required=config_path is not None))
    merged.update(_collect_env_overrides(env_map))
    for key in sorted(overrides or {}):
        if key not in SETTING_NAMES:
            raise ConfigLoadError(f"unknown override {key!r}")
        merged[key] = (overrides or {})[key]

    try:
        return validate_settings(merged)
    except ConfigValidationError as exc:
        raise ConfigLoadError(str(exc)) from exc


def load_worker_catalog(
    path: str | Path,
    *,
    disabled: Iterable[str] = (),
) -> tuple[Worker, ...]:
    """Load and validate a YAML worker catalog from ``path``."""

    catalog_path = Path(path).expanduser()
    try:
        with catalog_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise CatalogError(f"invalid YAML in {catalog_path}: {exc}") from exc
    except OSError as exc:
        raise CatalogError(f"unable to read worker catalog {catalog_path}: {exc}") from exc
    return parse_worker_catalog(payload, disabled=disabled)


def parse_worker_catalog(
    payload: object,
    *,
    disabled: Iterable[str] = (),
) -> tuple[Worker, ...]:
    """Validate a decoded catalog payload of the form ``{"workers": [...]}``."""

    if not isinstance(payload, Mapping):
        raise CatalogError("catalog root must be a mapping with a 'workers' list")
    unknown = sorted(str(key) for key in payload if key != "workers")
    if unknown:
        raise CatalogError(f"unknown catalog field(s): {', '.join(unknown)}")
    entries = payload.get("workers")
    if not isinstance(entries, list):
        raise CatalogError("catalog 'workers' must be a list")

    skipped = frozenset(disabled)
    workers: list[Worker] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise CatalogError(f"workers[{index}] must be a mapping")
        fields = {
            str(key): value for key, value in entry.items() if key not in _IGNORED_CATALOG_KEYS
        }
        enabled = fields.pop("enabled", True)
        if not isinstance(enabled, bool):
            raise CatalogError(f"workers[{index}].enabled must be a boolean")
        try:
            worker = Worker.from_dict(fields)
        except ValueError as exc:
            raise CatalogError(f"workers[{index}]: {exc}") from exc
        if worker.id in seen:
            raise CatalogError(f"duplicate worker id {worker.id!r}")
        seen.add(worker.id)
        if enabled and worker.id not in skipped:
            workers.append(worker)
    return tuple(workers)


def default_worker_catalog(*, disabled: Iterable[str] = ()) -> tuple[Worker, ...]:
    """Return the built-in reviewers, one per priority tier."""

    skipped = frozenset(disabled)
    builtin = (
        Worker(
            id="security-error-xss-analyzer",
            display_name="Security and XSS analyzer",
            category=WorkerCategory.SECURITY,
            priority_tier=PriorityTier.CRITICAL,
            model_tag="sonnet",
            error_type_taxonomy=("xss", "sql-injection", "csrf", "auth-bypass", "data-exposure"),
            can_auto_fix=True,
        ),
        Worker(
            id="super-debugger-perfectionist",
            display_name="Bug and performance debugger",
            category=WorkerCategory.BUG,
            priority_tier=PriorityTier.HIGH,
            model_tag="sonnet",
            error_type_taxonomy=(
                "bug",
                "logic-error",
                "memory-leak",
                "performance",
                "race-condition",
            ),
            can_auto_fix=True,
        ),
        Worker(
            id="deep-code-reviewer",
            display_name="Deep code reviewer",
            category=WorkerCategory.QUALITY,
            priority_tier=PriorityTier.MEDIUM,
            model_tag="opus",
            error_type_taxonomy=(
                "architecture",
                "design-pattern",
                "code-smell",
                "complexity",
                "duplication",
            ),
            can_auto_fix=False,
        ),
        Worker(
            id="project-documentation-updater",
            display_name="Project documentation updater",
            category=WorkerCategory.DOCUMENTATION,
            priority_tier=PriorityTier.LOW,
            model_tag="opus",
            error_type_taxonomy=(
                "missing-docs",
                "outdated-docs",
                "inconsistent-docs",
                "unclear-docs",
            ),
            can_auto_fix=True,
        ),
    )
    return tuple(worker for worker in builtin if worker.id not in skipped)


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    table = parsed.get(CONFIG_TABLE, {})
    if not isinstance(table, dict):
        raise ConfigLoadError(f"[{CONFIG_TABLE}] must be a table: {path}")
    return dict(table)


def _collect_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for binding in _BINDINGS:
        env_name = _env_name_for(binding.name)
        raw = environ.get(env_name)
        if raw is None:
            continue
        overrides[binding.name] = _coerce_env(raw, binding.value_type, env_name)
    return overrides


def _coerce_env(
    raw: str,
    value_type: Literal["str", "int", "float", "bool", "list"],
    env_name: str,
) -> object:
    value = raw.strip()
    if value_type == "str":
        return value
    if value_type == "list":
        return [item.strip() for item in value.split(",") if item.strip()]
    if value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} must be an integer") from exc
    if value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(f"{env_name} must be a boolean (true/false/1/0/yes/no/on/off)")


def _env_name_for(name: str) -> str:
    return ENV_PREFIX + name.upper()


__all__ = [
    "CONFIG_TABLE",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "CatalogError",
    "ConfigLoadError",
    "default_worker_catalog",
    "load_settings",
    "load_worker_catalog",
    "parse_worker_catalog",
]
