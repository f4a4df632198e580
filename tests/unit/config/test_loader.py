"""
review-orchestrator — unit tests for settings and worker catalog loading

File: tests/unit/config/test_loader.py

Purpose
- Verify layered settings precedence, environment coercion, and catalog validation.

Functional requirements
- Offline only; every file lives under ``tmp_path``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from review_orchestrator.config.loader import (
    CatalogError,
    ConfigLoadError,
    default_worker_catalog,
    load_settings,
    load_worker_catalog,
    parse_worker_catalog,
)
from review_orchestrator.domain.models import PriorityTier, WorkerCategory

if TYPE_CHECKING:
    from pathlib import Path


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_when_no_file_and_no_env(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.chdir(tmp_path)

    settings = load_settings(environ={})

    assert settings.max_concurrency == 4
    assert settings.cache_enabled is True


def test_default_file_in_working_directory_is_read(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _write(tmp_path / "review.toml", "[review]\nmax_concurrency = 2\n")
    monkeypatch.chdir(tmp_path)

    assert load_settings(environ={}).max_concurrency == 2


def test_precedence_overrides_env_file_defaults(tmp_path: Path) -> None:
    config = _write(
        tmp_path / "custom.toml",
        "[review]\nmax_concurrency = 2\nmax_iterations = 3\ncache_capacity = 50\n",
    )
    environ = {"REVIEW_MAX_CONCURRENCY": "6", "REVIEW_MAX_ITERATIONS": "7"}

    settings = load_settings(config, environ=environ, overrides={"max_iterations": 8})

    assert settings.cache_capacity == 50
    assert settings.max_concurrency == 6
    assert settings.max_iterations == 8


def test_unrelated_tables_are_ignored(tmp_path: Path) -> None:
    config = _write(
        tmp_path / "custom.toml",
        "[tool.other]\nx = 1\n[review]\nlog_level = 'warning'\n",
    )

    assert load_settings(config, environ={}).log_level == "WARNING"


@pytest.mark.parametrize(
    ("name", "raw", "field", "expected"),
    [
        ("REVIEW_CACHE_ENABLED", "off", "cache_enabled", False),
        ("REVIEW_ESCAPE_MARKUP", "No", "escape_markup", False),
        ("REVIEW_CACHE_TTL_SECONDS", "30.5", "cache_ttl_seconds", 30.5),
        ("REVIEW_DISABLED_WORKERS", "a, b,,c", "disabled_workers", ("a", "b", "c")),
        ("REVIEW_LAUNCHER", " claude ", "launcher", "claude"),
    ],
)
def test_environment_values_are_coerced(
    tmp_path: Path,
    name: str,
    raw: str,
    field: str,
    expected: object,
) -> None:
    config = _write(tmp_path / "empty.toml", "")

    settings = load_settings(config, environ={name: raw})

    assert getattr(settings, field) == expected


@pytest.mark.parametrize(
    ("name", "raw", "message"),
    [
        ("REVIEW_MAX_CONCURRENCY", "four", "must be an integer"),
        ("REVIEW_CACHE_TTL_SECONDS", "soon", "must be a number"),
        ("REVIEW_CACHE_ENABLED", "maybe", "must be a boolean"),
    ],
)
def test_uncoercible_environment_values_fail(
    tmp_path: Path,
    name: str,
    raw: str,
    message: str,
) -> None:
    config = _write(tmp_path / "empty.toml", "")

    with pytest.raises(ConfigLoadError, match=message):
        load_settings(config, environ={name: raw})


def test_missing_explicit_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_settings(tmp_path / "absent.toml", environ={})


def test_invalid_toml_is_an_error(tmp_path: Path) -> None:
    config = _write(tmp_path / "broken.toml", "[review\n")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_settings(config, environ={})


def test_non_table_review_section_is_an_error(tmp_path: Path) -> None:
    config = _write(tmp_path / "odd.toml", "review = 3\n")

    with pytest.raises(ConfigLoadError, match="must be a table"):
        load_settings(config, environ={})


def test_validation_failures_surface_as_load_errors(tmp_path: Path) -> None:
    config = _write(tmp_path / "bad.toml", "[review]\nmax_concurrency = 40\n")

    with pytest.raises(ConfigLoadError, match=r"review\.max_concurrency: must be <= 10"):
        load_settings(config, environ={})


def test_unknown_override_is_rejected(tmp_path: Path) -> None:
    config = _write(tmp_path / "empty.toml", "")

    with pytest.raises(ConfigLoadError, match="unknown override 'threads'"):
        load_settings(config, environ={}, overrides={"threads": 3})


_CATALOG = """\
workers:
  - id: security-auditor
    name: Security auditor
    role: Finds vulnerabilities
    category: security
    priority: critical
    error_types: [xss, sql-injection]
    can_auto_fix: true
  - id: doc-writer
    name: Doc writer
    description: Keeps docs current
    category: documentation
    priority: low
    model: opus
    enabled: false
  - id: style-checker
    name: Style checker
    category: quality
    priority: medium
    timeout_seconds: 30
"""


def test_yaml_catalog_is_loaded_and_filtered(tmp_path: Path) -> None:
    catalog = _write(tmp_path / "workers.yaml", _CATALOG)

    workers = load_worker_catalog(catalog, disabled=["style-checker"])

    assert [worker.id for worker in workers] == ["security-auditor"]
    auditor = workers[0]
    assert auditor.category is WorkerCategory.SECURITY
    assert auditor.priority_tier is PriorityTier.CRITICAL
    assert auditor.error_type_taxonomy == ("xss", "sql-injection")
    assert auditor.can_auto_fix is True


def test_catalog_keeps_enabled_workers_in_order(tmp_path: Path) -> None:
    workers = load_worker_catalog(_write(tmp_path / "workers.yaml", _CATALOG))

    assert [(worker.id, worker.timeout_seconds) for worker in workers] == [
        ("security-auditor", 120.0),
        ("style-checker", 30.0),
    ]


def test_invalid_yaml_is_a_catalog_error(tmp_path: Path) -> None:
    catalog = _write(tmp_path / "workers.yaml", "workers: [\n")

    with pytest.raises(CatalogError, match="invalid YAML"):
        load_worker_catalog(catalog)


def test_missing_catalog_file_is_a_catalog_error(tmp_path: Path) -> None:
    with pytest.raises(CatalogError, match="unable to read worker catalog"):
        load_worker_catalog(tmp_path / "missing.yaml")


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        ([], "catalog root must be a mapping"),
        ({"workers": [], "extra": 1}, "unknown catalog field"),
        ({"workers": {}}, "must be a list"),
        ({"workers": ["sec"]}, r"workers\[0\] must be a mapping"),
        (
            {"workers": [{"id": "a", "name": "A", "category": "bug", "priority": "p0"}]},
            r"workers\[0\]: Worker\['a'\]\.priority",
        ),
        (
            {
                "workers": [
                    {"id": "a", "name": "A", "category": "bug", "priority": "low", "enabled": 1}
                ]
            },
            r"workers\[0\]\.enabled must be a boolean",
        ),
        (
            {
                "workers": [
                    {"id": "a", "name": "A", "category": "bug", "priority": "low"},
                    {
                        "id": "a",
                        "name": "Again",
                        "category": "bug",
                        "priority": "low",
                        "enabled": False,
                    },
                ]
            },
            "duplicate worker id 'a'",
        ),
    ],
)
def test_malformed_catalogs_are_rejected(payload: object, message: str) -> None:
    with pytest.raises(CatalogError, match=message):
        parse_worker_catalog(payload)


def test_default_catalog_covers_every_tier() -> None:
    workers = default_worker_catalog()

    assert [worker.priority_tier for worker in workers] == [
        PriorityTier.CRITICAL,
        PriorityTier.HIGH,
        PriorityTier.MEDIUM,
        PriorityTier.LOW,
    ]
    assert [worker.can_auto_fix for worker in workers] == [True, True, False, True]


def test_default_catalog_honors_disabled_ids() -> None:
    workers = default_worker_catalog(disabled=["deep-code-reviewer"])

    assert "deep-code-reviewer" not in {worker.id for worker in workers}
    assert len(workers) == 3
