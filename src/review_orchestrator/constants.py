"""Stable constants shared across the review orchestration core."""

from __future__ import annotations

from typing import Final

# Priority tiers in execution order.
PRIORITY_TIERS: Final[tuple[str, ...]] = ("critical", "high", "medium", "low")

# Result cache.
CACHE_TTL_SECONDS: Final[float] = 15 * 60.0
CACHE_CAPACITY: Final[int] = 100
CACHE_BUCKET_SECONDS: Final[float] = 15 * 60.0
CACHE_MAX_FILE_BYTES: Final[int] = 10 * 1024 * 1024

# Issue parsing bounds.
PARSER_MAX_INPUT_CHARS: Final[int] = 1024 * 1024
PARSER_MAX_MESSAGE_CHARS: Final[int] = 500
PARSER_MAX_FILE_CHARS: Final[int] = 200
PARSER_MAX_MATCHES_PER_LEVEL: Final[int] = 100
PARSER_MAX_TOTAL_ISSUES: Final[int] = 1000
PARSER_MAX_LINE_NUMBER: Final[int] = 1_000_000

# Command execution.
ALLOWED_COMMANDS: Final[frozenset[str]] = frozenset({"git", "mkdir", "claude-code", "claude"})
LAUNCHER_CANDIDATES: Final[tuple[str, ...]] = ("claude-code", "claude")
LAUNCHER_DISCOVERY_TIMEOUT_SECONDS: Final[float] = 1.0
COMMAND_TIMEOUT_SECONDS: Final[float] = 60.0
MAX_OUTPUT_BYTES: Final[int] = 10 * 1024 * 1024
MAX_ARGUMENT_BYTES: Final[int] = 128 * 1024
SHELL_METACHARACTERS: Final[frozenset[str]] = frozenset(";&|`$()<>\n\r\t")

# Worker sandbox.
WORKER_TIMEOUT_SECONDS: Final[float] = 120.0
MAX_MEMORY_BYTES: Final[int] = 512 * 1024 * 1024
MAX_RESTRICTED_COMMAND_CHARS: Final[int] = 1000
MAX_PATH_LENGTH: Final[int] = 1024

# Scheduling and review iterations.
DEFAULT_MAX_CONCURRENCY: Final[int] = 4
MAX_CONCURRENCY_LIMIT: Final[int] = 10
DEFAULT_MAX_ITERATIONS: Final[int] = 5
MAX_ITERATIONS_LIMIT: Final[int] = 10

__all__ = [
    "ALLOWED_COMMANDS",
    "CACHE_BUCKET_SECONDS",
    "CACHE_CAPACITY",
    "CACHE_MAX_FILE_BYTES",
    "CACHE_TTL_SECONDS",
    "COMMAND_TIMEOUT_SECONDS",
    "DEFAULT_MAX_CONCURRENCY",
    "DEFAULT_MAX_ITERATIONS",
    "LAUNCHER_CANDIDATES",
    "LAUNCHER_DISCOVERY_TIMEOUT_SECONDS",
    "MAX_ARGUMENT_BYTES",
    "MAX_CONCURRENCY_LIMIT",
    "MAX_ITERATIONS_LIMIT",
    "MAX_MEMORY_BYTES",
    "MAX_OUTPUT_BYTES",
    "MAX_PATH_LENGTH",
    "MAX_RESTRICTED_COMMAND_CHARS",
    "PARSER_MAX_FILE_CHARS",
    "PARSER_MAX_INPUT_CHARS",
    "PARSER_MAX_LINE_NUMBER",
    "PARSER_MAX_MATCHES_PER_LEVEL",
    "PARSER_MAX_MESSAGE_CHARS",
    "PARSER_MAX_TOTAL_ISSUES",
    "PRIORITY_TIERS",
    "SHELL_METACHARACTERS",
    "WORKER_TIMEOUT_SECONDS",
]
