"""
review-orchestrator — worker output parsing

File: src/review_orchestrator/parsing/issue_parser.py

Purpose
- Turn a worker's free-form stdout into structured ``Issue`` records.

What should be included in this file
- The ``IssueParser`` strategy protocol and the default marker-based parser.
- Bounded scanning: input truncation, bounded message capture, match caps.
- File/line extraction and taxonomy classification.

Functional requirements
- Markers are case-sensitive: ``ERROR|エラー|🔴``, ``WARNING|警告|🟡``,
  ``INFO|情報|🔵``, ``SUGGESTION|提案|💡`` followed by ``:`` and a message.
- Scanning stops as soon as a per-level or total cap is reached.
- Message and file text pass through the output sanitizer.

Non-functional requirements
- Linear-time patterns only; no unbounded or nested quantifiers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Protocol

from review_orchestrator.constants import (
    PARSER_MAX_FILE_CHARS,
    PARSER_MAX_INPUT_CHARS,
    PARSER_MAX_LINE_NUMBER,
    PARSER_MAX_MATCHES_PER_LEVEL,
    PARSER_MAX_MESSAGE_CHARS,
    PARSER_MAX_TOTAL_ISSUES,
)
from review_orchestrator.domain.models import Issue, IssueLevel
from review_orchestrator.security.redaction import OutputSanitizer

if TYPE_CHECKING:
    from review_orchestrator.domain.models import Worker

GENERAL_ISSUE_TYPE: Final[str] = "general"

LEVEL_MARKERS: Final[tuple[tuple[IssueLevel, tuple[str, ...]], ...]] = (
    (IssueLevel.ERROR, ("ERROR", "エラー", "🔴")),
    (IssueLevel.WARNING, ("WARNING", "警告", "🟡")),
    (IssueLevel.INFO, ("INFO", "情報", "🔵")),
    (IssueLevel.SUGGESTION, ("SUGGESTION", "提案", "💡")),
)

_TRAILING_PUNCTUATION: Final[str] = ".,;)]}'\""


class IssueParser(Protocol):
    """Strategy that extracts issues from raw worker output."""

    def parse(self, raw_text: str, worker: Worker) -> list[Issue]: ...


@dataclass(frozen=True, slots=True)
class ParserLimits:
    """Bounds applied while scanning worker output."""

    max_input_chars: int = PARSER_MAX_INPUT_CHARS
    max_message_chars: int = PARSER_MAX_MESSAGE_CHARS
    max_file_chars: int = PARSER_MAX_FILE_CHARS
    max_matches_per_level: int = PARSER_MAX_MATCHES_PER_LEVEL
    max_total_issues: int = PARSER_MAX_TOTAL_ISSUES

    def __post_init__(self) -> None:
        for name in (
            "max_input_chars",
            "max_message_chars",
            "max_file_chars",
            "max_matches_per_level",
            "max_total_issues",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")


class PatternIssueParser:
    """Marker-based parser for the line-oriented output format workers emit."""

    __slots__ = ("_file_pattern", "_level_patterns", "_limits", "_sanitizer")

    def __init__(
        self,
        *,
        sanitizer: OutputSanitizer | None = None,
        limits: ParserLimits | None = None,
    ) -> None:
        self._sanitizer = sanitizer if sanitizer is not None else OutputSanitizer()
        self._limits = limits if limits is not None else ParserLimits()
        self._level_patterns = tuple(
            (level, _compile_marker_pattern(markers, self._limits.max_message_chars))
            for level, markers in LEVEL_MARKERS
        )
        self._file_pattern = re.compile(
            r"(?:(?<![A-Za-z0-9_])(?:in|at)\s+|ファイル:?\s*)"
            rf"([^\s:]{{1,{self._limits.max_file_chars}}})"
            r"(?::(\d{1,9}))?"
        )

    @property
    def limits(self) -> ParserLimits:
        return self._limits

    def parse(self, raw_text: str, worker: Worker) -> list[Issue]:
        if not isinstance(raw_text, str) or not raw_text:
            return []
        text = raw_text[: self._limits.max_input_chars]

        issues: list[Issue] = []
        for level, pattern in self._level_patterns:
            level_count = 0
            for match in pattern.finditer(text):
                if len(issues) >= self._limits.max_total_issues:
                    return issues
                if level_count >= self._limits.max_matches_per_level:
                    break
                message = match.group(1).strip()
                if not message:
                    continue
                issues.append(self._build_issue(level, message, worker))
                level_count += 1
        return issues

    def _build_issue(self, level: IssueLevel, message: str, worker: Worker) -> Issue:
        file_name, line = self._extract_location(message)
        return Issue(
            level=level,
            message=self._sanitizer.sanitize(message),
            category=worker.category,
            priority=worker.priority_tier,
            source_worker_id=worker.id,
            type=classify_issue_type(message, worker.error_type_taxonomy),
            file=self._sanitizer.sanitize_optional(file_name),
            line=line,
            auto_fix_available=worker.can_auto_fix,
        )

    def _extract_location(self, message: str) -> tuple[str | None, int | None]:
        match = self._file_pattern.search(message)
        if match is None:
            return None, None
        file_name = match.group(1).rstrip(_TRAILING_PUNCTUATION) or None
        line: int | None = None
        if match.group(2) is not None:
            candidate = int(match.group(2))
            if 0 < candidate < PARSER_MAX_LINE_NUMBER:
                line = candidate
        return file_name, line


def classify_issue_type(message: str, taxonomy: tuple[str, ...]) -> str:
    """Return the first taxonomy entry mentioned in ``message``, else ``general``."""

    lowered = message.lower()
    for entry in taxonomy:
        needle = entry.lower()
        if needle in lowered or needle.replace("-", " ") in lowered:
            return entry
    return GENERAL_ISSUE_TYPE


def _compile_marker_pattern(markers: tuple[str, ...], max_message_chars: int) -> re.Pattern[str]:
    alternation = "|".join(re.escape(marker) for marker in markers)
    return re.compile(
        rf"(?<![A-Za-z0-9_])(?:{alternation})[ \t]*:[ \t]*([^\r\n]{{1,{max_message_chars}}})"
    )


__all__ = [
    "GENERAL_ISSUE_TYPE",
    "LEVEL_MARKERS",
    "IssueParser",
    "ParserLimits",
    "PatternIssueParser",
    "classify_issue_type",
]
