"""
review-orchestrator — output sanitization

File: src/review_orchestrator/security/redaction.py

Purpose
- Strip user-identifying and credential-shaped content from worker output, error
  messages, and log payloads before anything leaves the sandbox boundary.

What should be included in this file
- Home-directory anonymization rules.
- Credential rules that replace only the secret value with a per-category marker.
- Optional markup escaping for output destined for rendered reports.

Functional requirements
- ``sanitize`` is idempotent: ``sanitize(sanitize(x)) == sanitize(x)``.
- Markers never match any rule, so a second pass leaves them alone.

Non-functional requirements
- Deterministic rule order; no I/O.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from review_orchestrator.domain.models import JSONValue

HOME_PLACEHOLDER: Final[str] = "<user>"
REDACTION_MARKER: Final[str] = "[REDACTED:{category}]"

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passwd",
    "api_key",
    "apikey",
    "private_key",
    "credential",
    "access_key",
    "authorization",
)

_CAMEL_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# Assignment values stop at whitespace, quotes, markup, and brackets so a marker
# left by an earlier pass can never be taken for a value.
_VALUE = r"[^\s\"'<>&;,\[\]]"
_ASSIGN = r"[\"']?\s*[:=]\s*[\"']?"
_KEY_START = r"(?<![A-Za-z0-9])"


@dataclass(frozen=True, slots=True)
class _TextRule:
    name: str
    category: str
    pattern: re.Pattern[str]
    sensitive_group: int | None = None


_HOME_RULES: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"(/home/)[^/\s]+"),
    re.compile(r"(/Users/)[^/\s]+"),
    re.compile(r"(?i)((?:\b[a-z]:)?\\users\\)[^\\\s]+"),
)

_TEXT_RULES: Final[tuple[_TextRule, ...]] = (
    _TextRule(
        name="private_key_block",
        category="private_key",
        pattern=re.compile(
            r"-----BEGIN(?: [A-Z0-9]+)* PRIVATE KEY-----"
            r"[\s\S]+?"
            r"-----END(?: [A-Z0-9]+)* PRIVATE KEY-----"
        ),
    ),
    _TextRule(
        name="bearer_token",
        category="bearer",
        pattern=re.compile(r"(?i)(\bbearer\s+)([A-Za-z0-9\-._~+/]{8,}=*)"),
        sensitive_group=2,
    ),
    _TextRule(
        name="api_key_assignment",
        category="api_key",
        pattern=re.compile(rf"(?i)({_KEY_START}api[_-]?key{_ASSIGN})({_VALUE}{{6,}})"),
        sensitive_group=2,
    ),
    _TextRule(
        name="password_assignment",
        category="password",
        pattern=re.compile(
            rf"(?i)({_KEY_START}(?:password|passwd|pwd){_ASSIGN})({_VALUE}{{4,}})"
        ),
        sensitive_group=2,
    ),
    _TextRule(
        name="token_assignment",
        category="token",
        pattern=re.compile(rf"(?i)({_KEY_START}(?:token|auth){_ASSIGN})({_VALUE}{{6,}})"),
        sensitive_group=2,
    ),
    _TextRule(
        name="secret_assignment",
        category="secret",
        pattern=re.compile(
            rf"(?i)({_KEY_START}(?:secret[_-]?key|private[_-]?key|secret){_ASSIGN})"
            rf"({_VALUE}{{6,}})"
        ),
        sensitive_group=2,
    ),
    _TextRule(
        name="anthropic_api_key",
        category="api_key",
        pattern=re.compile(r"\bsk-ant-[A-Za-z0-9_-]{20,255}\b"),
    ),
    _TextRule(
        name="openai_api_key",
        category="api_key",
        pattern=re.compile(r"\bsk-[A-Za-z0-9]{20,255}\b"),
    ),
    _TextRule(
        name="aws_access_key",
        category="api_key",
        pattern=re.compile(r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b"),
    ),
    _TextRule(
        name="github_token",
        category="token",
        pattern=re.compile(
            r"\b(?:gh[pousr]_[A-Za-z0-9]{20,255}|github_pat_[A-Za-z0-9_]{20,255})\b"
        ),
    ),
    _TextRule(
        name="slack_token",
        category="token",
        pattern=re.compile(r"\bxox[baprs]-[A-Za-z0-9-]{10,255}\b"),
    ),
    _TextRule(
        name="jwt",
        category="token",
        pattern=re.compile(r"\beyJ[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\.[A-Za-z0-9_-]{8,}\b"),
    ),
)

_BARE_AMPERSAND = re.compile(r"&(?!(?:amp|lt|gt|quot|#39);)")
_MARKUP_ESCAPES: Final[tuple[tuple[str, str], ...]] = (
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#39;"),
)


class OutputSanitizer:
    """Anonymize home paths, mask credentials, and optionally escape markup."""

    __slots__ = ("_markup",)

    def __init__(self, *, markup: bool = False) -> None:
        self._markup = bool(markup)

    @property
    def markup(self) -> bool:
        return self._markup

    def sanitize(self, text: str) -> str:
        if not isinstance(text, str):
            raise TypeError(f"text must be a string, got {type(text).__name__}")
        if not text:
            return text

        sanitized = scrub_text(text)
        if self._markup:
            sanitized = escape_markup(sanitized)
        return sanitized

    def sanitize_optional(self, text: str | None) -> str | None:
        return None if text is None else self.sanitize(text)

    def sanitize_error(self, error: BaseException | str) -> str:
        """Return a sanitized, never-empty message for ``error``."""

        if isinstance(error, str):
            message = error
        else:
            message = str(error).strip() or type(error).__name__
        return self.sanitize(message)


def anonymize_home_paths(text: str) -> str:
    for pattern in _HOME_RULES:
        text = pattern.sub(lambda match: f"{match.group(1)}{HOME_PLACEHOLDER}", text)
    return text


def redact_text(text: str) -> str:
    """Replace credential-shaped substrings with per-category markers."""

    for rule in _TEXT_RULES:
        marker = REDACTION_MARKER.format(category=rule.category)
        text = rule.pattern.sub(
            lambda match, marker=marker, group=rule.sensitive_group: _replace_sensitive_group(
                match, replacement=marker, group=group
            ),
            text,
        )
    return text


def scrub_text(text: str) -> str:
    """Anonymize home paths and mask credentials without escaping markup."""

    return redact_text(anonymize_home_paths(text))


def escape_markup(text: str) -> str:
    """Escape ``& < > " '``; existing entities for these characters are kept."""

    escaped = _BARE_AMPERSAND.sub("&amp;", text)
    for raw, entity in _MARKUP_ESCAPES:
        escaped = escaped.replace(raw, entity)
    return escaped


def is_sensitive_key(key: str) -> bool:
    """Return whether a mapping key or environment variable name names a credential."""

    normalized = _normalize_key(key)
    if not normalized:
        return False
    return any(term in normalized for term in _SENSITIVE_KEY_TERMS)


def redact_for_logging(value: JSONValue) -> JSONValue:
    """Deep-redact a JSON-like log payload.

    Values under sensitive keys are masked whole; every string is anonymized
    and credential-scrubbed without markup escaping.
    """

    return _redact_value(value, key=None)


def _redact_value(value: JSONValue, *, key: str | None) -> JSONValue:
    if key is not None and is_sensitive_key(key):
        return REDACTION_MARKER.format(category="secret")
    if isinstance(value, str):
        return scrub_text(value)
    if isinstance(value, list):
        return [_redact_value(item, key=None) for item in value]
    if isinstance(value, Mapping):
        return {str(name): _redact_value(item, key=str(name)) for name, item in value.items()}
    return value


def _replace_sensitive_group(
    match: re.Match[str],
    *,
    replacement: str,
    group: int | None,
) -> str:
    if group is None:
        return replacement

    full = match.group(0)
    start, end = match.span(group)
    offset_start = start - match.start(0)
    offset_end = end - match.start(0)
    return f"{full[:offset_start]}{replacement}{full[offset_end:]}"


def _normalize_key(key: str) -> str:
    with_boundaries = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip())
    return _NON_ALNUM.sub("_", with_boundaries.lower()).strip("_")


__all__ = [
    "HOME_PLACEHOLDER",
    "REDACTION_MARKER",
    "OutputSanitizer",
    "anonymize_home_paths",
    "escape_markup",
    "is_sensitive_key",
    "redact_for_logging",
    "redact_text",
    "scrub_text",
]
