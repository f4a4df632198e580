"""Worker output parsing strategies."""

from review_orchestrator.parsing.issue_parser import (
    GENERAL_ISSUE_TYPE,
    IssueParser,
    ParserLimits,
    PatternIssueParser,
    classify_issue_type,
)

__all__ = [
    "GENERAL_ISSUE_TYPE",
    "IssueParser",
    "ParserLimits",
    "PatternIssueParser",
    "classify_issue_type",
]
