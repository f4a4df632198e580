"""
review-orchestrator — package root

File: src/review_orchestrator/__init__.py

Purpose
- Orchestrate external code-review workers over a set of changed files: tiered
  scheduling, sandboxed execution, bounded output parsing, and result caching.

What should be included in this file
- Version export and a minimal public API surface.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
