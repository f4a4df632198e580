"""
review-orchestrator — content-addressed result cache

File: src/review_orchestrator/control_plane/result_cache.py

Purpose
- Reuse a worker's ``ExecutionResult`` when the same worker already analyzed
  byte-identical files in the same iteration within the current time bucket.

What should be included in this file
- Cache key derivation over worker identity, file digests, iteration and bucket.
- TTL expiry, single-entry oldest-first eviction, deep-copy isolation.
- Hit/miss/eviction counters.

Functional requirements
- Values returned from ``get`` never alias stored values (and vice versa).
- With a ``root``, every file is validated by ``PathGuard`` before it is read.
- Unreadable, oversized or out-of-root files degrade to a per-call surrogate digest and are
  logged as ``cache_integrity_degraded``; the cache never raises for them.

Non-functional requirements
- Safe for concurrent callers; all state is guarded by one ``threading.Lock``.
- Clock is injectable for deterministic tests.
"""

from __future__ import annotations

import copy
import math
import secrets
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from review_orchestrator.constants import (
    CACHE_BUCKET_SECONDS,
    CACHE_CAPACITY,
    CACHE_MAX_FILE_BYTES,
    CACHE_TTL_SECONDS,
)
from review_orchestrator.security.path_guard import PathGuard, PathViolation
from review_orchestrator.utils.hashing import sha256_file, sha256_json, sha256_text

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from review_orchestrator.domain.models import ExecutionResult, Worker


class CacheIntegrityDegraded(RuntimeWarning):
    """A file digest could not be computed; the key falls back to a surrogate."""


@dataclass(slots=True)
class _Entry:
    result: ExecutionResult
    inserted_at: float
    sequence: int


class ResultCache:
    """Bounded TTL cache of execution results keyed by content digests."""

    __slots__ = (
        "_bucket_seconds",
        "_capacity",
        "_clock",
        "_entries",
        "_evictions",
        "_hits",
        "_lock",
        "_logger",
        "_max_file_bytes",
        "_misses",
        "_path_guard",
        "_root",
        "_sequence",
        "_ttl_seconds",
    )

    def __init__(
        self,
        *,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        capacity: int = CACHE_CAPACITY,
        bucket_seconds: float = CACHE_BUCKET_SECONDS,
        max_file_bytes: int = CACHE_MAX_FILE_BYTES,
        root: Path | str | None = None,
        path_guard: PathGuard | None = None,
        clock: Callable[[], float] = time.time,
        logger: Any | None = None,
    ) -> None:
        if ttl_seconds <= 0 or not math.isfinite(ttl_seconds):
            raise ValueError("ttl_seconds must be a positive finite number")
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        if bucket_seconds <= 0 or not math.isfinite(bucket_seconds):
            raise ValueError("bucket_seconds must be a positive finite number")
        if max_file_bytes <= 0:
            raise ValueError("max_file_bytes must be > 0")
        self._ttl_seconds = float(ttl_seconds)
        self._capacity = capacity
        self._bucket_seconds = float(bucket_seconds)
        self._max_file_bytes = max_file_bytes
        self._root = Path(root) if root is not None else None
        self._path_guard = path_guard if path_guard is not None else PathGuard()
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        self._sequence = 0
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def key(
        self,
        worker: Worker,
        files: Iterable[Path | str],
        iteration: int = 1,
    ) -> str:
        """Derive the cache key for ``worker`` over ``files`` in ``iteration``.

        File digests are sorted, so the key does not depend on file order.
        Reads file contents; call from a thread when used inside an event loop.
        """

        digests = sorted(self._digest(Path(item)) for item in files)
        return sha256_json(
            {
                "worker_id": worker.id,
                "model": worker.model_tag,
                "file_digests": digests,
                "iteration": iteration,
                "bucket": math.floor(self._clock() / self._bucket_seconds),
            }
        )

    def get(self, key: str) -> ExecutionResult | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() - entry.inserted_at >= self._ttl_seconds:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return copy.deepcopy(entry.result)

    def put(self, key: str, result: ExecutionResult) -> None:
        stored = copy.deepcopy(result)
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._capacity:
                self._evict_oldest()
            self._sequence += 1
            self._entries[key] = _Entry(
                result=stored,
                inserted_at=self._clock(),
                sequence=self._sequence,
            )

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict[str, int | float]:
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self._capacity,
                "ttl_seconds": self._ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _evict_oldest(self) -> None:
        # Caller holds the lock.
        oldest = min(
            self._entries,
            key=lambda item: (self._entries[item].inserted_at, self._entries[item].sequence),
        )
        del self._entries[oldest]
        self._evictions += 1

    def _digest(self, path: Path) -> str:
        try:
            # With a root configured, nothing outside it is ever opened.
            target = path if self._root is None else self._path_guard.validate(self._root, path)
            return sha256_file(target, max_bytes=self._max_file_bytes)
        except (OSError, PathViolation) as exc:
            self._logger.warning(
                "cache_integrity_degraded",
                warning=CacheIntegrityDegraded.__name__,
                file=path.name,
                error_type=type(exc).__name__,
            )
            return sha256_text(f"{path}:{time.time_ns()}:{secrets.token_hex(8)}")


__all__ = [
    "CacheIntegrityDegraded",
    "ResultCache",
]
