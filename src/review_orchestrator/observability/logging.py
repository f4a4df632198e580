"""
review-orchestrator — structured logging for review runs

File: src/review_orchestrator/observability/logging.py

Purpose
- Route every component's structlog events into one JSON-lines stream per review
  run, with home paths and credentials scrubbed from messages and fields.

What should be included in this file
- ``LoggingConfig`` and ``start_review_logging`` (level and run id from settings).
- ``correlation_scope`` binding worker, sandbox and iteration ids for nested events.
- A bounded, non-blocking queue between emitters and sinks.

Functional requirements
- Nothing is configured at import time.
- Fields bound with ``correlation_scope`` appear on records emitted inside the scope,
  including records from other components and from worker tasks spawned there.
- A full queue drops records and counts them instead of blocking the event loop.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import math
import queue
import secrets
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Final, TextIO

import structlog

from review_orchestrator.security.redaction import redact_for_logging

if TYPE_CHECKING:
    from types import TracebackType

    from review_orchestrator.config.schema import ReviewSettings
    from review_orchestrator.domain.models import JSONValue

ROOT_LOGGER_NAME: Final[str] = "review_orchestrator"
CORRELATION_KEYS: Final[tuple[str, ...]] = ("run_id", "worker_id", "sandbox_id", "iteration")
DEFAULT_QUEUE_SIZE: Final[int] = 4096

_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "taskName",
}


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Destination and verbosity for one review run's log stream."""

    run_id: str
    level: str = "INFO"
    log_dir: Path | None = None
    stream: TextIO | None = None
    queue_size: int = DEFAULT_QUEUE_SIZE

    def __post_init__(self) -> None:
        run_id = self.run_id.strip() if isinstance(self.run_id, str) else ""
        if not run_id or Path(run_id).name != run_id:
            raise ValueError("run_id must be a non-empty name without path separators")
        if not isinstance(self.level, str):
            raise ValueError(f"level must be a string, got {type(self.level).__name__}")
        level = self.level.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unsupported logging level {self.level!r}")
        if isinstance(self.queue_size, bool) or self.queue_size <= 0:
            raise ValueError("queue_size must be > 0")
        object.__setattr__(self, "run_id", run_id)
        object.__setattr__(self, "level", level)
        if self.log_dir is not None:
            object.__setattr__(self, "log_dir", Path(self.log_dir))

    @property
    def log_path(self) -> Path | None:
        return None if self.log_dir is None else self.log_dir / f"{self.run_id}.jsonl"


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Queue handler that snapshots correlation context and never blocks."""

    def __init__(self, records: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(records)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Runs in the emitting thread, where the correlation contextvars are visible.
        for key, value in structlog.contextvars.get_contextvars().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        prepared: logging.LogRecord = super().prepare(record)
        return prepared

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, run_id: str) -> None:
        super().__init__()
        self._run_id = run_id

    def format(self, record: logging.LogRecord) -> str:
        extras = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_")
        }
        payload: dict[str, JSONValue] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "run_id": self._run_id,
            "message": record.getMessage(),
        }
        for key in CORRELATION_KEYS:
            value = extras.pop(key, None)
            if value is not None:
                payload[key] = str(value)
        if extras:
            payload["fields"] = {key: _jsonable(value) for key, value in sorted(extras.items())}
        return json.dumps(
            redact_for_logging(payload),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )


class ReviewLogging:
    """Active log stream for one review run; ``close`` drains and detaches it."""

    __slots__ = ("_closed", "_handler", "_listener", "_logger", "_sinks", "config")

    def __init__(
        self,
        config: LoggingConfig,
        *,
        logger: logging.Logger,
        handler: _DroppingQueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
    ) -> None:
        self.config = config
        self._logger = logger
        self._handler = handler
        self._listener = listener
        self._sinks = sinks
        self._closed = False

    @property
    def run_id(self) -> str:
        return self.config.run_id

    @property
    def log_path(self) -> Path | None:
        return self.config.log_path

    @property
    def dropped_records(self) -> int:
        return self._handler.dropped

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._listener.stop()
        self._logger.removeHandler(self._handler)
        self._logger.propagate = True
        self._logger.setLevel(logging.NOTSET)
        for sink in self._sinks:
            sink.flush()
            if isinstance(sink, logging.FileHandler):
                sink.close()

    def __enter__(self) -> ReviewLogging:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()


def new_run_id() -> str:
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"review-{stamp}-{secrets.token_hex(3)}"


def setup_review_logging(config: LoggingConfig) -> ReviewLogging:
    """Attach a JSON-lines stream to the package logger and route structlog into it.

    Records go to ``<log_dir>/<run_id>.jsonl`` when ``log_dir`` is set and to
    ``stream`` (stderr when neither is given) otherwise or additionally.
    """

    formatter = _JsonLinesFormatter(config.run_id)
    sinks: list[logging.Handler] = []
    log_path = config.log_path
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        sinks.append(logging.FileHandler(log_path, encoding="utf-8"))
    if config.stream is not None or log_path is None:
        sinks.append(logging.StreamHandler(config.stream or sys.stderr))
    for sink in sinks:
        sink.setFormatter(formatter)

    records: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    handler = _DroppingQueueHandler(records)
    listener = logging.handlers.QueueListener(records, *sinks)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.getLevelNamesMapping()[config.level])
    logger.propagate = False
    logger.addHandler(handler)
    listener.start()
    configure_structlog()
    return ReviewLogging(
        config,
        logger=logger,
        handler=handler,
        listener=listener,
        sinks=tuple(sinks),
    )


def start_review_logging(
    settings: ReviewSettings,
    *,
    run_id: str | None = None,
    log_dir: Path | str | None = None,
    stream: TextIO | None = None,
) -> ReviewLogging:
    """Start logging for one review run at ``settings.log_level``."""

    config = LoggingConfig(
        run_id=run_id if run_id is not None else new_run_id(),
        level=settings.log_level,
        log_dir=Path(log_dir) if log_dir is not None else None,
        stream=stream,
    )
    return setup_review_logging(config)


def configure_structlog() -> None:
    """Send structlog events through stdlib ``logging`` with their fields as extras."""

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@contextmanager
def correlation_scope(**fields: object) -> Iterator[None]:
    """Bind correlation ids for every event logged inside the block.

    ``None`` values are skipped; unknown keys are rejected.
    """

    unknown = sorted(set(fields) - set(CORRELATION_KEYS))
    if unknown:
        raise ValueError(f"unknown correlation keys: {', '.join(unknown)}")
    bound = {key: str(value) for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def _jsonable(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_jsonable(item) for item in value]
        return sorted(items, key=str) if isinstance(value, (set, frozenset)) else items
    return str(value)


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
