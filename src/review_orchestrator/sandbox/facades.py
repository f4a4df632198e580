"""Read-only file view and restricted command runner handed to a running worker."""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import TYPE_CHECKING, Final

from review_orchestrator.constants import MAX_OUTPUT_BYTES, MAX_RESTRICTED_COMMAND_CHARS
from review_orchestrator.sandbox.errors import SandboxPolicyError
from review_orchestrator.security.path_guard import PathGuard, PathViolation
from review_orchestrator.utils.fs import read_text_bounded

if TYPE_CHECKING:
    from collections.abc import Iterable

    from review_orchestrator.domain.models import Worker
    from review_orchestrator.sandbox.command_guard import CommandGuard, CommandOutput

_READ_LIMIT_BYTES: Final[int] = MAX_OUTPUT_BYTES


class ReadOnlyFileView:
    """Expose reads for exactly the validated file set of one run."""

    __slots__ = ("_allowed", "_ordered", "_path_guard", "_root")

    def __init__(
        self,
        root: Path | str,
        files: Iterable[Path | str],
        *,
        path_guard: PathGuard | None = None,
    ) -> None:
        self._path_guard = path_guard if path_guard is not None else PathGuard()
        self._root = Path(root).resolve()
        ordered: dict[Path, None] = {}
        for item in files:
            ordered.setdefault(self._path_guard.validate(self._root, item), None)
        self._ordered = tuple(ordered)
        self._allowed = frozenset(self._ordered)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def files(self) -> tuple[Path, ...]:
        return self._ordered

    def exists(self, path: Path | str) -> bool:
        try:
            resolved = self._path_guard.validate(self._root, path)
        except PathViolation:
            return False
        return resolved in self._allowed

    def read(self, path: Path | str, *, max_bytes: int = _READ_LIMIT_BYTES) -> str:
        resolved = self._path_guard.validate(self._root, path)
        if resolved not in self._allowed:
            raise SandboxPolicyError(f"file is not part of this run: {resolved.name}")
        return read_text_bounded(resolved, max_bytes=max_bytes)

    def write(self, path: Path | str, data: str | bytes) -> None:
        raise SandboxPolicyError("write operations are not permitted inside the sandbox")

    def delete(self, path: Path | str) -> None:
        raise SandboxPolicyError("delete operations are not permitted inside the sandbox")


class RestrictedCommandRunner:
    """Run a worker's own sub-commands through the command guard."""

    __slots__ = ("_allowed", "_cwd", "_guard", "_timeout_seconds")

    def __init__(
        self,
        worker: Worker,
        guard: CommandGuard,
        *,
        cwd: Path | str | None = None,
    ) -> None:
        self._allowed = frozenset(worker.allowed_subcommands)
        self._guard = guard
        self._cwd = cwd
        self._timeout_seconds = worker.timeout_seconds / 2

    @property
    def allowed_subcommands(self) -> frozenset[str]:
        return self._allowed

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    async def run(self, command_line: str) -> CommandOutput:
        if not isinstance(command_line, str) or not command_line.strip():
            raise SandboxPolicyError("command must be a non-empty string")
        if len(command_line) > MAX_RESTRICTED_COMMAND_CHARS:
            raise SandboxPolicyError(
                f"command longer than {MAX_RESTRICTED_COMMAND_CHARS} characters"
            )
        try:
            tokens = shlex.split(command_line)
        except ValueError as exc:
            raise SandboxPolicyError(f"unparseable command: {exc}") from exc
        if not tokens:
            raise SandboxPolicyError("command must be a non-empty string")

        program, *args = tokens
        if program not in self._allowed:
            raise SandboxPolicyError(f"command {program!r} is not permitted for this worker")
        return await self._guard.execute(
            program,
            args,
            timeout_seconds=self._timeout_seconds,
            cwd=self._cwd,
        )


__all__ = [
    "ReadOnlyFileView",
    "RestrictedCommandRunner",
]
