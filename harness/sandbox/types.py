# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Sandbox contract shared by the local and remote backends."""

from __future__ import annotations

import abc
import enum
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Protocol, Self, runtime_checkable


if TYPE_CHECKING:
    from harness.config import RemoteSandboxConfig


#: Default per-operation timeout: 10 minutes.
DEFAULT_OPERATION_TIMEOUT_MS = 600_000

#: Default per-run budget: 60 minutes.  Advisory only, see DESIGN.md.
DEFAULT_RUN_TIMEOUT_MS = 3_600_000

#: Exit code reported for commands killed on timeout.
TIMEOUT_EXIT_CODE = 124


class SandboxError(Exception):
    """Sandbox infrastructure failure.

    Raised for provisioning and bootstrap errors.  Ordinary command
    failures and timeouts are reported through :class:`ExecResult`.
    """


class SandboxType(enum.StrEnum):
    """Available sandbox backends."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class ExecResult:
    """Result of a command executed inside a sandbox.

    Attributes:
        exit_code: Process exit code (124 on timeout).
        stdout: Captured standard output, truncated.
        stderr: Captured standard error, truncated.
        duration_ms: Wall-clock duration in milliseconds.
        timed_out: Whether the command was killed on timeout.
    """

    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


@dataclass(frozen=True)
class FileUpload:
    """A file to write into the sandbox.

    Attributes:
        path: Target path, relative to the sandbox root or absolute
            inside it.
        content: File content (UTF-8 text).
    """

    path: str
    content: str


@dataclass(frozen=True)
class PushAttempt:
    """Outcome of pushing the run branch from a sandbox.

    Attributes:
        pushed: Whether the push succeeded.
        error: Failure description when ``pushed`` is False.
    """

    pushed: bool
    error: str | None = None


@dataclass(frozen=True)
class SandboxOptions:
    """Options for creating a sandbox.

    Attributes:
        repo: Source repository (local path or GitHub reference).
        branch: Branch to create for the run.
        operation_timeout_ms: Timeout for internal git operations.
        github_token: Token used for clone and push, if any.
        remote: Remote backend settings (ignored by the local backend).
    """

    repo: str
    branch: str
    operation_timeout_ms: int = DEFAULT_OPERATION_TIMEOUT_MS
    github_token: str | None = None
    remote: RemoteSandboxConfig | None = None


class Sandbox(abc.ABC):
    """An isolated working copy owned by exactly one run.

    ``work_dir`` is the confinement root: every command ``cwd`` and every
    uploaded file must resolve inside it.  ``teardown()`` releases all
    backend resources and is safe to call more than once.
    """

    work_dir: str

    @abc.abstractmethod
    def exec(
        self,
        argv: Sequence[str],
        *,
        cwd: str,
        timeout_ms: int,
        env: Mapping[str, str] | None = None,
        max_output_bytes: int | None = None,
    ) -> ExecResult:
        """Run *argv* inside the sandbox.

        Non-zero exit and timeout are reported in the result, never
        raised.

        Raises:
            ConfinementError: If *cwd* is outside ``work_dir``.
            InvalidEnvKeyError: If an *env* key is unsafe.
            EmptyArgvError: If *argv* is empty.
        """

    @abc.abstractmethod
    def upload_files(self, files: Iterable[FileUpload]) -> None:
        """Write *files* into the sandbox, creating parent directories.

        Raises:
            ConfinementError: If a target resolves outside ``work_dir``.
        """

    @abc.abstractmethod
    def snapshot(self) -> str:
        """Commit the current state and return the snapshot id.

        Succeeds with an empty commit when nothing changed.
        """

    @abc.abstractmethod
    def teardown(self) -> None:
        """Release all resources.  Idempotent."""

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.teardown()


@runtime_checkable
class SupportsPush(Protocol):
    """Sandbox capability: push the run branch with a credential."""

    def push_branch(self, branch: str, token: str) -> PushAttempt: ...


@runtime_checkable
class SupportsDefaultBranch(Protocol):
    """Sandbox capability: resolve the upstream default branch."""

    def default_branch(self) -> str: ...
