# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test packages."""

import subprocess
from collections.abc import Callable, Iterable, Mapping, Sequence
from pathlib import Path
from typing import TypeAlias

import pytest

from harness.logging import SecretFilter
from harness.sandbox.types import ExecResult, FileUpload, PushAttempt, Sandbox


ExecHandler: TypeAlias = Callable[
    [list[str], Mapping[str, str] | None], ExecResult
]


class FakeSandbox(Sandbox):
    """In-memory sandbox that records every call.

    Commands succeed with empty output unless ``handler`` is set.

    Attributes:
        calls: argv of every exec, in order.
        envs: env of every exec, in order.
        cwds: cwd of every exec, in order.
        uploads: Uploaded files.
        handler: Optional ``(argv, env) -> ExecResult`` responder.
        teardowns: Number of teardown calls.
    """

    def __init__(self, work_dir: str = "/work") -> None:
        self.work_dir = work_dir
        self.calls: list[list[str]] = []
        self.envs: list[Mapping[str, str] | None] = []
        self.cwds: list[str] = []
        self.uploads: list[FileUpload] = []
        self.handler: ExecHandler | None = None
        self.teardowns = 0
        self.snapshots = 0

    def exec(
        self,
        argv: Sequence[str],
        *,
        cwd: str,
        timeout_ms: int,
        env: Mapping[str, str] | None = None,
        max_output_bytes: int | None = None,
    ) -> ExecResult:
        self.calls.append(list(argv))
        self.envs.append(env)
        self.cwds.append(cwd)
        if self.handler is not None:
            return self.handler(list(argv), env)
        return ExecResult(exit_code=0, stdout="", stderr="", duration_ms=1)

    def upload_files(self, files: Iterable[FileUpload]) -> None:
        self.uploads.extend(files)

    def snapshot(self) -> str:
        self.snapshots += 1
        return f"snap{self.snapshots}"

    def teardown(self) -> None:
        self.teardowns += 1


class CapableFakeSandbox(FakeSandbox):
    """FakeSandbox with native push and default-branch support.

    Attributes:
        attempt: Returned from every ``push_branch`` call.
        pushes: ``(branch, token)`` of every push.
    """

    def __init__(self, work_dir: str = "/work") -> None:
        super().__init__(work_dir)
        self.attempt = PushAttempt(pushed=True)
        self.pushes: list[tuple[str, str]] = []

    def push_branch(self, branch: str, token: str) -> PushAttempt:
        self.pushes.append((branch, token))
        return self.attempt

    def default_branch(self) -> str:
        return "trunk"


@pytest.fixture
def fake_sandbox() -> FakeSandbox:
    """A recording in-memory sandbox rooted at ``/work``."""
    return FakeSandbox()


@pytest.fixture
def capable_sandbox() -> CapableFakeSandbox:
    """A recording sandbox that can push and knows its default branch."""
    return CapableFakeSandbox()


@pytest.fixture(autouse=True)
def _clear_registered_secrets():
    """Keep secrets registered by one test out of the next."""
    yield
    SecretFilter.clear_secrets()


def _git(repo: Path, *args: str) -> None:
    subprocess.run(
        ["git", *args],
        cwd=repo,
        check=True,
        capture_output=True,
    )


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a minimal git repository with one commit.

    Returns:
        Path to the git repository root.
    """
    repo_path = tmp_path / "source_repo"
    repo_path.mkdir()

    _git(repo_path, "init")
    _git(repo_path, "config", "user.name", "Test User")
    _git(repo_path, "config", "user.email", "test@example.com")
    _git(repo_path, "config", "commit.gpgsign", "false")

    (repo_path / "README.md").write_text("# Test Repo\n")
    src_dir = repo_path / "src"
    src_dir.mkdir()
    (src_dir / "main.txt").write_text("hello\n")

    _git(repo_path, "add", ".")
    _git(repo_path, "commit", "-m", "Initial commit")

    return repo_path
