# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Remote sandbox running in a container reached through a control plane.

Bootstrap clones the repository's default branch into the container and
creates the run branch there.  All commands run in one persistent
session opened at creation and closed at teardown.
"""

from __future__ import annotations

import logging
import math
import posixpath
import secrets
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING

from harness.github import (
    GitHubClient,
    GitHubError,
    GitHubRepo,
    parse_github_repo,
)
from harness.sandbox.control_plane import (
    CommandTimeout,
    ControlPlaneClient,
    ControlPlaneError,
)
from harness.sandbox.types import (
    TIMEOUT_EXIT_CODE,
    ExecResult,
    FileUpload,
    PushAttempt,
    Sandbox,
    SandboxError,
    SandboxOptions,
)
from harness.sanitize import MAX_OUTPUT_BYTES, truncate
from harness.security import assert_confined, shell_quote, validate_env


if TYPE_CHECKING:
    from harness.config import RemoteSandboxConfig


logger = logging.getLogger(__name__)

#: Parent directory of the clone inside the container.
CLONE_BASE = "/home/daytona/workspace"

#: Exit code assumed when the control plane reports none.
UNKNOWN_EXIT_CODE = 1

SNAPSHOT_AUTHOR = ("harness", "harness@local")


class RemoteSandbox(Sandbox):
    """Sandbox inside a remote container.

    Use :meth:`create` to provision one.

    Attributes:
        work_dir: Repository path inside the container.
        sandbox_id: Control-plane id of the container.
        session_id: Persistent session used for every command.
        repo: Parsed GitHub repository.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        sandbox_id: str,
        session_id: str,
        repo: GitHubRepo,
        *,
        github: GitHubClient | None = None,
    ) -> None:
        self.work_dir = posixpath.join(CLONE_BASE, repo.name)
        self.sandbox_id = sandbox_id
        self.session_id = session_id
        self.repo = repo
        self._client = client
        self._github = github or GitHubClient()
        self._torn_down = False
        self._default_branch: str | None = None

    @classmethod
    def create(
        cls,
        options: SandboxOptions,
        *,
        client: ControlPlaneClient | None = None,
        github: GitHubClient | None = None,
    ) -> RemoteSandbox:
        """Provision a container and check out ``options.branch``.

        Args:
            options: Sandbox options.  ``options.repo`` must be a GitHub
                repository reference.
            client: Control-plane client.  Built from ``options.remote``
                when None.
            github: GitHub client for default-branch lookup.

        Returns:
            The provisioned sandbox.

        Raises:
            SandboxError: If no API key is configured, the repository is
                not on GitHub, or provisioning fails.  A container created
                before the failure is deleted first.
        """
        remote = options.remote or _default_remote_config()
        try:
            repo = parse_github_repo(options.repo)
        except GitHubError as e:
            raise SandboxError(str(e)) from e
        work_dir = posixpath.join(CLONE_BASE, repo.name)

        if client is None:
            if not remote.api_key:
                raise SandboxError(
                    "Remote sandbox API key required "
                    "(set DAYTONA_API_KEY or remote.api_key)"
                )
            client = ControlPlaneClient(
                remote.api_key, remote.api_url, remote.target
            )

        try:
            sandbox_id = client.create_sandbox(
                remote.image, remote.auto_stop_minutes
            )
        except ControlPlaneError:
            client.close()
            raise
        session_id = f"harness-{secrets.token_hex(4)}"
        try:
            # The run branch does not exist upstream yet: clone the default
            # branch and branch off inside the container.
            client.git_clone(
                sandbox_id, repo.clone_url, work_dir, options.github_token
            )
            client.git_create_branch(sandbox_id, work_dir, options.branch)
            client.git_checkout(sandbox_id, work_dir, options.branch)
            client.create_session(sandbox_id, session_id)
        except Exception:
            logger.error(
                "Bootstrap of remote sandbox %s failed, deleting", sandbox_id
            )
            try:
                client.delete_sandbox(sandbox_id)
            except ControlPlaneError as cleanup_error:
                logger.warning(
                    "Failed to delete sandbox %s: %s", sandbox_id, cleanup_error
                )
            client.close()
            raise

        logger.info(
            "Remote sandbox %s ready at %s on %s",
            sandbox_id,
            work_dir,
            options.branch,
        )
        return cls(
            client,
            sandbox_id,
            session_id,
            repo,
            github=github or GitHubClient(options.github_token),
        )

    def exec(
        self,
        argv: Sequence[str],
        *,
        cwd: str,
        timeout_ms: int,
        env: Mapping[str, str] | None = None,
        max_output_bytes: int | None = None,
    ) -> ExecResult:
        assert_confined(cwd, self.work_dir)
        validate_env(env)

        max_bytes = (
            MAX_OUTPUT_BYTES if max_output_bytes is None else max_output_bytes
        )
        command = build_command(argv, cwd=cwd, env=env)
        timeout_s = math.ceil(timeout_ms / 1000)

        start = time.monotonic()
        try:
            result = self._client.execute_session_command(
                self.sandbox_id, self.session_id, command, timeout_s
            )
        except CommandTimeout:
            logger.warning(
                "Remote command %s timed out after %ds", argv[0], timeout_s
            )
            return ExecResult(
                exit_code=TIMEOUT_EXIT_CODE,
                stdout="",
                stderr="",
                duration_ms=_elapsed_ms(start),
                timed_out=True,
            )

        exit_code = result.exit_code
        if exit_code is None:
            logger.warning(
                "Control plane returned no exit code for %s, assuming %d",
                argv[0],
                UNKNOWN_EXIT_CODE,
            )
            exit_code = UNKNOWN_EXIT_CODE
        return ExecResult(
            exit_code=exit_code,
            stdout=truncate(result.stdout, max_bytes),
            stderr=truncate(result.stderr, max_bytes),
            duration_ms=_elapsed_ms(start),
        )

    def upload_files(self, files: Iterable[FileUpload]) -> None:
        for upload in files:
            target = posixpath.normpath(
                posixpath.join(self.work_dir, upload.path)
            )
            assert_confined(target, self.work_dir)
            self._client.create_folder(
                self.sandbox_id, posixpath.dirname(target), "755"
            )
            self._client.upload_file(
                self.sandbox_id, target, upload.content.encode("utf-8")
            )

    def snapshot(self) -> str:
        snap_id = secrets.token_hex(4)
        name, email = SNAPSHOT_AUTHOR
        changed = self._client.git_status(self.sandbox_id, self.work_dir)
        if changed:
            self._client.git_add(self.sandbox_id, self.work_dir, ["."])
        self._client.git_commit(
            self.sandbox_id,
            self.work_dir,
            f"snapshot-{snap_id}",
            name,
            email,
            allow_empty=not changed,
        )
        return snap_id

    def teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        logger.info("Tearing down remote sandbox %s", self.sandbox_id)
        try:
            self._client.delete_session(self.sandbox_id, self.session_id)
        except ControlPlaneError as e:
            logger.debug("Session delete failed (ignored): %s", e)
        try:
            self._client.delete_sandbox(self.sandbox_id)
        except ControlPlaneError as e:
            logger.warning(
                "Failed to delete remote sandbox %s: %s", self.sandbox_id, e
            )
        finally:
            self._client.close()

    # -- optional capabilities ------------------------------------------------

    def push_branch(self, branch: str, token: str) -> PushAttempt:
        """Push the checked-out branch.

        *branch* is informational: the control plane pushes whatever is
        checked out, which bootstrap set to the run branch.
        """
        try:
            self._client.git_push(self.sandbox_id, self.work_dir, token)
        except ControlPlaneError as e:
            return PushAttempt(pushed=False, error=str(e))
        logger.info("Pushed %s from remote sandbox", branch)
        return PushAttempt(pushed=True)

    def default_branch(self) -> str:
        """Return the upstream default branch, cached after the first call."""
        if self._default_branch is None:
            self._default_branch = self._github.default_branch(self.repo)
        return self._default_branch


def build_command(
    argv: Sequence[str],
    *,
    cwd: str,
    env: Mapping[str, str] | None = None,
) -> str:
    """Render ``cd <cwd> && K='v' ... <argv>`` for a session command.

    Keys must already be validated; values and argv are single-quoted.
    """
    parts = [f"cd {shell_quote([cwd])} &&"]
    for key, value in (env or {}).items():
        parts.append(f"{key}={shell_quote([value])}")
    parts.append(shell_quote(argv))
    return " ".join(parts)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _default_remote_config() -> RemoteSandboxConfig:
    # harness.config imports the sandbox package.
    from harness.config import RemoteSandboxConfig

    return RemoteSandboxConfig()
