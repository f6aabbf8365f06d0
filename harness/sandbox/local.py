# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Local sandbox backed by a git worktree.

Each run gets a fresh worktree of the source repository in the system
temp directory, checked out on the run branch.  Commands are spawned
directly from an argument vector, never through a shell.
"""

from __future__ import annotations

import logging
import os
import secrets
import shutil
import signal
import subprocess
import tempfile
import time
from collections.abc import Iterable, Mapping, Sequence

from harness.sandbox.types import (
    TIMEOUT_EXIT_CODE,
    ExecResult,
    FileUpload,
    Sandbox,
    SandboxError,
    SandboxOptions,
)
from harness.sanitize import MAX_OUTPUT_BYTES, truncate
from harness.security import (
    EmptyArgvError,
    assert_confined,
    validate_env,
)


logger = logging.getLogger(__name__)

#: Timeout for snapshot git commands.
_SNAPSHOT_TIMEOUT_MS = 30_000

#: Grace period for collecting output after a timed-out process is killed.
_DRAIN_TIMEOUT_SECONDS = 5

#: Identity used for snapshot commits.
SNAPSHOT_AUTHOR = ("harness", "harness@local")


class LocalSandbox(Sandbox):
    """Sandbox rooted in a temporary git worktree.

    Use :meth:`create` to provision one.  The constructor only records
    state and does not touch the filesystem.

    Attributes:
        work_dir: Absolute path of the worktree.
        repo_path: Absolute path of the source repository.
        branch: Run branch checked out in the worktree.
    """

    def __init__(self, work_dir: str, repo_path: str, branch: str) -> None:
        self.work_dir = work_dir
        self.repo_path = repo_path
        self.branch = branch
        self._torn_down = False

    @classmethod
    def create(cls, options: SandboxOptions) -> LocalSandbox:
        """Create a worktree of ``options.repo`` on ``options.branch``.

        Args:
            options: Sandbox options.

        Returns:
            The provisioned sandbox.

        Raises:
            SandboxError: If the worktree cannot be created.
        """
        repo_path = os.path.abspath(options.repo)
        work_dir = os.path.join(
            tempfile.gettempdir(), f"harness-{secrets.token_hex(4)}"
        )
        timeout_s = options.operation_timeout_ms / 1000

        logger.info(
            "Creating worktree %s on branch %s from %s",
            work_dir,
            options.branch,
            repo_path,
        )
        try:
            _git(
                ["worktree", "add", "-b", options.branch, work_dir],
                cwd=repo_path,
                timeout_s=timeout_s,
            )
        except SandboxError:
            shutil.rmtree(work_dir, ignore_errors=True)
            raise

        sandbox = cls(work_dir, repo_path, options.branch)
        # Signing agents (gpg, 1Password) would block non-interactive commits.
        try:
            _git(
                ["config", "commit.gpgsign", "false"],
                cwd=work_dir,
                timeout_s=timeout_s,
            )
        except SandboxError as e:
            logger.warning("Could not disable commit signing: %s", e)
        return sandbox

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
        if not argv:
            raise EmptyArgvError("Empty argv")

        max_bytes = (
            MAX_OUTPUT_BYTES if max_output_bytes is None else max_output_bytes
        )
        full_env = {**os.environ, **env} if env else None

        logger.debug("exec in %s: %s", cwd, argv[0])
        start = time.monotonic()
        try:
            # stdin is closed at spawn; several agent CLIs block on an
            # open, unfed stdin.
            process = subprocess.Popen(
                list(argv),
                cwd=cwd,
                env=full_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except FileNotFoundError as e:
            return _spawn_failure(127, e, start)
        except PermissionError as e:
            return _spawn_failure(126, e, start)

        timed_out = False
        try:
            stdout, stderr = process.communicate(timeout=timeout_ms / 1000)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Command %s timed out after %dms, killing process",
                argv[0],
                timeout_ms,
            )
            # Children inherit the pipes; kill the whole group so the drain
            # below cannot block on a surviving grandchild.
            _kill_group(process)
            try:
                stdout, stderr = process.communicate(
                    timeout=_DRAIN_TIMEOUT_SECONDS
                )
            except subprocess.TimeoutExpired:
                logger.warning("Output of %s not drained after kill", argv[0])
                stdout, stderr = "", ""
            timed_out = True

        duration_ms = int((time.monotonic() - start) * 1000)
        return ExecResult(
            exit_code=TIMEOUT_EXIT_CODE if timed_out else process.returncode,
            stdout=truncate(stdout or "", max_bytes),
            stderr=truncate(stderr or "", max_bytes),
            duration_ms=duration_ms,
            timed_out=timed_out,
        )

    def upload_files(self, files: Iterable[FileUpload]) -> None:
        for upload in files:
            target = os.path.join(self.work_dir, upload.path)
            assert_confined(target, self.work_dir)
            os.makedirs(os.path.dirname(os.path.abspath(target)), exist_ok=True)
            with open(target, "w", encoding="utf-8") as f:
                f.write(upload.content)

    def snapshot(self) -> str:
        snap_id = secrets.token_hex(4)
        name, email = SNAPSHOT_AUTHOR
        for argv in (
            ["git", "add", "-A"],
            [
                "git",
                "-c",
                f"user.name={name}",
                "-c",
                f"user.email={email}",
                "commit",
                "--allow-empty",
                "-m",
                f"snapshot-{snap_id}",
            ],
        ):
            result = self.exec(
                argv, cwd=self.work_dir, timeout_ms=_SNAPSHOT_TIMEOUT_MS
            )
            if not result.ok:
                raise SandboxError(
                    f"Snapshot failed ({argv[1]}): {result.stderr.strip()}"
                )
        logger.debug("Snapshot %s created in %s", snap_id, self.work_dir)
        return snap_id

    def teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        logger.info("Tearing down worktree %s", self.work_dir)

        try:
            _git(
                ["worktree", "remove", "--force", self.work_dir],
                cwd=self.repo_path,
            )
        except SandboxError as e:
            logger.debug("worktree remove failed (ignored): %s", e)

        shutil.rmtree(self.work_dir, ignore_errors=True)

        try:
            _git(["branch", "-D", self.branch], cwd=self.repo_path)
        except SandboxError as e:
            logger.debug("branch delete failed (ignored): %s", e)


def _git(args: list[str], *, cwd: str, timeout_s: float = 60) -> str:
    """Run a git command and return its stdout.

    Raises:
        SandboxError: If git fails, times out, or is not installed.
    """
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except subprocess.CalledProcessError as e:
        raise SandboxError(
            f"git {args[0]} failed: {e.stderr.strip() or e.returncode}"
        ) from e
    except (subprocess.TimeoutExpired, OSError) as e:
        raise SandboxError(f"git {args[0]} failed: {e}") from e
    return result.stdout


def _kill_group(process: subprocess.Popen[str]) -> None:
    """SIGKILL the process group led by *process*."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    process.kill()


def _spawn_failure(exit_code: int, error: OSError, start: float) -> ExecResult:
    return ExecResult(
        exit_code=exit_code,
        stdout="",
        stderr=str(error),
        duration_ms=int((time.monotonic() - start) * 1000),
    )
