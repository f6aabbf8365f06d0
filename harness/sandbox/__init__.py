# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Sandbox isolation layer.

Every side effect of a blueprint run (process spawn, file write, commit)
goes through a :class:`Sandbox`.  Two backends implement the same
contract: :class:`LocalSandbox` (git worktree) and
:class:`RemoteSandbox` (container behind a control-plane API).  Optional
capabilities are exposed as runtime-checkable protocols; callers test
for them with ``isinstance`` rather than checking the backend type.
"""

from harness.sandbox.local import LocalSandbox
from harness.sandbox.remote import RemoteSandbox
from harness.sandbox.types import (
    DEFAULT_OPERATION_TIMEOUT_MS,
    DEFAULT_RUN_TIMEOUT_MS,
    TIMEOUT_EXIT_CODE,
    ExecResult,
    FileUpload,
    PushAttempt,
    Sandbox,
    SandboxError,
    SandboxOptions,
    SandboxType,
    SupportsDefaultBranch,
    SupportsPush,
)


def create_sandbox(
    sandbox_type: SandboxType, options: SandboxOptions
) -> Sandbox:
    """Provision a sandbox of the given type.

    Raises:
        SandboxError: If provisioning fails.
    """
    match sandbox_type:
        case SandboxType.LOCAL:
            return LocalSandbox.create(options)
        case SandboxType.REMOTE:
            return RemoteSandbox.create(options)


__all__ = [
    "DEFAULT_OPERATION_TIMEOUT_MS",
    "DEFAULT_RUN_TIMEOUT_MS",
    "TIMEOUT_EXIT_CODE",
    "ExecResult",
    "FileUpload",
    "LocalSandbox",
    "PushAttempt",
    "RemoteSandbox",
    "Sandbox",
    "SandboxError",
    "SandboxOptions",
    "SandboxType",
    "SupportsDefaultBranch",
    "SupportsPush",
    "create_sandbox",
]
