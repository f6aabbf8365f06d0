# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Node bodies shared by the built-in blueprints."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from harness.blueprint.dsl import step
from harness.blueprint.types import (
    Check,
    NodeResult,
    NodeStatus,
    RunContext,
    ValidateStep,
)
from harness.config import CommandsConfig


if TYPE_CHECKING:
    from harness.sandbox.types import Sandbox


TOOL_CHECK_TIMEOUT_MS = 10_000
INSTALL_TIMEOUT_MS = 120_000
TYPECHECK_TIMEOUT_MS = 60_000
TEST_TIMEOUT_MS = 120_000
COMMIT_TIMEOUT_MS = 10_000


def run_command(
    sandbox: Sandbox,
    argv: Sequence[str],
    *,
    timeout_ms: int,
    error: str | None = None,
    combine_output: bool = False,
) -> NodeResult:
    """Run *argv* in the sandbox root and map the result.

    Args:
        sandbox: Sandbox to run in.
        argv: Command.
        timeout_ms: Timeout.
        error: Fixed error message on failure (default: stderr).
        combine_output: Use stdout followed by stderr as output.
    """
    result = sandbox.exec(
        list(argv), cwd=sandbox.work_dir, timeout_ms=timeout_ms
    )
    node_result = NodeResult.from_exec(result, error=error)
    if combine_output:
        return NodeResult(
            status=node_result.status,
            output=result.stdout + result.stderr,
            duration_ms=node_result.duration_ms,
            error=node_result.error,
        )
    return node_result


def check_git(ctx: RunContext, sandbox: Sandbox) -> NodeResult:
    return run_command(
        sandbox,
        ["git", "--version"],
        timeout_ms=TOOL_CHECK_TIMEOUT_MS,
        error="git not available",
    )


def install(argv: Sequence[str]) -> Check:
    def run(ctx: RunContext, sandbox: Sandbox) -> NodeResult:
        return run_command(sandbox, argv, timeout_ms=INSTALL_TIMEOUT_MS)

    return run


def validation_steps(commands: CommandsConfig) -> list[ValidateStep]:
    """Typecheck then test, with combined stdout/stderr as output."""

    def typecheck(ctx: RunContext, sandbox: Sandbox) -> NodeResult:
        return run_command(
            sandbox,
            commands.typecheck,
            timeout_ms=TYPECHECK_TIMEOUT_MS,
            error="Typecheck failed",
            combine_output=True,
        )

    def test(ctx: RunContext, sandbox: Sandbox) -> NodeResult:
        return run_command(
            sandbox,
            commands.test,
            timeout_ms=TEST_TIMEOUT_MS,
            error="Tests failed",
            combine_output=True,
        )

    return [step("typecheck", typecheck), step("test", test)]


def commit(message: Callable[[RunContext], str]) -> Check:
    """Stage everything and commit with a message built from the context."""

    def run(ctx: RunContext, sandbox: Sandbox) -> NodeResult:
        staged = run_command(
            sandbox, ["git", "add", "-A"], timeout_ms=COMMIT_TIMEOUT_MS
        )
        if staged.status is NodeStatus.FAILURE:
            return staged
        return run_command(
            sandbox,
            ["git", "commit", "-m", message(ctx)],
            timeout_ms=COMMIT_TIMEOUT_MS,
        )

    return run
