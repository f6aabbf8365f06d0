# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Self-build blueprint: implement a feature from a spec file.

Plans and implements with the ``pi`` agent, validates, exports the diff
as a patch into the source repository and commits.  Requires the local
sandbox because the patch is written to the host checkout.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from harness.blueprint.dsl import blueprint, delegated, exact, gate, validate
from harness.blueprint.types import (
    Blueprint,
    Check,
    NodeResult,
    NodeStatus,
    Prompt,
    RunContext,
)
from harness.blueprints._common import (
    INSTALL_TIMEOUT_MS,
    TOOL_CHECK_TIMEOUT_MS,
    commit,
    run_command,
    validation_steps,
)
from harness.config import CommandsConfig
from harness.sandbox.types import SandboxType
from harness.sanitize import TRUNCATION_MARKER
from harness.security import assert_confined


if TYPE_CHECKING:
    from harness.sandbox.types import Sandbox


logger = logging.getLogger(__name__)

NAME = "self-build"

#: Diffs can be far larger than ordinary command output.
MAX_DIFF_BYTES = 10 * 1024 * 1024

_DIFF_TIMEOUT_MS = 30_000
_SPEC_CHECK_TIMEOUT_MS = 5_000


def _failure(error: str, duration_ms: int = 0) -> NodeResult:
    return NodeResult(
        status=NodeStatus.FAILURE, duration_ms=duration_ms, error=error
    )


def _check_tools(commands: CommandsConfig) -> Check:
    tool = commands.install[0]

    def check(ctx: RunContext, sandbox: Sandbox) -> NodeResult:
        if ctx.sandbox_type is not SandboxType.LOCAL:
            return _failure(
                f"self-build requires the local sandbox, "
                f"got {ctx.sandbox_type.value!r}"
            )
        if not ctx.spec_path:
            return _failure(
                "spec_path is required for the self-build blueprint"
            )

        assert_confined(os.path.join(ctx.work_dir, ctx.spec_path), ctx.work_dir)

        spec = sandbox.exec(
            ["test", "-f", ctx.spec_path],
            cwd=sandbox.work_dir,
            timeout_ms=_SPEC_CHECK_TIMEOUT_MS,
        )
        if not spec.ok:
            return _failure(
                f"Spec file not found in sandbox: {ctx.spec_path}",
                spec.duration_ms,
            )

        git = sandbox.exec(
            ["git", "--version"],
            cwd=sandbox.work_dir,
            timeout_ms=TOOL_CHECK_TIMEOUT_MS,
        )
        installer = sandbox.exec(
            [tool, "--version"],
            cwd=sandbox.work_dir,
            timeout_ms=TOOL_CHECK_TIMEOUT_MS,
        )
        ok = git.ok and installer.ok
        return NodeResult(
            status=NodeStatus.SUCCESS if ok else NodeStatus.FAILURE,
            output=(
                f"git: {git.stdout.strip()}, {tool}: "
                f"{installer.stdout.strip()}, spec: {ctx.spec_path}"
            ),
            duration_ms=(
                spec.duration_ms + git.duration_ms + installer.duration_ms
            ),
            error=None if ok else "Required tools not available",
        )

    return check


def _install(commands: CommandsConfig) -> Check:
    # Without --frozen-lockfile: the build may add dependencies.
    argv = [arg for arg in commands.install if arg != "--frozen-lockfile"]

    def run(ctx: RunContext, sandbox: Sandbox) -> NodeResult:
        return run_command(sandbox, argv, timeout_ms=INSTALL_TIMEOUT_MS)

    return run


def _plan_prompt(ctx: RunContext) -> str:
    return "\n".join(
        [
            "Read docs/ARCHITECTURE.md for project invariants and conventions.",
            f"Read the product spec at: {ctx.spec_path}",
            "Read existing source code for interfaces already defined.",
            "Plan the implementation. List files to create or modify and "
            "the approach.",
            "Do NOT write code yet, only plan.",
        ]
    )


def _implement_prompt(ctx: RunContext) -> str:
    plan = ctx.results.get("plan")
    return "\n".join(
        [
            "Read docs/ARCHITECTURE.md for project invariants.",
            f"Read the product spec at: {ctx.spec_path}",
            "Read existing source code.",
            f"Based on this plan:\n{plan.output if plan else ''}",
            "Generate the implementation and tests according to the spec.",
            "All acceptance criteria must pass.",
        ]
    )


def _repair_prompt(commands: CommandsConfig) -> Prompt:
    typecheck = " ".join(commands.typecheck)
    test = " ".join(commands.test)

    def prompt(ctx: RunContext) -> str:
        return "\n".join(
            [
                "Validation failed.",
                f"Read the spec again at: {ctx.spec_path}",
                f"Fix the failures. Run {typecheck} && {test} to verify.",
            ]
        )

    return prompt


def export_patch(ctx: RunContext, sandbox: Sandbox) -> NodeResult:
    """Write ``git diff HEAD`` to ``harness-patch-<run_id>.diff`` in the repo.

    A truncated diff is refused rather than written as a partial patch.
    """
    diff = sandbox.exec(
        ["git", "diff", "HEAD"],
        cwd=sandbox.work_dir,
        timeout_ms=_DIFF_TIMEOUT_MS,
        max_output_bytes=MAX_DIFF_BYTES,
    )
    if not diff.ok:
        return NodeResult(
            status=NodeStatus.FAILURE,
            output=diff.stderr,
            duration_ms=diff.duration_ms,
            error="git diff failed",
        )
    if diff.stdout.endswith(TRUNCATION_MARKER):
        return _failure(
            "Diff output was truncated, refusing to write partial patch",
            diff.duration_ms,
        )
    if not diff.stdout.strip():
        return NodeResult(
            status=NodeStatus.SUCCESS,
            output="No changes to export",
            duration_ms=diff.duration_ms,
        )

    repo_path = os.path.abspath(ctx.repo)
    patch_path = os.path.join(repo_path, f"harness-patch-{ctx.run_id}.diff")
    assert_confined(patch_path, repo_path)
    with open(patch_path, "w", encoding="utf-8") as f:
        f.write(diff.stdout)
    logger.info("Exported patch to %s", patch_path)

    return NodeResult(
        status=NodeStatus.SUCCESS,
        output=f"Patch exported to: {patch_path}",
        duration_ms=diff.duration_ms,
    )


def _commit_message(ctx: RunContext) -> str:
    return (
        f"feat: implement from spec\n\n"
        f"Spec: {ctx.spec_path or ctx.intent}\nHarness run: {ctx.run_id}"
    )


def build(commands: CommandsConfig | None = None) -> Blueprint:
    """Build the self-build blueprint for the given project commands."""
    commands = commands or CommandsConfig()
    return blueprint(
        NAME,
        "Build a feature from a product spec: plan, implement, validate, "
        "export patch, commit",
        [
            gate(
                "check-tools",
                "Verify sandbox type, spec file and tools",
                _check_tools(commands),
            ),
            exact("install", "Install dependencies", _install(commands)),
            delegated(
                "plan",
                "Read the spec and plan the implementation",
                agent="pi",
                prompt=_plan_prompt,
            ),
            delegated(
                "implement",
                "Generate code from the spec",
                agent="pi",
                prompt=_implement_prompt,
                allowed_tools=[
                    f"Bash({' '.join(commands.typecheck)} *)",
                    f"Bash({' '.join(commands.test)} *)",
                ],
            ),
            validate(
                "validate",
                "Run typecheck and tests",
                steps=validation_steps(commands),
                repair=delegated(
                    "fix-failures",
                    "Fix validation failures",
                    agent="pi",
                    prompt=_repair_prompt(commands),
                ),
                max_retries=2,
            ),
            exact(
                "export-patch",
                "Export the diff to the host repository",
                export_patch,
            ),
            exact(
                "commit",
                "Commit the implementation",
                commit(_commit_message),
            ),
        ],
    )
