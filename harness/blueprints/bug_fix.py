# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Bug-fix blueprint: install, investigate, implement, validate, commit."""

from harness.blueprint.dsl import blueprint, delegated, exact, gate, validate
from harness.blueprint.types import Blueprint, Prompt, RunContext
from harness.blueprints._common import (
    check_git,
    commit,
    install,
    validation_steps,
)
from harness.config import CommandsConfig


NAME = "bug-fix"


def _investigate_prompt(ctx: RunContext) -> str:
    return (
        f"Investigate this bug in the repository at {ctx.work_dir}.\n\n"
        f"Intent: {ctx.intent}\n\n"
        "Read relevant files, understand the codebase, and identify the "
        "root cause. Report your findings."
    )


def _implement_prompt(ctx: RunContext) -> str:
    investigation = ctx.results.get("investigate")
    findings = investigation.output if investigation else ""
    return (
        f"Based on the investigation:\n\n{findings}\n\n"
        "Implement a fix for the bug. Make minimal, targeted changes. "
        "Do not refactor unrelated code."
    )


def _repair_prompt(commands: CommandsConfig) -> Prompt:
    def prompt(ctx: RunContext) -> str:
        return (
            f"Validation of the fix for '{ctx.intent}' failed.\n\n"
            f"Run `{' '.join(commands.typecheck)}` and "
            f"`{' '.join(commands.test)}`, read the failures and fix them. "
            "Run the failing commands again to verify your fixes."
        )

    return prompt


def _commit_message(ctx: RunContext) -> str:
    return f"fix: {ctx.intent}\n\nHarness run: {ctx.run_id}"


def build(commands: CommandsConfig | None = None) -> Blueprint:
    """Build the bug-fix blueprint for the given project commands."""
    commands = commands or CommandsConfig()
    return blueprint(
        NAME,
        "Investigate and fix a bug: install, investigate, implement, "
        "validate, commit",
        [
            gate("check-git", "Verify git is available", check_git),
            exact("install", "Install dependencies", install(commands.install)),
            delegated(
                "investigate",
                "Investigate the bug",
                agent="claude-code",
                prompt=_investigate_prompt,
            ),
            delegated(
                "implement",
                "Implement the fix",
                agent="claude-code",
                prompt=_implement_prompt,
            ),
            validate(
                "validate",
                "Run typecheck and tests to verify the fix",
                steps=validation_steps(commands),
                repair=delegated(
                    "fix-failures",
                    "Fix typecheck and test failures",
                    agent="claude-code",
                    prompt=_repair_prompt(commands),
                ),
                max_retries=2,
            ),
            exact("commit", "Commit the fix", commit(_commit_message)),
        ],
    )
