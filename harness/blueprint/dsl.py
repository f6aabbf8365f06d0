# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Helpers for declaring blueprints."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import TYPE_CHECKING

from harness.blueprint.types import (
    AnyNode,
    Blueprint,
    Check,
    DelegatedNode,
    ExactNode,
    GateNode,
    NodeResult,
    Prompt,
    RunContext,
    SkipPredicate,
    ValidateNode,
    ValidateStep,
)
from harness.sandbox.types import DEFAULT_OPERATION_TIMEOUT_MS


if TYPE_CHECKING:
    from harness.sandbox.types import Sandbox


def blueprint(
    name: str, description: str, nodes: Iterable[AnyNode]
) -> Blueprint:
    return Blueprint(name=name, description=description, nodes=tuple(nodes))


def gate(
    name: str,
    description: str,
    check: Check,
    *,
    skip: SkipPredicate | None = None,
) -> GateNode:
    return GateNode(name=name, description=description, check=check, skip=skip)


def exact(
    name: str,
    description: str,
    run: Check,
    *,
    skip: SkipPredicate | None = None,
) -> ExactNode:
    return ExactNode(name=name, description=description, run=run, skip=skip)


def delegated(
    name: str,
    description: str,
    *,
    agent: str,
    prompt: Prompt,
    allowed_tools: Sequence[str] = (),
    skip: SkipPredicate | None = None,
) -> DelegatedNode:
    return DelegatedNode(
        name=name,
        description=description,
        agent=agent,
        prompt=prompt,
        allowed_tools=tuple(allowed_tools),
        skip=skip,
    )


def validate(
    name: str,
    description: str,
    *,
    steps: Iterable[ValidateStep],
    repair: DelegatedNode,
    max_retries: int = 2,
    skip: SkipPredicate | None = None,
) -> ValidateNode:
    return ValidateNode(
        name=name,
        description=description,
        steps=tuple(steps),
        repair=repair,
        max_retries=max_retries,
        skip=skip,
    )


def step(name: str, run: Check) -> ValidateStep:
    return ValidateStep(name=name, run=run)


def command(
    argv: Sequence[str] | Callable[[RunContext], Sequence[str]],
    *,
    timeout_ms: int = DEFAULT_OPERATION_TIMEOUT_MS,
    max_output_bytes: int | None = None,
) -> Check:
    """Build a check that runs a command in the sandbox root.

    *argv* may be a fixed argument vector or a function of the context.
    Exit code 0 is success; anything else, including timeout, is failure.
    """

    def run(ctx: RunContext, sandbox: Sandbox) -> NodeResult:
        args = argv(ctx) if callable(argv) else argv
        result = sandbox.exec(
            list(args),
            cwd=sandbox.work_dir,
            timeout_ms=timeout_ms,
            max_output_bytes=max_output_bytes,
        )
        return NodeResult.from_exec(result)

    return run
