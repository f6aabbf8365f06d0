# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Blueprint data model: nodes, results and the run context."""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeAlias

from harness.sandbox.types import ExecResult, SandboxType


if TYPE_CHECKING:
    from harness.sandbox.types import Sandbox


class NodeStatus(enum.StrEnum):
    """Outcome of a node."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class NodeKind(enum.StrEnum):
    """Kind tag reported with node start events."""

    GATE = "gate"
    EXACT = "exact"
    DELEGATED = "delegated"
    VALIDATE = "validate"


class DuplicateNodeError(Exception):
    """A node name was recorded twice or is not unique in a blueprint."""


@dataclass(frozen=True)
class NodeResult:
    """Result of executing one node.

    Attributes:
        status: Success, failure or skipped.
        output: Free-text output.
        duration_ms: Elapsed time in milliseconds.
        error: Human-readable error for failures.
    """

    status: NodeStatus
    output: str = ""
    duration_ms: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.status is NodeStatus.FAILURE

    @classmethod
    def skipped(cls) -> NodeResult:
        return cls(status=NodeStatus.SKIPPED)

    @classmethod
    def from_exec(
        cls, result: ExecResult, *, error: str | None = None
    ) -> NodeResult:
        """Map a command result to a node result.

        Exit code 0 without timeout is success; stdout becomes the
        output.  On failure the error is *error*, else stderr, else a
        description of the exit code.
        """
        if result.ok:
            return cls(
                status=NodeStatus.SUCCESS,
                output=result.stdout,
                duration_ms=result.duration_ms,
            )
        if error is None:
            if result.timed_out:
                error = f"Timed out after {result.duration_ms}ms"
            else:
                error = result.stderr.strip() or f"Exit code {result.exit_code}"
        return cls(
            status=NodeStatus.FAILURE,
            output=result.stdout,
            duration_ms=result.duration_ms,
            error=error,
        )


@dataclass
class RunContext:
    """Mutable state threaded through one run.

    Owned by a single run.  ``results`` is append-only: a node name is
    written at most once (see :meth:`record`).

    Attributes:
        run_id: 8-character hex run identifier.
        work_dir: Sandbox root.
        intent: Free-text description of what the run should achieve.
        repo: Source repository reference.
        push: Whether the branch is pushed after the run.
        env: Environment map; also drives output redaction.
        results: Results recorded so far, by node name.
        spec_path: Optional spec file, relative to the repository.
        sandbox_type: Backend in use.
    """

    run_id: str
    work_dir: str
    intent: str
    repo: str
    push: bool = False
    env: dict[str, str] = field(default_factory=dict)
    results: dict[str, NodeResult] = field(default_factory=dict)
    spec_path: str | None = None
    sandbox_type: SandboxType = SandboxType.LOCAL

    def record(self, name: str, result: NodeResult) -> None:
        """Record *result* under *name*.

        Raises:
            DuplicateNodeError: If *name* already has a result.
        """
        if name in self.results:
            raise DuplicateNodeError(
                f"Result for node {name!r} already recorded"
            )
        self.results[name] = result


Check: TypeAlias = Callable[[RunContext, "Sandbox"], NodeResult]
Prompt: TypeAlias = Callable[[RunContext], str]
SkipPredicate: TypeAlias = Callable[[RunContext], bool]


@dataclass(frozen=True)
class GateNode:
    """Preflight check that must pass before later nodes run.

    Attributes:
        name: Unique node name.
        description: Human-readable description.
        check: Predicate over (context, sandbox) returning a result.
        skip: Optional predicate; when true the node is skipped.
    """

    name: str
    description: str
    check: Check
    skip: SkipPredicate | None = None


@dataclass(frozen=True)
class ExactNode:
    """Deterministic action against the sandbox.

    Attributes:
        name: Unique node name.
        description: Human-readable description.
        run: Action over (context, sandbox) returning a result.
        skip: Optional predicate; when true the node is skipped.
    """

    name: str
    description: str
    run: Check
    skip: SkipPredicate | None = None


@dataclass(frozen=True)
class DelegatedNode:
    """Step performed by an external agent.

    Attributes:
        name: Unique node name.
        description: Human-readable description.
        agent: Agent driver name (e.g. ``claude-code``).
        prompt: Builds the prompt from the context.
        allowed_tools: Tools allowed beyond the driver's base set.
        skip: Optional predicate; when true the node is skipped.
    """

    name: str
    description: str
    agent: str
    prompt: Prompt
    allowed_tools: tuple[str, ...] = ()
    skip: SkipPredicate | None = None


@dataclass(frozen=True)
class ValidateStep:
    """One check inside a :class:`ValidateNode`.

    Attributes:
        name: Step name (used in logs only).
        run: Action over (context, sandbox) returning a result.
    """

    name: str
    run: Check


@dataclass(frozen=True)
class ValidateNode:
    """Run steps; on failure let an agent repair and try again.

    Attributes:
        name: Unique node name.
        description: Human-readable description.
        steps: Steps run in order each attempt.
        repair: Agent node run between failed attempts.
        max_retries: Number of repair rounds (attempts = max_retries + 1).
        skip: Optional predicate; when true the node is skipped.
    """

    name: str
    description: str
    steps: tuple[ValidateStep, ...]
    repair: DelegatedNode
    max_retries: int = 2
    skip: SkipPredicate | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0: {self.max_retries}")
        if not self.steps:
            raise ValueError(f"Validate node {self.name!r} has no steps")


AnyNode: TypeAlias = GateNode | ExactNode | DelegatedNode | ValidateNode


@dataclass(frozen=True)
class Blueprint:
    """Named, ordered list of nodes describing one workflow.

    Attributes:
        name: Blueprint name (slugified into the run branch).
        description: Human-readable description.
        nodes: Nodes in execution order.
    """

    name: str
    description: str
    nodes: tuple[AnyNode, ...]

    def __post_init__(self) -> None:
        """Check that node names, including repair nodes, are unique.

        A repair node that runs again is recorded as ``<repair>.<n>``
        (n = 2 .. max_retries); those keys are reserved too.

        Raises:
            DuplicateNodeError: On a repeated name.
        """
        seen: set[str] = set()
        for node in self.nodes:
            names = [node.name]
            if isinstance(node, ValidateNode):
                names.append(node.repair.name)
                names.extend(
                    f"{node.repair.name}.{n}"
                    for n in range(2, node.max_retries + 1)
                )
            for name in names:
                if name in seen:
                    raise DuplicateNodeError(
                        f"Blueprint {self.name!r} has duplicate node {name!r}"
                    )
                seen.add(name)


def node_kind(node: AnyNode) -> NodeKind:
    """Return the kind tag of *node*."""
    match node:
        case GateNode():
            return NodeKind.GATE
        case ExactNode():
            return NodeKind.EXACT
        case DelegatedNode():
            return NodeKind.DELEGATED
        case ValidateNode():
            return NodeKind.VALIDATE
