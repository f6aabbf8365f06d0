# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Blueprint execution engine.

Runs a blueprint's nodes strictly in order against one sandbox:

1. A node whose skip predicate is true gets a ``skipped`` result and
   only a complete event.
2. Otherwise the engine emits *start*, dispatches on the node kind,
   records the result, emits *output* (if any) and then *complete*.
3. A ``failure`` result halts the run.

Validate nodes retry: each attempt runs all steps, and between failed
attempts the repair node runs as a full delegated node with its own
start/output/complete events.

The engine never catches exceptions from node bodies.  Callers own the
sandbox and must tear it down on every exit path.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Protocol, assert_never

from harness.blueprint.report import NodeReport, RunReport
from harness.blueprint.types import (
    Blueprint,
    DelegatedNode,
    ExactNode,
    GateNode,
    NodeKind,
    NodeResult,
    NodeStatus,
    RunContext,
    ValidateNode,
    node_kind,
)


if TYPE_CHECKING:
    from harness.blueprint.types import AnyNode
    from harness.sandbox.types import Sandbox


logger = logging.getLogger(__name__)


class AgentExecutor(Protocol):
    """Runs a delegated node and returns its result."""

    def execute(
        self, node: DelegatedNode, ctx: RunContext, sandbox: Sandbox
    ) -> NodeResult: ...


class EngineEvents(Protocol):
    """Receiver of node lifecycle events, in emission order."""

    def node_start(self, name: str, kind: NodeKind) -> None: ...

    def node_output(self, name: str, output: str) -> None: ...

    def node_complete(self, name: str, result: NodeResult) -> None: ...


class NullEvents:
    """Event sink that discards everything."""

    def node_start(self, name: str, kind: NodeKind) -> None:
        pass

    def node_output(self, name: str, output: str) -> None:
        pass

    def node_complete(self, name: str, result: NodeResult) -> None:
        pass


def execute_blueprint(
    blueprint: Blueprint,
    ctx: RunContext,
    *,
    sandbox: Sandbox,
    agent_executor: AgentExecutor,
    events: EngineEvents | None = None,
) -> RunReport:
    """Run *blueprint* and return the report.

    Args:
        blueprint: Blueprint to run.
        ctx: Fresh run context; results are recorded into it.
        sandbox: Sandbox every node operates on.
        agent_executor: Runs delegated (and repair) nodes.
        events: Optional lifecycle event sink.

    Returns:
        Report with one entry per executed or skipped top-level node.
        ``token_usage`` is left at zero; the caller fills it in.
    """
    runner = _Runner(ctx, sandbox, agent_executor, events or NullEvents())
    reports: list[NodeReport] = []
    start = time.monotonic()

    for node in blueprint.nodes:
        if node.skip is not None and node.skip(ctx):
            logger.info("Skipping node %s", node.name)
            result = NodeResult.skipped()
            ctx.record(node.name, result)
            runner.events.node_complete(node.name, result)
            reports.append(NodeReport(node.name, result))
            continue

        result = runner.run_node(node)
        reports.append(NodeReport(node.name, result))
        if result.failed:
            logger.warning(
                "Node %s failed, halting run %s: %s",
                node.name,
                ctx.run_id,
                result.error,
            )
            break

    return RunReport(
        run_id=ctx.run_id,
        blueprint=blueprint.name,
        repo=ctx.repo,
        intent=ctx.intent,
        nodes=tuple(reports),
        total_duration_ms=int((time.monotonic() - start) * 1000),
        push=ctx.push,
    )


class _Runner:
    """Per-run dispatch state."""

    def __init__(
        self,
        ctx: RunContext,
        sandbox: Sandbox,
        agent_executor: AgentExecutor,
        events: EngineEvents,
    ) -> None:
        self.ctx = ctx
        self.sandbox = sandbox
        self.agent_executor = agent_executor
        self.events = events

    def run_node(
        self, node: AnyNode, record_as: str | None = None
    ) -> NodeResult:
        """Run *node* with start/output/complete events and record it."""
        name = record_as or node.name
        logger.info("Running %s node %s", node_kind(node), name)
        self.events.node_start(name, node_kind(node))
        result = self._dispatch(node)
        self.ctx.record(name, result)
        if result.output:
            self.events.node_output(name, result.output)
        self.events.node_complete(name, result)
        return result

    def _dispatch(self, node: AnyNode) -> NodeResult:
        match node:
            case GateNode():
                return node.check(self.ctx, self.sandbox)
            case ExactNode():
                return node.run(self.ctx, self.sandbox)
            case DelegatedNode():
                return self.agent_executor.execute(
                    node, self.ctx, self.sandbox
                )
            case ValidateNode():
                return self._validate(node)
            case _:
                assert_never(node)

    def _validate(self, node: ValidateNode) -> NodeResult:
        repairs = 0
        for attempt in range(node.max_retries + 1):
            step_results: list[NodeResult] = []
            failed: NodeResult | None = None
            for step in node.steps:
                result = step.run(self.ctx, self.sandbox)
                step_results.append(result)
                if result.failed:
                    logger.info(
                        "Validate %s: step %s failed (attempt %d/%d)",
                        node.name,
                        step.name,
                        attempt + 1,
                        node.max_retries + 1,
                    )
                    failed = result
                    break

            output = "\n".join(r.output for r in step_results)
            duration_ms = sum(r.duration_ms for r in step_results)

            if failed is None:
                return NodeResult(
                    status=NodeStatus.SUCCESS,
                    output=output,
                    duration_ms=duration_ms,
                )

            if attempt == node.max_retries:
                return NodeResult(
                    status=NodeStatus.FAILURE,
                    output=output,
                    duration_ms=duration_ms,
                    error=failed.error or "Validation failed after max retries",
                )

            repairs += 1
            self.run_node(
                node.repair, record_as=_repair_key(node.repair, repairs)
            )

        # range() always returns inside the loop
        raise AssertionError("unreachable")


def _repair_key(repair: DelegatedNode, invocation: int) -> str:
    """Result key for the *invocation*-th run of a repair node."""
    if invocation == 1:
        return repair.name
    return f"{repair.name}.{invocation}"
