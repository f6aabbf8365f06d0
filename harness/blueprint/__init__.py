# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Blueprint model, DSL and execution engine."""

from harness.blueprint.dsl import (
    blueprint,
    command,
    delegated,
    exact,
    gate,
    step,
    validate,
)
from harness.blueprint.engine import (
    AgentExecutor,
    EngineEvents,
    NullEvents,
    execute_blueprint,
)
from harness.blueprint.report import (
    NodeReport,
    PushResult,
    RunReport,
    TokenUsage,
)
from harness.blueprint.types import (
    AnyNode,
    Blueprint,
    DelegatedNode,
    DuplicateNodeError,
    ExactNode,
    GateNode,
    NodeKind,
    NodeResult,
    NodeStatus,
    RunContext,
    ValidateNode,
    ValidateStep,
    node_kind,
)


__all__ = [
    "AgentExecutor",
    "AnyNode",
    "Blueprint",
    "DelegatedNode",
    "DuplicateNodeError",
    "EngineEvents",
    "ExactNode",
    "GateNode",
    "NodeKind",
    "NodeReport",
    "NodeResult",
    "NodeStatus",
    "NullEvents",
    "PushResult",
    "RunContext",
    "RunReport",
    "TokenUsage",
    "ValidateNode",
    "ValidateStep",
    "blueprint",
    "command",
    "delegated",
    "execute_blueprint",
    "exact",
    "gate",
    "node_kind",
    "step",
    "validate",
]
