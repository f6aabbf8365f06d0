# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Agent driver contract."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from harness.blueprint.report import TokenUsage
from harness.blueprint.types import NodeResult, NodeStatus
from harness.sandbox.types import DEFAULT_OPERATION_TIMEOUT_MS, ExecResult


if TYPE_CHECKING:
    from harness.sandbox.types import Sandbox


#: Agents routinely emit more than the default 50 KiB of output.
AGENT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class AgentResult(NodeResult):
    """Node result of an agent invocation, with accounting.

    Attributes:
        token_usage: Tokens consumed by the invocation.
        session_id: Agent session for follow-up turns, if reported.
    """

    token_usage: TokenUsage = field(default_factory=TokenUsage)
    session_id: str | None = None


@dataclass(frozen=True)
class AgentOptions:
    """Per-invocation agent options.

    Attributes:
        system_prompt: Text appended to the agent's system prompt.
        allowed_tools: Tools allowed beyond the driver's base set.
        session_id: Session to resume.
        timeout_ms: Invocation timeout.
    """

    system_prompt: str | None = None
    allowed_tools: Sequence[str] = ()
    session_id: str | None = None
    timeout_ms: int = DEFAULT_OPERATION_TIMEOUT_MS


class AgentDriver(Protocol):
    """Runs one agent CLI invocation inside a sandbox."""

    name: str

    def execute(
        self, sandbox: Sandbox, prompt: str, options: AgentOptions
    ) -> AgentResult: ...


def failed_invocation(result: ExecResult) -> AgentResult | None:
    """Return the failure result for a timed-out or non-zero run.

    Returns None when the command succeeded.
    """
    if result.timed_out:
        error = "Agent timed out"
    elif result.exit_code != 0:
        error = result.stderr.strip() or f"Exit code {result.exit_code}"
    else:
        return None
    return AgentResult(
        status=NodeStatus.FAILURE,
        output=result.stdout,
        duration_ms=result.duration_ms,
        error=error,
    )
