# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Route delegated nodes to agent drivers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

from harness.agents.claude_code import ClaudeCodeDriver
from harness.agents.codex import CodexDriver
from harness.agents.pi import PiDriver
from harness.agents.types import AgentDriver, AgentOptions
from harness.blueprint.report import TokenUsage
from harness.sandbox.types import DEFAULT_OPERATION_TIMEOUT_MS


if TYPE_CHECKING:
    from harness.blueprint.engine import AgentExecutor
    from harness.blueprint.types import DelegatedNode, NodeResult, RunContext
    from harness.sandbox.types import Sandbox


logger = logging.getLogger(__name__)

DEFAULT_AGENT = "claude-code"


def default_drivers() -> dict[str, AgentDriver]:
    """Return a fresh instance of every built-in driver, by name."""
    drivers: list[AgentDriver] = [
        ClaudeCodeDriver(),
        PiDriver(),
        CodexDriver(),
    ]
    return {driver.name: driver for driver in drivers}


class AgentDispatcher:
    """Engine agent executor that picks a driver by ``node.agent``.

    Unknown agent names fall back to the default driver with a warning.
    """

    def __init__(
        self,
        drivers: Mapping[str, AgentDriver] | None = None,
        *,
        default: str = DEFAULT_AGENT,
        timeout_ms: int = DEFAULT_OPERATION_TIMEOUT_MS,
    ) -> None:
        if drivers is None:
            drivers = default_drivers()
        self.drivers = dict(drivers)
        if default not in self.drivers:
            raise ValueError(f"Default agent {default!r} has no driver")
        self.default = default
        self.timeout_ms = timeout_ms

    def driver_for(self, agent: str) -> AgentDriver:
        driver = self.drivers.get(agent)
        if driver is None:
            logger.warning(
                "Unknown agent %r, falling back to %s", agent, self.default
            )
            driver = self.drivers[self.default]
        return driver

    def execute(
        self, node: DelegatedNode, ctx: RunContext, sandbox: Sandbox
    ) -> NodeResult:
        driver = self.driver_for(node.agent)
        options = AgentOptions(
            allowed_tools=node.allowed_tools, timeout_ms=self.timeout_ms
        )
        logger.info("Delegating node %s to %s", node.name, driver.name)
        return driver.execute(sandbox, node.prompt(ctx), options)


class TokenCounter:
    """Agent executor wrapper that totals reported token usage.

    Works with any executor; results without a ``token_usage``
    attribute count as zero.
    """

    def __init__(self, inner: AgentExecutor) -> None:
        self.inner = inner
        self.total = TokenUsage()

    def execute(
        self, node: DelegatedNode, ctx: RunContext, sandbox: Sandbox
    ) -> NodeResult:
        result = self.inner.execute(node, ctx, sandbox)
        usage = getattr(result, "token_usage", None)
        if isinstance(usage, TokenUsage):
            self.total = self.total + usage
        return result
