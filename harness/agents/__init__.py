# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Agent CLI drivers."""

from harness.agents.dispatcher import (
    DEFAULT_AGENT,
    AgentDispatcher,
    TokenCounter,
    default_drivers,
)
from harness.agents.types import AgentDriver, AgentOptions, AgentResult


__all__ = [
    "DEFAULT_AGENT",
    "AgentDispatcher",
    "AgentDriver",
    "AgentOptions",
    "AgentResult",
    "TokenCounter",
    "default_drivers",
]
