# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""pi driver (``pi --print``).  Reports no token usage."""

from __future__ import annotations

from typing import TYPE_CHECKING

from harness.agents.types import AgentOptions, AgentResult, failed_invocation
from harness.blueprint.types import NodeStatus


if TYPE_CHECKING:
    from harness.sandbox.types import Sandbox


class PiDriver:
    name = "pi"

    def execute(
        self, sandbox: Sandbox, prompt: str, options: AgentOptions
    ) -> AgentResult:
        result = sandbox.exec(
            ["pi", "--print", prompt],
            cwd=sandbox.work_dir,
            timeout_ms=options.timeout_ms,
        )
        failure = failed_invocation(result)
        if failure is not None:
            return failure
        return AgentResult(
            status=NodeStatus.SUCCESS,
            output=result.stdout,
            duration_ms=result.duration_ms,
        )
