# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Codex driver (``codex exec --full-auto``).

``--full-auto`` grants every tool, so ``allowed_tools`` has no effect.
Codex reports a single total token count, recorded as input tokens.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from harness.agents.types import (
    AGENT_MAX_OUTPUT_BYTES,
    AgentOptions,
    AgentResult,
    failed_invocation,
)
from harness.blueprint.report import TokenUsage
from harness.blueprint.types import NodeStatus


if TYPE_CHECKING:
    from harness.sandbox.types import Sandbox


_TOKENS_RE = re.compile(r"tokens used\n([\d,]+)", re.IGNORECASE)


class CodexDriver:
    name = "codex"

    def build_argv(
        self, prompt: str, options: AgentOptions, work_dir: str
    ) -> list[str]:
        argv = ["codex", "exec", "--full-auto", "-C", work_dir]
        if options.system_prompt:
            # Quotes would end the TOML string early.
            escaped = options.system_prompt.replace('"', '\\"')
            argv += ["--config", f'system_prompt="{escaped}"']
        argv.append(prompt)
        return argv

    def execute(
        self, sandbox: Sandbox, prompt: str, options: AgentOptions
    ) -> AgentResult:
        result = sandbox.exec(
            self.build_argv(prompt, options, sandbox.work_dir),
            cwd=sandbox.work_dir,
            timeout_ms=options.timeout_ms,
            max_output_bytes=AGENT_MAX_OUTPUT_BYTES,
        )
        failure = failed_invocation(result)
        if failure is not None:
            return failure
        return AgentResult(
            status=NodeStatus.SUCCESS,
            output=result.stdout,
            duration_ms=result.duration_ms,
            token_usage=TokenUsage(
                input_tokens=parse_token_count(result.stdout)
            ),
        )


def parse_token_count(stdout: str) -> int:
    """Return N from a ``tokens used\\nN,NNN`` trailer, or 0."""
    match = _TOKENS_RE.search(stdout)
    if not match:
        return 0
    return int(match.group(1).replace(",", "") or 0)
