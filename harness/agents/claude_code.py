# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Claude Code driver (``claude -p --output-format json``)."""

from __future__ import annotations

import json
import logging
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


logger = logging.getLogger(__name__)

#: Tools every invocation may use.  Blueprints extend this, never bypass it.
BASE_ALLOWED_TOOLS = (
    "Read",
    "Edit",
    "Write",
    "Glob",
    "Grep",
    "Bash(pnpm *)",
    "Bash(git diff *)",
    "Bash(git status *)",
)


class ClaudeCodeDriver:
    """Run Claude Code non-interactively and parse its JSON result."""

    name = "claude-code"

    def build_argv(self, prompt: str, options: AgentOptions) -> list[str]:
        tools = [*BASE_ALLOWED_TOOLS, *options.allowed_tools]
        argv = [
            "claude",
            "-p",
            "--output-format",
            "json",
            "--allowedTools",
            ",".join(tools),
        ]
        if options.system_prompt:
            argv += ["--append-system-prompt", options.system_prompt]
        if options.session_id:
            argv += ["--resume", options.session_id]
        argv.append(prompt)
        return argv

    def execute(
        self, sandbox: Sandbox, prompt: str, options: AgentOptions
    ) -> AgentResult:
        result = sandbox.exec(
            self.build_argv(prompt, options),
            cwd=sandbox.work_dir,
            timeout_ms=options.timeout_ms,
            max_output_bytes=AGENT_MAX_OUTPUT_BYTES,
        )
        failure = failed_invocation(result)
        if failure is not None:
            return failure

        text, usage, session_id = parse_output(result.stdout)
        return AgentResult(
            status=NodeStatus.SUCCESS,
            output=text,
            duration_ms=result.duration_ms,
            token_usage=usage,
            session_id=session_id,
        )


def parse_output(stdout: str) -> tuple[str, TokenUsage, str | None]:
    """Extract result text, token usage and session id.

    Output that is not a JSON object is returned verbatim with zero
    usage.
    """
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError:
        logger.debug("Claude output is not JSON, using raw stdout")
        return stdout, TokenUsage(), None
    if not isinstance(data, dict):
        return stdout, TokenUsage(), None

    usage = data.get("usage")
    if not isinstance(usage, dict):
        usage = {}
    text = data.get("result")
    session_id = data.get("session_id")
    return (
        text if isinstance(text, str) else stdout,
        TokenUsage(
            input_tokens=_count(usage, "input_tokens"),
            output_tokens=_count(usage, "output_tokens"),
            cache_read_tokens=_count(
                usage, "cache_read_input_tokens", "cache_read_tokens"
            ),
            cache_write_tokens=_count(
                usage, "cache_creation_input_tokens", "cache_write_tokens"
            ),
        ),
        session_id if isinstance(session_id, str) else None,
    )


def _count(usage: dict, *keys: str) -> int:
    for key in keys:
        value = usage.get(key)
        if isinstance(value, int):
            return value
    return 0
