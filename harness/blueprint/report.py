# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Run report values."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from harness.blueprint.types import NodeResult


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting for agent invocations.

    Attributes:
        input_tokens: Prompt tokens.
        output_tokens: Completion tokens.
        cache_read_tokens: Tokens served from the prompt cache.
        cache_write_tokens: Tokens written to the prompt cache.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cache_read_tokens=self.cache_read_tokens + other.cache_read_tokens,
            cache_write_tokens=(
                self.cache_write_tokens + other.cache_write_tokens
            ),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_read_tokens": self.cache_read_tokens,
            "cache_write_tokens": self.cache_write_tokens,
        }


@dataclass(frozen=True)
class PushResult:
    """Outcome of the push and pull-request flow.

    Four states: token missing (not pushed, error), push failed (not
    pushed, error), pushed but PR failed (pushed, error), and both
    succeeded (pushed, ``pr_url`` set unless the tool printed nothing).

    Attributes:
        pushed: Whether the branch reached the remote.
        pr_url: URL of the created pull request.
        error: Failure description.
    """

    pushed: bool
    pr_url: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pushed": self.pushed,
            "pr_url": self.pr_url,
            "error": self.error,
        }


@dataclass(frozen=True)
class NodeReport:
    """A top-level node and its result, in execution order."""

    name: str
    result: NodeResult


@dataclass(frozen=True)
class RunReport:
    """Complete report of one run.

    A failed run still produces a full report; it is the source of truth
    for diagnosing which node failed and why.

    Attributes:
        run_id: Run identifier.
        blueprint: Blueprint name.
        repo: Source repository reference.
        intent: Run intent.
        nodes: Executed (and skipped) top-level nodes, in order.
        total_duration_ms: Wall-clock duration of the node loop.
        token_usage: Tokens used by all agent invocations.
        push: Whether push was requested.
        branch: Run branch, once known.
        push_result: Outcome of the push flow, if it ran.
    """

    run_id: str
    blueprint: str
    repo: str
    intent: str
    nodes: tuple[NodeReport, ...]
    total_duration_ms: int
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    push: bool = False
    branch: str | None = None
    push_result: PushResult | None = None

    @property
    def succeeded(self) -> bool:
        """True when no node failed."""
        return not any(node.result.failed for node in self.nodes)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "run_id": self.run_id,
            "blueprint": self.blueprint,
            "repo": self.repo,
            "intent": self.intent,
            "nodes": [
                {
                    "name": node.name,
                    "status": node.result.status.value,
                    "output": node.result.output,
                    "duration_ms": node.result.duration_ms,
                    "error": node.result.error,
                }
                for node in self.nodes
            ],
            "total_duration_ms": self.total_duration_ms,
            "token_usage": self.token_usage.to_dict(),
            "push": self.push,
            "branch": self.branch,
            "push_result": (
                self.push_result.to_dict() if self.push_result else None
            ),
        }
