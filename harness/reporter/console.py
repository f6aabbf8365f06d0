# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Human-readable progress on stderr."""

from __future__ import annotations

import sys
from collections.abc import Mapping
from typing import TYPE_CHECKING, TextIO

from harness.reporter.types import status_icon
from harness.sanitize import sanitize


if TYPE_CHECKING:
    from harness.blueprint.report import RunReport
    from harness.blueprint.types import NodeKind, NodeResult


class ConsoleReporter:
    """Write node progress and a run summary to a text stream.

    Node output and errors are truncated and redacted against *env*
    before they are written.

    Attributes:
        env: Environment whose secret values are redacted.
        stream: Destination stream (stderr when not given).
    """

    def __init__(
        self, env: Mapping[str, str], stream: TextIO | None = None
    ) -> None:
        self.env = env
        self.stream = stream if stream is not None else sys.stderr

    def _write(self, line: str) -> None:
        self.stream.write(line + "\n")
        self.stream.flush()

    def node_start(self, name: str, kind: NodeKind) -> None:
        self._write(f"\n[{kind}] {name} ...")

    def node_output(self, name: str, output: str) -> None:
        self._write(f"  [{name}] {sanitize(output, self.env)}")

    def node_complete(self, name: str, result: NodeResult) -> None:
        self._write(
            f"[{status_icon(result.status)}] {name} "
            f"({result.status}, {result.duration_ms}ms)"
        )
        if result.error:
            self._write(f"    error: {sanitize(result.error, self.env)}")

    def run_complete(self, report: RunReport) -> None:
        usage = report.token_usage
        self._write("\n--- Run Summary ---")
        self._write(f"Run ID:    {report.run_id}")
        self._write(f"Blueprint: {report.blueprint}")
        self._write(f"Repo:      {report.repo}")
        self._write(f"Duration:  {report.total_duration_ms}ms")
        self._write(
            f"Tokens:    {usage.input_tokens}in / {usage.output_tokens}out"
        )
        if report.branch:
            self._write(f"Branch:    {report.branch}")
        if report.push_result is not None:
            pushed = report.push_result
            if pushed.pr_url:
                self._write(f"PR:        {pushed.pr_url}")
            if pushed.error:
                self._write(
                    f"Push:      {sanitize(pushed.error, self.env)}"
                )
        self._write("\nNodes:")
        for node in report.nodes:
            result = node.result
            self._write(
                f"  [{status_icon(result.status)}] {node.name}: "
                f"{result.status} ({result.duration_ms}ms)"
            )
        self._write("---")
