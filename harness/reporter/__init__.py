# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Run reporters: console progress and JSONL event logs."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from harness.reporter.console import ConsoleReporter
from harness.reporter.jsonl import (
    JsonlReporter,
    ReporterPathError,
    resolve_report_path,
)
from harness.reporter.types import Reporter, status_icon


if TYPE_CHECKING:
    from harness.blueprint.report import RunReport
    from harness.blueprint.types import NodeKind, NodeResult


class MultiReporter:
    """Forward every event to each reporter, in order."""

    def __init__(self, reporters: Iterable[Reporter]) -> None:
        self.reporters = list(reporters)

    def node_start(self, name: str, kind: NodeKind) -> None:
        for reporter in self.reporters:
            reporter.node_start(name, kind)

    def node_output(self, name: str, output: str) -> None:
        for reporter in self.reporters:
            reporter.node_output(name, output)

    def node_complete(self, name: str, result: NodeResult) -> None:
        for reporter in self.reporters:
            reporter.node_complete(name, result)

    def run_complete(self, report: RunReport) -> None:
        for reporter in self.reporters:
            reporter.run_complete(report)


__all__ = [
    "ConsoleReporter",
    "JsonlReporter",
    "MultiReporter",
    "Reporter",
    "ReporterPathError",
    "resolve_report_path",
    "status_icon",
]
