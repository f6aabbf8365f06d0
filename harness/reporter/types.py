# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Reporter contract."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from harness.blueprint.types import NodeStatus


if TYPE_CHECKING:
    from harness.blueprint.report import RunReport
    from harness.blueprint.types import NodeKind, NodeResult


_STATUS_ICONS = {
    NodeStatus.SUCCESS: "+",
    NodeStatus.SKIPPED: "-",
    NodeStatus.FAILURE: "x",
}


class Reporter(Protocol):
    """Engine event sink that also receives the final report."""

    def node_start(self, name: str, kind: NodeKind) -> None: ...

    def node_output(self, name: str, output: str) -> None: ...

    def node_complete(self, name: str, result: NodeResult) -> None: ...

    def run_complete(self, report: RunReport) -> None: ...


def status_icon(status: NodeStatus) -> str:
    return _STATUS_ICONS[status]
