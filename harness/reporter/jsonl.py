# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Append-only JSONL event log for a run.

Each event is one line: a JSON object with ``timestamp`` (ISO-8601,
UTC) and ``event`` keys plus event-specific fields.  The file is opened
in append mode for every write, so several runs can share one log and
it can be tailed while a run is in progress.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from harness.sanitize import redact, sanitize
from harness.security import assert_confined


if TYPE_CHECKING:
    from harness.blueprint.report import RunReport
    from harness.blueprint.types import NodeKind, NodeResult


class ReporterPathError(ValueError):
    """The JSONL report path is unusable."""


def resolve_report_path(path: str | os.PathLike[str]) -> Path:
    """Resolve and validate a report path.

    Relative paths must stay inside the current directory.  The parent
    directory must already exist.

    Raises:
        ConfinementError: If a relative path escapes the cwd.
        ReporterPathError: If the parent is missing or not a directory.
    """
    resolved = Path(os.path.abspath(path))
    if not os.path.isabs(path):
        assert_confined(resolved, os.getcwd())

    parent = resolved.parent
    if not parent.exists():
        raise ReporterPathError(
            f"Invalid reporter path: parent directory does not exist: "
            f'"{parent}"'
        )
    if not parent.is_dir():
        raise ReporterPathError(
            f'Invalid reporter path: parent is not a directory: "{parent}"'
        )
    return resolved


class JsonlReporter:
    """Write run events to a JSONL file.

    Attributes:
        file_path: Resolved log path.
        env: Environment whose secret values are redacted.
    """

    def __init__(
        self, path: str | os.PathLike[str], env: Mapping[str, str]
    ) -> None:
        self.file_path = resolve_report_path(path)
        self.env = env

    def _append(self, event: dict[str, Any]) -> None:
        payload = {"timestamp": datetime.now(UTC).isoformat(), **event}
        with self.file_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(payload) + "\n")

    def node_start(self, name: str, kind: NodeKind) -> None:
        self._append({"event": "node_start", "name": name, "type": str(kind)})

    def node_output(self, name: str, output: str) -> None:
        self._append(
            {
                "event": "node_output",
                "name": name,
                "output": sanitize(output, self.env),
            }
        )

    def node_complete(self, name: str, result: NodeResult) -> None:
        event: dict[str, Any] = {
            "event": "node_complete",
            "name": name,
            "status": str(result.status),
            "duration_ms": result.duration_ms,
        }
        if result.error is not None:
            event["error"] = sanitize(result.error, self.env)
        self._append(event)

    def run_complete(self, report: RunReport) -> None:
        self._append(
            {
                "event": "run_complete",
                "run_id": report.run_id,
                "blueprint": report.blueprint,
                "intent": redact(report.intent, self.env),
                "total_duration_ms": report.total_duration_ms,
                "token_usage": report.token_usage.to_dict(),
                "node_count": len(report.nodes),
            }
        )
