# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for blueprint types, report values and the command helper."""

import json

import pytest

from harness.blueprint import (
    NodeKind,
    NodeReport,
    NodeResult,
    NodeStatus,
    PushResult,
    RunContext,
    RunReport,
    TokenUsage,
    command,
    delegated,
    exact,
    gate,
    node_kind,
    step,
    validate,
)
from harness.sandbox.types import TIMEOUT_EXIT_CODE, ExecResult


class TestFromExec:
    """Tests for NodeResult.from_exec."""

    def test_success(self) -> None:
        result = NodeResult.from_exec(ExecResult(0, "out", "warn", 12))
        assert result == NodeResult(NodeStatus.SUCCESS, "out", 12)

    def test_failure_uses_stderr(self) -> None:
        result = NodeResult.from_exec(ExecResult(2, "partial", " bad \n", 5))
        assert result.status is NodeStatus.FAILURE
        assert result.output == "partial"
        assert result.error == "bad"

    def test_failure_without_stderr(self) -> None:
        result = NodeResult.from_exec(ExecResult(7, "", "", 5))
        assert result.error == "Exit code 7"

    def test_timeout(self) -> None:
        result = NodeResult.from_exec(
            ExecResult(TIMEOUT_EXIT_CODE, "", "", 3000, timed_out=True)
        )
        assert result.failed
        assert result.error == "Timed out after 3000ms"

    def test_explicit_error(self) -> None:
        result = NodeResult.from_exec(
            ExecResult(1, "", "noise", 1), error="git not available"
        )
        assert result.error == "git not available"

    def test_skipped(self) -> None:
        result = NodeResult.skipped()
        assert result.status is NodeStatus.SKIPPED
        assert not result.failed


class TestCommand:
    """Tests for the command check helper."""

    def test_runs_in_work_dir(self, fake_sandbox) -> None:
        ctx = RunContext("deadbeef", "/work", "intent", "./repo")
        fake_sandbox.handler = lambda argv, env: ExecResult(0, "ok", "", 4)
        check = command(["make", "test"], timeout_ms=5000)
        result = check(ctx, fake_sandbox)
        assert result == NodeResult(NodeStatus.SUCCESS, "ok", 4)
        assert fake_sandbox.calls == [["make", "test"]]
        assert fake_sandbox.cwds == ["/work"]

    def test_argv_from_context(self, fake_sandbox) -> None:
        ctx = RunContext("deadbeef", "/work", "intent", "./repo")
        check = command(lambda c: ["echo", c.run_id])
        check(ctx, fake_sandbox)
        assert fake_sandbox.calls == [["echo", "deadbeef"]]

    def test_failure(self, fake_sandbox) -> None:
        ctx = RunContext("deadbeef", "/work", "intent", "./repo")
        fake_sandbox.handler = lambda argv, env: ExecResult(1, "", "E1", 4)
        result = command(["lint"])(ctx, fake_sandbox)
        assert result.failed
        assert result.error == "E1"


class TestNodeKind:
    """Tests for node_kind."""

    def test_kinds(self) -> None:
        noop = lambda c, sb: NodeResult.skipped()  # noqa: E731
        repair = delegated("fix", "", agent="pi", prompt=lambda c: "")
        assert node_kind(gate("g", "", noop)) is NodeKind.GATE
        assert node_kind(exact("e", "", noop)) is NodeKind.EXACT
        assert node_kind(repair) is NodeKind.DELEGATED
        assert (
            node_kind(
                validate("v", "", steps=[step("s", noop)], repair=repair)
            )
            is NodeKind.VALIDATE
        )

    def test_allowed_tools_tuple(self) -> None:
        node = delegated(
            "d", "", agent="pi", prompt=lambda c: "", allowed_tools=["Bash"]
        )
        assert node.allowed_tools == ("Bash",)


class TestTokenUsage:
    """Tests for TokenUsage."""

    def test_add(self) -> None:
        total = TokenUsage(1, 2, 3, 4) + TokenUsage(10, 20, 30, 40)
        assert total == TokenUsage(11, 22, 33, 44)

    def test_default_zero(self) -> None:
        assert TokenUsage().to_dict() == {
            "input_tokens": 0,
            "output_tokens": 0,
            "cache_read_tokens": 0,
            "cache_write_tokens": 0,
        }


class TestRunReport:
    """Tests for RunReport."""

    def _report(self, *results: NodeResult, **kwargs) -> RunReport:
        return RunReport(
            run_id="deadbeef",
            blueprint="demo",
            repo="acme/widgets",
            intent="fix it",
            nodes=tuple(
                NodeReport(f"n{i}", r) for i, r in enumerate(results)
            ),
            total_duration_ms=42,
            **kwargs,
        )

    def test_succeeded(self) -> None:
        report = self._report(
            NodeResult(NodeStatus.SUCCESS), NodeResult.skipped()
        )
        assert report.succeeded

    def test_failed(self) -> None:
        report = self._report(
            NodeResult(NodeStatus.SUCCESS),
            NodeResult(NodeStatus.FAILURE, error="x"),
        )
        assert not report.succeeded

    def test_to_dict_is_json(self) -> None:
        report = self._report(
            NodeResult(NodeStatus.FAILURE, "out", 3, "err"),
            token_usage=TokenUsage(5, 6),
            push=True,
            branch="harness/deadbeef/demo",
            push_result=PushResult(pushed=True, error="PR creation failed"),
        )
        data = json.loads(json.dumps(report.to_dict()))
        assert data["nodes"] == [
            {
                "name": "n0",
                "status": "failure",
                "output": "out",
                "duration_ms": 3,
                "error": "err",
            }
        ]
        assert data["token_usage"]["input_tokens"] == 5
        assert data["branch"] == "harness/deadbeef/demo"
        assert data["push_result"] == {
            "pushed": True,
            "pr_url": None,
            "error": "PR creation failed",
        }

    def test_to_dict_without_push(self) -> None:
        assert self._report().to_dict()["push_result"] is None


class TestValidateNode:
    """ValidateNode construction checks."""

    @pytest.mark.parametrize("retries", [0, 1, 5])
    def test_valid_retries(self, retries: int) -> None:
        node = validate(
            "v",
            "",
            steps=[step("s", lambda c, sb: NodeResult.skipped())],
            repair=delegated("fix", "", agent="pi", prompt=lambda c: ""),
            max_retries=retries,
        )
        assert node.max_retries == retries
