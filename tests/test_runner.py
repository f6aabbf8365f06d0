# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for harness/runner.py."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from harness.agents import AgentResult
from harness.blueprint import (
    NodeResult,
    NodeStatus,
    PushResult,
    RunContext,
    TokenUsage,
    blueprint,
    command,
    delegated,
    exact,
    step,
    validate,
)
from harness.github import GitHubError, GitHubRepo
from harness.runner import (
    RunOptions,
    branch_name,
    push_and_create_pr,
    run_harness,
)
from harness.sandbox import (
    ExecResult,
    PushAttempt,
    Sandbox,
    SandboxError,
    SandboxOptions,
    SandboxType,
)


def _ok(ctx, sandbox) -> NodeResult:
    return NodeResult(NodeStatus.SUCCESS, "done", 2)


DEMO = blueprint(
    "demo",
    "Two exact nodes",
    [exact("first", "", _ok), exact("second", "", _ok)],
)


class FactoryRecorder:
    """Sandbox factory that hands out one prepared sandbox."""

    def __init__(self, sandbox: Sandbox) -> None:
        self.sandbox = sandbox
        self.calls: list[tuple[SandboxType, SandboxOptions]] = []

    def __call__(
        self, sandbox_type: SandboxType, options: SandboxOptions
    ) -> Sandbox:
        self.calls.append((sandbox_type, options))
        return self.sandbox


class UsageAgent:
    """Agent executor reporting fixed token usage."""

    def execute(self, node, ctx, sandbox) -> AgentResult:
        return AgentResult(
            status=NodeStatus.SUCCESS,
            output="agent",
            token_usage=TokenUsage(input_tokens=50, output_tokens=5),
        )


def _options(factory: FactoryRecorder, **kwargs) -> RunOptions:
    values = {
        "blueprint": DEMO,
        "repo": "./repo",
        "intent": "demo run",
        "run_id": "deadbeef",
        "reporter": MagicMock(),
        "sandbox_factory": factory,
    }
    values.update(kwargs)
    return RunOptions(**values)


class TestBranchName:
    """Tests for branch_name."""

    def test_format(self) -> None:
        assert branch_name("harness", "deadbeef", "Bug Fix!") == (
            "harness/deadbeef/bug-fix"
        )

    def test_prefix_slashes_stripped(self) -> None:
        assert branch_name("/bots/", "a1b2c3d4", "demo") == (
            "bots/a1b2c3d4/demo"
        )


class TestRunHarness:
    """End-to-end runs against a fake sandbox."""

    def test_success(self, fake_sandbox) -> None:
        factory = FactoryRecorder(fake_sandbox)
        options = _options(factory)
        report = run_harness(options)

        assert report.succeeded
        assert report.run_id == "deadbeef"
        assert report.branch == "harness/deadbeef/demo"
        assert [n.name for n in report.nodes] == ["first", "second"]
        assert all(
            n.result.status is NodeStatus.SUCCESS for n in report.nodes
        )
        assert report.push_result is None
        assert factory.sandbox.teardowns == 1

        sandbox_type, sandbox_options = factory.calls[0]
        assert sandbox_type is SandboxType.LOCAL
        assert sandbox_options.repo == "./repo"
        assert sandbox_options.branch == "harness/deadbeef/demo"

        reporter = options.reporter
        assert reporter.node_start.call_count == 2
        reporter.run_complete.assert_called_once_with(report)

    def test_generated_run_id(self, fake_sandbox) -> None:
        report = run_harness(
            _options(FactoryRecorder(fake_sandbox), run_id=None)
        )
        assert len(report.run_id) == 8
        int(report.run_id, 16)
        assert report.branch == f"harness/{report.run_id}/demo"

    def test_install_then_validate_with_one_repair(self, fake_sandbox) -> None:
        """A failing check is repaired once and the run succeeds."""
        checks = iter(
            [
                NodeResult(NodeStatus.FAILURE, "1 failed", 1, "Tests failed"),
                NodeResult(NodeStatus.SUCCESS, "all passed", 1),
            ]
        )
        repairs = []

        class CountingAgent:
            def execute(self, node, ctx, sandbox) -> NodeResult:
                repairs.append(node.name)
                return NodeResult(NodeStatus.SUCCESS, "fixed", 1)

        demo = blueprint(
            "demo",
            "Install and validate",
            [
                exact("install", "", _ok),
                validate(
                    "validate",
                    "Run tests",
                    steps=[step("test", lambda ctx, sandbox: next(checks))],
                    repair=delegated(
                        "fix",
                        "Fix failures",
                        agent="pi",
                        prompt=lambda ctx: "fix",
                    ),
                    max_retries=2,
                ),
            ],
        )
        report = run_harness(
            _options(
                FactoryRecorder(fake_sandbox),
                blueprint=demo,
                agent_executor=CountingAgent(),
            )
        )

        assert report.branch == "harness/deadbeef/demo"
        assert [n.name for n in report.nodes] == ["install", "validate"]
        assert all(
            n.result.status is NodeStatus.SUCCESS for n in report.nodes
        )
        assert repairs == ["fix"]
        assert report.succeeded

    def test_context_from_sandbox(self, fake_sandbox) -> None:
        seen: list[RunContext] = []

        def capture(ctx, sandbox):
            seen.append(ctx)
            return NodeResult(NodeStatus.SUCCESS)

        fake_sandbox.work_dir = "/sandbox/root"
        factory = FactoryRecorder(fake_sandbox)
        run_harness(
            _options(
                factory,
                blueprint=blueprint("b", "", [exact("c", "", capture)]),
                env={"K": "v"},
                spec_path="docs/spec.md",
                sandbox_type=SandboxType.REMOTE,
            )
        )
        ctx = seen[0]
        assert ctx.work_dir == "/sandbox/root"
        assert ctx.env == {"K": "v"}
        assert ctx.spec_path == "docs/spec.md"
        assert ctx.sandbox_type is SandboxType.REMOTE

    def test_failed_node(self, fake_sandbox) -> None:
        def boom(ctx, sandbox):
            return NodeResult(NodeStatus.FAILURE, error="broken")

        factory = FactoryRecorder(fake_sandbox)
        report = run_harness(
            _options(
                factory,
                blueprint=blueprint(
                    "b", "", [exact("a", "", boom), exact("b", "", _ok)]
                ),
            )
        )
        assert not report.succeeded
        assert [n.name for n in report.nodes] == ["a"]
        assert factory.sandbox.teardowns == 1

    def test_teardown_on_exception(self, fake_sandbox) -> None:
        def explode(ctx, sandbox):
            raise RuntimeError("kaboom")

        factory = FactoryRecorder(fake_sandbox)
        options = _options(
            factory, blueprint=blueprint("b", "", [exact("a", "", explode)])
        )
        with pytest.raises(RuntimeError):
            run_harness(options)
        assert factory.sandbox.teardowns == 1
        options.reporter.run_complete.assert_not_called()

    def test_sandbox_error_propagates(self) -> None:
        def failing_factory(sandbox_type, options):
            raise SandboxError("no worktree")

        with pytest.raises(SandboxError, match="no worktree"):
            run_harness(
                RunOptions(
                    blueprint=DEMO,
                    repo="./repo",
                    intent="x",
                    reporter=MagicMock(),
                    sandbox_factory=failing_factory,
                )
            )

    def test_token_usage_totalled(self, fake_sandbox) -> None:
        bp = blueprint(
            "b",
            "",
            [
                delegated("one", "", agent="pi", prompt=lambda c: "p"),
                delegated("two", "", agent="pi", prompt=lambda c: "p"),
            ],
        )
        report = run_harness(
            _options(
                FactoryRecorder(fake_sandbox),
                blueprint=bp,
                agent_executor=UsageAgent(),
            )
        )
        assert report.token_usage == TokenUsage(
            input_tokens=100, output_tokens=10
        )

    def test_push_without_token(self, fake_sandbox) -> None:
        report = run_harness(_options(FactoryRecorder(fake_sandbox), push=True))
        assert report.push
        assert report.push_result is not None
        assert not report.push_result.pushed
        assert report.push_result.error == "GITHUB_TOKEN required for push"

    def test_push_after_failure_still_attempted(self, fake_sandbox) -> None:
        """Push runs regardless of node outcome."""

        def boom(ctx, sandbox):
            return NodeResult(NodeStatus.FAILURE, error="broken")

        factory = FactoryRecorder(fake_sandbox)
        report = run_harness(
            _options(
                factory,
                blueprint=blueprint("b", "", [exact("a", "", boom)]),
                push=True,
                github_token="ghp_token1234",
            )
        )
        assert factory.sandbox.calls[0][:2] == ["git", "push"]
        assert report.push_result is not None


class TestLocalRun:
    """A real run on a git worktree."""

    def test_command_nodes(self, git_repo: Path) -> None:
        bp = blueprint(
            "smoke",
            "",
            [
                exact("status", "", command(["git", "status", "--short"])),
                exact("list", "", command(["ls", "src"])),
            ],
        )
        report = run_harness(
            RunOptions(
                blueprint=bp,
                repo=str(git_repo),
                intent="smoke test",
                run_id="cafef00d",
                reporter=MagicMock(),
            )
        )
        assert report.succeeded
        assert report.nodes[1].result.output == "main.txt\n"
        branches = subprocess.run(
            ["git", "branch", "--list", "harness/*"],
            cwd=git_repo,
            capture_output=True,
            text=True,
            check=True,
        ).stdout
        assert branches == ""


BRANCH = "harness/deadbeef/bug-fix"


def _ctx(repo: str = "acme/widgets") -> RunContext:
    return RunContext(
        run_id="deadbeef", work_dir="/work", intent="fix login", repo=repo
    )


def _push(sandbox, ctx=None, token="ghp_token1234", github=None):
    return push_and_create_pr(
        sandbox,
        ctx or _ctx(),
        BRANCH,
        blueprint_name="bug-fix",
        token=token,
        github=github,
    )


class TestPushFallback:
    """Push through git and gh inside a sandbox without capabilities."""

    def test_no_token(self, fake_sandbox) -> None:
        result = _push(fake_sandbox, token=None)
        assert result.pushed is False
        assert result.error == "GITHUB_TOKEN required for push"
        assert fake_sandbox.calls == []

    def test_success(self, fake_sandbox) -> None:
        def handler(argv, env):
            if argv[0] == "gh":
                return ExecResult(0, "https://github.com/a/b/pull/3\n", "", 1)
            return ExecResult(0, "", "", 1)

        fake_sandbox.handler = handler
        result = _push(fake_sandbox)
        assert result.pushed
        assert result.pr_url == "https://github.com/a/b/pull/3"
        assert result.error is None
        assert fake_sandbox.calls[0] == ["git", "push", "-u", "origin", BRANCH]
        assert fake_sandbox.calls[1] == [
            "gh",
            "pr",
            "create",
            "--title",
            "[harness] fix login",
            "--body",
            f"Blueprint: bug-fix\nBranch: {BRANCH}\nRun: deadbeef",
        ]
        assert fake_sandbox.envs[1] == {"GH_TOKEN": "ghp_token1234"}

    def test_push_failure(self, fake_sandbox) -> None:
        fake_sandbox.handler = lambda argv, env: ExecResult(
            1, "", "rejected\n", 1
        )
        result = _push(fake_sandbox)
        assert not result.pushed
        assert result.error == "git push failed: rejected"
        assert len(fake_sandbox.calls) == 1

    def test_pr_failure_keeps_push(self, fake_sandbox) -> None:
        def handler(argv, env):
            if argv[0] == "gh":
                return ExecResult(1, "", "already exists", 1)
            return ExecResult(0, "", "", 1)

        fake_sandbox.handler = handler
        result = _push(fake_sandbox)
        assert result.pushed
        assert result.pr_url is None
        assert result.error == "PR creation failed: already exists"

    def test_gh_prints_nothing(self, fake_sandbox) -> None:
        result = _push(fake_sandbox)
        assert result.pushed
        assert result.pr_url is None
        assert result.error is None

    def test_title_capped(self, fake_sandbox) -> None:
        ctx = _ctx()
        ctx.intent = "x" * 500
        _push(fake_sandbox, ctx=ctx)
        assert len(fake_sandbox.calls[1][4]) == 256


class TestPushCapabilities:
    """Push through sandbox capabilities and the GitHub API."""

    def test_success(self, capable_sandbox) -> None:
        sandbox = capable_sandbox
        github = MagicMock()
        github.create_pull_request.return_value = "https://gh/pr/1"
        result = _push(sandbox, github=github)

        assert result.pushed
        assert result.pr_url == "https://gh/pr/1"
        assert sandbox.pushes == [(BRANCH, "ghp_token1234")]
        assert sandbox.calls == []
        github.create_pull_request.assert_called_once_with(
            GitHubRepo("acme", "widgets"),
            title="[harness] fix login",
            body=f"Blueprint: bug-fix\nBranch: {BRANCH}\nRun: deadbeef",
            head=BRANCH,
            base="trunk",
        )

    def test_push_failure(self, capable_sandbox) -> None:
        sandbox = capable_sandbox
        sandbox.attempt = PushAttempt(pushed=False, error="denied")
        github = MagicMock()
        result = _push(sandbox, github=github)
        assert result == PushResult(
            pushed=False, error="git push failed: denied"
        )
        github.create_pull_request.assert_not_called()

    def test_pr_api_failure(self, capable_sandbox) -> None:
        github = MagicMock()
        github.create_pull_request.side_effect = GitHubError("422")
        result = _push(capable_sandbox, github=github)
        assert result.pushed
        assert result.error == "PR creation failed: 422"

    def test_unparseable_repo(self, capable_sandbox) -> None:
        """A repo that is not a GitHub reference fails the PR step only."""
        github = MagicMock()
        result = _push(capable_sandbox, ctx=_ctx("./local"), github=github)
        assert result.pushed
        assert result.error.startswith("PR creation failed:")
        github.create_pull_request.assert_not_called()
