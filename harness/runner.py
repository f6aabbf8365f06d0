# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Top-level run orchestration.

``run_harness`` provisions a sandbox on ``<prefix>/<run_id>/<slug>``,
executes the blueprint through the engine, optionally pushes the branch
and opens a pull request, reports the run and tears the sandbox down on
every exit path.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeAlias

from harness.agents import AgentDispatcher, TokenCounter
from harness.blueprint.engine import execute_blueprint
from harness.blueprint.report import PushResult
from harness.blueprint.types import RunContext
from harness.github import GitHubClient, GitHubError, parse_github_repo
from harness.preflight import generate_run_id
from harness.reporter import ConsoleReporter
from harness.sandbox import (
    DEFAULT_OPERATION_TIMEOUT_MS,
    SandboxOptions,
    SandboxType,
    SupportsDefaultBranch,
    SupportsPush,
    create_sandbox,
)
from harness.sanitize import slugify


if TYPE_CHECKING:
    from harness.blueprint.engine import AgentExecutor
    from harness.blueprint.report import RunReport
    from harness.blueprint.types import Blueprint
    from harness.config import RemoteSandboxConfig
    from harness.reporter import Reporter
    from harness.sandbox import Sandbox


logger = logging.getLogger(__name__)

DEFAULT_BRANCH_PREFIX = "harness"
PUSH_TIMEOUT_MS = 60_000
PR_TIMEOUT_MS = 30_000
PR_TITLE_PREFIX = "[harness] "

SandboxFactory: TypeAlias = Callable[
    [SandboxType, SandboxOptions], "Sandbox"
]


class PullRequestError(Exception):
    """Pull request creation failed after a successful push."""


@dataclass(frozen=True)
class RunOptions:
    """Inputs of one harness run.

    Attributes:
        blueprint: Blueprint to execute.
        repo: Local path or GitHub reference.
        intent: What the run should achieve.
        push: Push the branch and open a pull request afterwards.
        sandbox_type: Sandbox backend.
        run_id: Run identifier; generated when not given.
        env: Environment exposed to nodes; its secrets are redacted
            from reported output.
        reporter: Event sink; console output on stderr when not given.
        spec_path: Spec file for blueprints that need one.
        agent_executor: Replaces the built-in agent dispatcher.
        github_token: Token for clone, push and pull requests.
        remote: Remote backend settings.
        branch_prefix: First segment of the run branch.
        operation_timeout_ms: Timeout for sandbox git operations and
            agent invocations.
        sandbox_factory: Provisions the sandbox.
    """

    blueprint: Blueprint
    repo: str
    intent: str
    push: bool = False
    sandbox_type: SandboxType = SandboxType.LOCAL
    run_id: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    reporter: Reporter | None = None
    spec_path: str | None = None
    agent_executor: AgentExecutor | None = None
    github_token: str | None = None
    remote: RemoteSandboxConfig | None = None
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    operation_timeout_ms: int = DEFAULT_OPERATION_TIMEOUT_MS
    sandbox_factory: SandboxFactory = create_sandbox


def branch_name(prefix: str, run_id: str, blueprint_name: str) -> str:
    """Return the run branch ``<prefix>/<run_id>/<slug>``."""
    return f"{prefix.strip('/')}/{run_id}/{slugify(blueprint_name)}"


def run_harness(options: RunOptions) -> RunReport:
    """Execute one blueprint run end to end.

    Args:
        options: Run inputs.

    Returns:
        The final report, including branch, token usage and push result.

    Raises:
        SandboxError: If the sandbox cannot be provisioned.
    """
    run_id = options.run_id or generate_run_id()
    branch = branch_name(options.branch_prefix, run_id, options.blueprint.name)
    env = dict(options.env)
    reporter = options.reporter or ConsoleReporter(env)

    logger.info(
        "Starting run %s: blueprint %s on %s (%s sandbox)",
        run_id,
        options.blueprint.name,
        options.repo,
        options.sandbox_type,
    )
    sandbox = options.sandbox_factory(
        options.sandbox_type,
        SandboxOptions(
            repo=options.repo,
            branch=branch,
            operation_timeout_ms=options.operation_timeout_ms,
            github_token=options.github_token,
            remote=options.remote,
        ),
    )
    try:
        ctx = RunContext(
            run_id=run_id,
            work_dir=sandbox.work_dir,
            intent=options.intent,
            repo=options.repo,
            push=options.push,
            env=env,
            spec_path=options.spec_path,
            sandbox_type=options.sandbox_type,
        )
        counter = TokenCounter(
            options.agent_executor
            or AgentDispatcher(timeout_ms=options.operation_timeout_ms)
        )

        report = execute_blueprint(
            options.blueprint,
            ctx,
            sandbox=sandbox,
            agent_executor=counter,
            events=reporter,
        )

        push_result = None
        if options.push:
            push_result = push_and_create_pr(
                sandbox,
                ctx,
                branch,
                blueprint_name=options.blueprint.name,
                token=options.github_token,
            )

        final = dataclasses.replace(
            report,
            branch=branch,
            token_usage=counter.total,
            push_result=push_result,
        )
        reporter.run_complete(final)
        logger.info(
            "Run %s finished: %s",
            run_id,
            "succeeded" if final.succeeded else "failed",
        )
        return final
    finally:
        sandbox.teardown()


def push_and_create_pr(
    sandbox: Sandbox,
    ctx: RunContext,
    branch: str,
    *,
    blueprint_name: str,
    token: str | None,
    github: GitHubClient | None = None,
) -> PushResult:
    """Push *branch* and open a pull request for it.

    Uses the sandbox's own push and default-branch capabilities when it
    has them, and falls back to ``git push`` and ``gh pr create`` run
    inside the sandbox.  A failed pull request does not undo the push.

    Args:
        sandbox: Sandbox holding the run branch.
        ctx: Context of the finished run.
        branch: Branch to push.
        blueprint_name: Named in the pull request body.
        token: GitHub token.
        github: GitHub client; built from *token* when not given.

    Returns:
        The push outcome.  This function does not raise.
    """
    if not token:
        return PushResult(pushed=False, error="GITHUB_TOKEN required for push")

    error = _push(sandbox, ctx, branch, token)
    if error is not None:
        logger.warning("Push of %s failed: %s", branch, error)
        return PushResult(pushed=False, error=f"git push failed: {error}")

    title = f"{PR_TITLE_PREFIX}{ctx.intent}"[:256]
    body = f"Blueprint: {blueprint_name}\nBranch: {branch}\nRun: {ctx.run_id}"
    try:
        if isinstance(sandbox, SupportsDefaultBranch):
            client = github or GitHubClient(token)
            pr_url = client.create_pull_request(
                parse_github_repo(ctx.repo),
                title=title,
                body=body,
                head=branch,
                base=sandbox.default_branch(),
            )
        else:
            pr_url = _gh_pr_create(sandbox, ctx, title, body, token)
    except (GitHubError, PullRequestError) as e:
        logger.warning("Pull request for %s failed: %s", branch, e)
        return PushResult(pushed=True, error=f"PR creation failed: {e}")
    return PushResult(pushed=True, pr_url=pr_url)


def _push(
    sandbox: Sandbox, ctx: RunContext, branch: str, token: str
) -> str | None:
    """Push *branch*; return an error description or None."""
    if isinstance(sandbox, SupportsPush):
        attempt = sandbox.push_branch(branch, token)
        return None if attempt.pushed else attempt.error or "unknown error"

    result = sandbox.exec(
        ["git", "push", "-u", "origin", branch],
        cwd=ctx.work_dir,
        timeout_ms=PUSH_TIMEOUT_MS,
    )
    return None if result.ok else result.stderr.strip()


def _gh_pr_create(
    sandbox: Sandbox, ctx: RunContext, title: str, body: str, token: str
) -> str | None:
    result = sandbox.exec(
        ["gh", "pr", "create", "--title", title, "--body", body],
        cwd=ctx.work_dir,
        timeout_ms=PR_TIMEOUT_MS,
        env={"GH_TOKEN": token},
    )
    if not result.ok:
        raise PullRequestError(
            result.stderr.strip() or f"Exit code {result.exit_code}"
        )
    # gh prints the pull request URL on stdout
    return result.stdout.strip() or None
