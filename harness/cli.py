# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Harness CLI: multi-command entry point.

Subcommands:

* ``run``      execute a blueprint against a repository
* ``list``     list built-in blueprints
* ``dry-run``  show the nodes a blueprint would execute

Exit codes of ``run``: 0 when every node succeeded or was skipped, 1
when a node failed, 2 for invalid arguments or configuration, 3 when
the sandbox could not be provisioned.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from harness.blueprint.types import ValidateNode, node_kind
from harness.blueprints import (
    UnknownBlueprintError,
    get_blueprint,
    list_blueprints,
)
from harness.config import ConfigError, HarnessConfig
from harness.github import GitHubError, resolve_repo_arg
from harness.logging import SecretFilter, configure_logging
from harness.preflight import (
    PreflightError,
    validate_git_repo,
    validate_repo,
)
from harness.reporter import (
    ConsoleReporter,
    JsonlReporter,
    MultiReporter,
    Reporter,
    ReporterPathError,
)
from harness.runner import RunOptions, run_harness
from harness.sandbox import SandboxError, SandboxType
from harness.security import ConfinementError


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NODE_FAILED = 1
EXIT_USAGE = 2
EXIT_SANDBOX = 3

_USAGE = """\
usage: harness <command> [args]

commands:
  run       Execute a blueprint against a repository
  list      List available blueprints
  dry-run   Show the nodes a blueprint would execute

Run 'harness <command> --help' for command-specific help.\
"""


# ── run subcommand ──────────────────────────────────────────────────


def cmd_run(argv: list[str]) -> int:
    """Execute a blueprint.

    Args:
        argv: Subcommand arguments.

    Returns:
        Exit code (see module docstring).
    """
    parser = argparse.ArgumentParser(
        prog="harness run", description="Execute a blueprint"
    )
    parser.add_argument("--blueprint", required=True, help="Blueprint name")
    parser.add_argument(
        "--repo", required=True, help="Repository path or org/repo"
    )
    parser.add_argument("--intent", required=True, help="What to accomplish")
    parser.add_argument(
        "--push", action="store_true", help="Push branch and create PR"
    )
    parser.add_argument(
        "--sandbox",
        choices=[t.value for t in SandboxType],
        default=None,
        help="Sandbox backend (default: from config, else local)",
    )
    parser.add_argument(
        "--run-id", help="Correlation ID (auto-generated if omitted)"
    )
    parser.add_argument("--spec", help="Path to spec file (for self-build)")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to harness.yaml (default: ~/.config/harness/harness.yaml)",
    )
    parser.add_argument(
        "--json-report",
        metavar="PATH",
        default=None,
        help="Append JSONL run events to PATH",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    args = parser.parse_args(argv)

    configure_logging(level=logging.DEBUG if args.debug else logging.INFO)
    SecretFilter.register_env_secrets(os.environ)

    try:
        config = HarnessConfig.from_yaml(args.config)
    except ConfigError as e:
        logger.critical("Configuration error: %s", e)
        return EXIT_USAGE
    if not args.debug:
        logging.getLogger().setLevel(config.log_level.upper())

    sandbox_type = (
        SandboxType(args.sandbox) if args.sandbox else config.sandbox
    )
    try:
        blueprint = get_blueprint(args.blueprint, config.commands)
        repo = _prepare_repo(args.repo, sandbox_type)
        env = dict(os.environ)
        reporter = _build_reporter(env, args.json_report)
    except (
        UnknownBlueprintError,
        PreflightError,
        GitHubError,
        ReporterPathError,
        ConfinementError,
    ) as e:
        logger.error("%s", e)
        return EXIT_USAGE

    try:
        report = run_harness(
            RunOptions(
                blueprint=blueprint,
                repo=repo,
                intent=args.intent,
                push=args.push,
                sandbox_type=sandbox_type,
                run_id=args.run_id,
                env=env,
                reporter=reporter,
                spec_path=args.spec,
                github_token=config.github_token,
                remote=config.remote,
                branch_prefix=config.branch_prefix,
                operation_timeout_ms=config.operation_timeout_ms,
            )
        )
    except SandboxError as e:
        logger.error("Sandbox error: %s", e)
        return EXIT_SANDBOX

    return EXIT_OK if report.succeeded else EXIT_NODE_FAILED


def _prepare_repo(repo: str, sandbox_type: SandboxType) -> str:
    """Validate *repo* for the backend and normalize it.

    Raises:
        PreflightError: If the reference is malformed or not a checkout.
        GitHubError: If ``.`` cannot be resolved for a remote run.
    """
    validate_repo(repo)
    if sandbox_type is SandboxType.REMOTE:
        return resolve_repo_arg(repo)
    validate_git_repo(repo)
    return repo


def _build_reporter(env: dict[str, str], json_report: str | None) -> Reporter:
    console = ConsoleReporter(env)
    if json_report is None:
        return console
    return MultiReporter([console, JsonlReporter(json_report, env)])


# ── list subcommand ─────────────────────────────────────────────────


def cmd_list(argv: list[str]) -> int:
    """Print ``<name>\\t<description>`` for each built-in blueprint."""
    parser = argparse.ArgumentParser(
        prog="harness list", description="List available blueprints"
    )
    parser.parse_args(argv)
    for blueprint in list_blueprints():
        print(f"{blueprint.name}\t{blueprint.description}")
    return EXIT_OK


# ── dry-run subcommand ──────────────────────────────────────────────


def cmd_dry_run(argv: list[str]) -> int:
    """Print a blueprint's nodes without provisioning anything."""
    parser = argparse.ArgumentParser(
        prog="harness dry-run", description="Show what would execute"
    )
    parser.add_argument("--blueprint", required=True, help="Blueprint name")
    parser.add_argument(
        "--config", type=Path, default=None, metavar="PATH"
    )
    args = parser.parse_args(argv)

    try:
        config = HarnessConfig.from_yaml(args.config)
        blueprint = get_blueprint(args.blueprint, config.commands)
    except (ConfigError, UnknownBlueprintError) as e:
        print(f"harness: {e}", file=sys.stderr)
        return EXIT_USAGE

    print(f"Blueprint: {blueprint.name}")
    print(f"Description: {blueprint.description}")
    print()
    print("Nodes:")
    for node in blueprint.nodes:
        print(f"  [{node_kind(node)}] {node.name}: {node.description}")
        if isinstance(node, ValidateNode):
            for step in node.steps:
                print(f"      step: {step.name}")
            print(
                f"      repair: {node.repair.name} "
                f"(max retries: {node.max_retries})"
            )
    return EXIT_OK


# ── CLI plumbing ────────────────────────────────────────────────────


_DISPATCH: dict[str, str] = {
    "run": "cmd_run",
    "list": "cmd_list",
    "dry-run": "cmd_dry_run",
}


def cli() -> None:
    """Entry point for the ``harness`` console script."""
    argv = sys.argv[1:]

    if not argv or argv[0] in ("-h", "--help"):
        print(_USAGE)
        sys.exit(EXIT_OK)

    if argv[0] not in _DISPATCH:
        print(f"harness: unknown command '{argv[0]}'", file=sys.stderr)
        print(_USAGE, file=sys.stderr)
        sys.exit(EXIT_USAGE)

    # Look up handler by name so tests can mock individual commands.
    import harness.cli as _self

    handler = getattr(_self, _DISPATCH[argv[0]])
    sys.exit(handler(argv[1:]))
