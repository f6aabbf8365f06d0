# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Checks run before a sandbox is provisioned."""

import re
import secrets
from pathlib import Path


_REPO_RE = re.compile(r"[a-zA-Z0-9_.-]+/[a-zA-Z0-9_.-]+")
_LOCAL_PREFIXES = ("/", "./", "../")


class PreflightError(ValueError):
    """A run argument failed validation."""


def generate_run_id() -> str:
    """Return a fresh 8-character hex run identifier."""
    return secrets.token_hex(4)


def validate_repo(repo: str) -> None:
    """Check that *repo* is a local path or an ``org/repo`` reference.

    Local paths must be explicit: ``.``, or starting with ``/``, ``./``
    or ``../``.

    Raises:
        PreflightError: If *repo* is neither.
    """
    if repo == "." or repo.startswith(_LOCAL_PREFIXES):
        return
    if _REPO_RE.fullmatch(repo):
        return
    raise PreflightError(
        f'Invalid repo: "{repo}". Must be a local path (/, ./, ../) '
        "or org/repo format."
    )


def validate_git_repo(directory: str | Path) -> None:
    """Check that *directory* is the root of a git checkout.

    Raises:
        PreflightError: If there is no ``.git`` directory.
    """
    git_dir = Path(directory) / ".git"
    if not git_dir.exists():
        raise PreflightError(
            f"{directory} is not a git repository (no .git directory found)"
        )
    if not git_dir.is_dir():
        raise PreflightError(
            f"{directory} is not a git repository "
            "(.git is not a directory)"
        )
