# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Boundary checks shared by every sandbox backend.

Violations raise :class:`BoundaryViolation` subclasses.  They signal a
caller bug or an attempted escape from the sandbox, never an ordinary
task failure, so they are not turned into node results.
"""

import os
import re
from collections.abc import Mapping, Sequence


_ENV_KEY_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class BoundaryViolation(Exception):
    """Base class for sandbox boundary violations."""


class ConfinementError(BoundaryViolation):
    """A path resolves outside the sandbox root."""


class InvalidEnvKeyError(BoundaryViolation):
    """An environment variable name is unsafe to serialize."""


class EmptyArgvError(BoundaryViolation):
    """A command was given with no arguments."""


def assert_confined(candidate: str | os.PathLike[str], root: str) -> None:
    """Raise unless *candidate* resolves inside *root*.

    Both paths are made absolute and the relative path from root to
    candidate is inspected, so ``/tmp/root2`` is rejected for a root of
    ``/tmp/root`` even though it shares a string prefix.  The root itself
    is accepted.

    Args:
        candidate: Path to check.  Relative paths resolve against the
            process working directory.
        root: Confinement root.

    Raises:
        ConfinementError: If the candidate escapes the root.
    """
    resolved = os.path.abspath(candidate)
    root_resolved = os.path.abspath(root)
    rel = os.path.relpath(resolved, root_resolved)
    if (
        rel == os.pardir
        or rel.startswith(os.pardir + os.sep)
        or os.path.isabs(rel)
    ):
        raise ConfinementError(
            f"Path confinement violation: {str(candidate)!r} resolves "
            f"outside sandbox root {root!r}"
        )


def shell_quote(argv: Sequence[str]) -> str:
    """Render *argv* as a single POSIX shell command string.

    Every element is wrapped in single quotes; embedded single quotes
    become ``'\\''``.  Nothing inside is expanded by the shell.

    Raises:
        EmptyArgvError: If *argv* is empty.
    """
    if not argv:
        raise EmptyArgvError("Empty argv")
    return " ".join("'" + arg.replace("'", "'\\''") + "'" for arg in argv)


def validate_env_key(key: str) -> None:
    """Raise unless *key* matches ``[A-Za-z_][A-Za-z0-9_]*``.

    Raises:
        InvalidEnvKeyError: If the key contains ``=``, whitespace, shell
            metacharacters, or starts with a digit.
    """
    if not _ENV_KEY_RE.fullmatch(key):
        raise InvalidEnvKeyError(
            f"Invalid env key {key!r}: must match [A-Za-z_][A-Za-z0-9_]*"
        )


def validate_env(env: Mapping[str, str] | None) -> None:
    """Validate every key of *env* (no-op for None)."""
    if env:
        for key in env:
            validate_env_key(key)
