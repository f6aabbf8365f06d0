# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for harness/preflight.py."""

import re
from pathlib import Path

import pytest

from harness.preflight import (
    PreflightError,
    generate_run_id,
    validate_git_repo,
    validate_repo,
)


class TestGenerateRunId:
    """Tests for generate_run_id."""

    def test_format(self) -> None:
        assert re.fullmatch(r"[0-9a-f]{8}", generate_run_id())

    def test_unique(self) -> None:
        assert len({generate_run_id() for _ in range(50)}) == 50


class TestValidateRepo:
    """Tests for validate_repo."""

    @pytest.mark.parametrize(
        "repo",
        [
            ".",
            "/abs/path",
            "./relative",
            "../sibling",
            "acme/widgets",
            "Acme-Inc/widgets.js",
            "a_b/c.d-e",
        ],
    )
    def test_valid(self, repo: str) -> None:
        validate_repo(repo)

    @pytest.mark.parametrize(
        "repo",
        ["widgets", "", "acme/", "acme/wid gets", "a/b/c", "~/x/y"],
    )
    def test_invalid(self, repo: str) -> None:
        with pytest.raises(PreflightError) as exc_info:
            validate_repo(repo)
        assert str(exc_info.value) == (
            f'Invalid repo: "{repo}". Must be a local path (/, ./, ../) '
            "or org/repo format."
        )


class TestValidateGitRepo:
    """Tests for validate_git_repo."""

    def test_checkout(self, git_repo: Path) -> None:
        validate_git_repo(git_repo)

    def test_no_git_dir(self, tmp_path: Path) -> None:
        with pytest.raises(PreflightError, match="no .git directory"):
            validate_git_repo(tmp_path)

    def test_git_file(self, tmp_path: Path) -> None:
        """A ``.git`` file (linked worktree or submodule) is rejected."""
        (tmp_path / ".git").write_text("gitdir: /elsewhere\n")
        with pytest.raises(PreflightError, match=".git is not a directory"):
            validate_git_repo(tmp_path)
