# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for harness/github.py."""

import json
import subprocess
from pathlib import Path

import httpx
import pytest

from harness.github import (
    GitHubClient,
    GitHubError,
    GitHubRepo,
    parse_github_repo,
    resolve_repo_arg,
)


class TestParseGitHubRepo:
    """Tests for parse_github_repo."""

    @pytest.mark.parametrize(
        "repo",
        [
            "acme/widgets",
            "acme/widgets.git",
            "https://github.com/acme/widgets",
            "https://github.com/acme/widgets.git",
            "https://github.com/acme/widgets/tree/main",
            "git@github.com:acme/widgets.git",
            "git@github.com:acme/widgets",
        ],
    )
    def test_accepted_forms(self, repo: str) -> None:
        """Every supported form yields the same owner and name."""
        assert parse_github_repo(repo) == GitHubRepo("acme", "widgets")

    def test_slug_and_clone_url(self) -> None:
        repo = GitHubRepo("acme", "widgets")
        assert repo.slug == "acme/widgets"
        assert repo.clone_url == "https://github.com/acme/widgets.git"

    @pytest.mark.parametrize(
        ("repo", "match"),
        [
            (".", "local path"),
            ("./repo", "local path"),
            ("../repo", "local path"),
            ("/abs/repo", "local path"),
            ("~/repo", "local path"),
            ("C:/work/repo", "local path"),
            ("https://gitlab.com/acme/widgets", "host is gitlab.com"),
            ("https://github.com/acme", "expected org/repo path"),
            ("widgets", "expected org/repo"),
            ("acme/widgets/extra", "exactly org/repo"),
            ("git@github.com:acme", "exactly org/repo"),
            ("acme/wid gets", "invalid characters"),
            ("acme/-widgets", "invalid characters"),
        ],
    )
    def test_rejected(self, repo: str, match: str) -> None:
        with pytest.raises(GitHubError, match=match):
            parse_github_repo(repo)


class TestResolveRepoArg:
    """Tests for resolve_repo_arg."""

    def test_non_dot_unchanged(self) -> None:
        assert resolve_repo_arg("acme/widgets") == "acme/widgets"

    def test_dot_resolves_origin(self, tmp_path: Path) -> None:
        """'.' becomes the slug of the origin remote."""
        subprocess.run(
            ["git", "init"], cwd=tmp_path, check=True, capture_output=True
        )
        subprocess.run(
            [
                "git",
                "remote",
                "add",
                "origin",
                "git@github.com:acme/widgets.git",
            ],
            cwd=tmp_path,
            check=True,
            capture_output=True,
        )
        assert resolve_repo_arg(".", cwd=str(tmp_path)) == "acme/widgets"

    def test_dot_without_origin(self, tmp_path: Path) -> None:
        subprocess.run(
            ["git", "init"], cwd=tmp_path, check=True, capture_output=True
        )
        with pytest.raises(GitHubError, match="no 'origin' remote"):
            resolve_repo_arg(".", cwd=str(tmp_path))


def _client(handler) -> GitHubClient:
    return GitHubClient("ghp_test1234", transport=httpx.MockTransport(handler))


class TestGitHubClient:
    """Tests for GitHubClient against a mock transport."""

    def test_default_branch(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"default_branch": "trunk"})

        branch = _client(handler).default_branch(GitHubRepo("acme", "w"))
        assert branch == "trunk"
        assert seen[0].url == "https://api.github.com/repos/acme/w"
        assert seen[0].headers["Authorization"] == "Bearer ghp_test1234"

    def test_default_branch_missing(self) -> None:
        client = _client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(GitHubError, match="default_branch"):
            client.default_branch(GitHubRepo("acme", "w"))

    def test_create_pull_request(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "POST"
            assert request.url.path == "/repos/acme/w/pulls"
            bodies.append(json.loads(request.content))
            return httpx.Response(
                201, json={"html_url": "https://github.com/acme/w/pull/7"}
            )

        url = _client(handler).create_pull_request(
            GitHubRepo("acme", "w"),
            title="t" * 300,
            body="body",
            head="harness/abc/demo",
            base="main",
        )
        assert url == "https://github.com/acme/w/pull/7"
        assert len(bodies[0]["title"]) == 256
        assert bodies[0]["head"] == "harness/abc/demo"
        assert bodies[0]["base"] == "main"

    def test_http_error(self) -> None:
        client = _client(
            lambda request: httpx.Response(422, text="Validation Failed")
        )
        with pytest.raises(GitHubError, match="GitHub API 422"):
            client.create_pull_request(
                GitHubRepo("acme", "w"),
                title="t",
                body="b",
                head="h",
                base="main",
            )

    def test_missing_html_url(self) -> None:
        client = _client(lambda request: httpx.Response(201, json={}))
        with pytest.raises(GitHubError, match="html_url"):
            client.create_pull_request(
                GitHubRepo("acme", "w"),
                title="t",
                body="b",
                head="h",
                base="main",
            )

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(GitHubError, match="request failed"):
            _client(handler).default_branch(GitHubRepo("acme", "w"))

    def test_invalid_json(self) -> None:
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(GitHubError, match="invalid JSON"):
            client.default_branch(GitHubRepo("acme", "w"))
