# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""GitHub repository references and REST API access."""

import logging
import re
import subprocess
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx


logger = logging.getLogger(__name__)

_API_BASE = "https://api.github.com"
_TIMEOUT_SECONDS = 30.0
_NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")
_SSH_RE = re.compile(r"git@github\.com:(?P<path>.+)")
_DRIVE_RE = re.compile(r"[A-Za-z]:")

#: PR titles longer than this are cut.
MAX_PR_TITLE_LENGTH = 256


class GitHubError(Exception):
    """A repository reference is invalid or a GitHub request failed."""


@dataclass(frozen=True)
class GitHubRepo:
    """An ``owner/name`` pair identifying a GitHub repository.

    Attributes:
        owner: User or organization.
        name: Repository name (without ``.git``).
    """

    owner: str
    name: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def clone_url(self) -> str:
        return f"https://github.com/{self.owner}/{self.name}.git"


def parse_github_repo(repo: str) -> GitHubRepo:
    """Parse a GitHub repository reference.

    Accepts ``owner/name`` (optionally with ``.git``), ``https://``
    URLs on github.com, and ``git@github.com:owner/name`` SSH remotes.

    Raises:
        GitHubError: For local paths, other hosts, malformed paths, or
            names with invalid characters.
    """
    if repo == "." or repo.startswith(("/", "~", "./", "..")):
        raise GitHubError(
            f"Not a GitHub repo: {repo!r} (looks like a local path)"
        )

    if repo.startswith(("https://", "http://")):
        url = urlparse(repo)
        if url.hostname != "github.com":
            raise GitHubError(
                f"Not a GitHub repo: {repo!r} (host is {url.hostname})"
            )
        parts = _strip_git(url.path.lstrip("/")).split("/")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise GitHubError(
                f"Not a GitHub repo: {repo!r} (expected org/repo path)"
            )
        return _validated(parts[0], parts[1], repo)

    ssh = _SSH_RE.fullmatch(repo)
    if ssh:
        return _split_exact(ssh.group("path"), repo)

    if "/" not in repo:
        raise GitHubError(f"Not a GitHub repo: {repo!r} (expected org/repo)")
    if _DRIVE_RE.match(repo):
        raise GitHubError(
            f"Not a GitHub repo: {repo!r} (looks like a local path)"
        )
    return _split_exact(repo, repo)


def resolve_repo_arg(repo: str, cwd: str | None = None) -> str:
    """Resolve ``.`` to the ``origin`` remote of the current checkout.

    Other values are returned unchanged.

    Raises:
        GitHubError: If ``.`` is given and there is no usable remote.
    """
    if repo != ".":
        return repo
    try:
        result = subprocess.run(
            ["git", "remote", "get-url", "origin"],
            cwd=cwd,
            check=True,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        raise GitHubError(
            "Cannot resolve '.': no 'origin' remote in current directory"
        ) from e
    except OSError as e:
        raise GitHubError(f"Cannot resolve '.': {e}") from e
    parsed = parse_github_repo(result.stdout.strip())
    return parsed.slug


def _strip_git(path: str) -> str:
    return path.removesuffix(".git")


def _split_exact(path: str, original: str) -> GitHubRepo:
    parts = _strip_git(path).split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise GitHubError(
            f"Not a GitHub repo: {original!r} (expected exactly org/repo)"
        )
    return _validated(parts[0], parts[1], original)


def _validated(owner: str, name: str, original: str) -> GitHubRepo:
    if not _NAME_RE.fullmatch(owner) or not _NAME_RE.fullmatch(name):
        raise GitHubError(
            f"Not a GitHub repo: {original!r} "
            f"(owner/name contains invalid characters)"
        )
    return GitHubRepo(owner=owner, name=name)


class GitHubClient:
    """Minimal GitHub REST client for default-branch lookup and PRs.

    Args:
        token: Personal access token.  Optional for public reads.
        api_base: API base URL.
        transport: Optional httpx transport, for tests.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        api_base: str = _API_BASE,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._transport = transport

    def default_branch(self, repo: GitHubRepo) -> str:
        """Return the default branch of *repo*.

        Raises:
            GitHubError: On request failure or a malformed response.
        """
        data = self._request("GET", f"/repos/{repo.owner}/{repo.name}")
        branch = data.get("default_branch") if isinstance(data, dict) else None
        if not isinstance(branch, str) or not branch:
            raise GitHubError("GitHub API did not return default_branch")
        return branch

    def create_pull_request(
        self,
        repo: GitHubRepo,
        *,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> str:
        """Open a pull request and return its URL.

        Raises:
            GitHubError: On request failure or a malformed response.
        """
        data = self._request(
            "POST",
            f"/repos/{repo.owner}/{repo.name}/pulls",
            json={
                "title": title[:MAX_PR_TITLE_LENGTH],
                "body": body,
                "head": head,
                "base": base,
            },
        )
        url = data.get("html_url") if isinstance(data, dict) else None
        if not isinstance(url, str) or not url:
            raise GitHubError("GitHub API did not return html_url")
        logger.info("Created pull request %s", url)
        return url

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "blueprint-harness",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            with httpx.Client(
                timeout=_TIMEOUT_SECONDS, transport=self._transport
            ) as client:
                response = client.request(
                    method,
                    f"{self._api_base}{path}",
                    headers=headers,
                    **kwargs,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GitHubError(
                f"GitHub API {e.response.status_code}: "
                f"{e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise GitHubError(f"GitHub API request failed: {e}") from e
        try:
            return response.json()
        except ValueError as e:
            raise GitHubError("GitHub API returned invalid JSON") from e
