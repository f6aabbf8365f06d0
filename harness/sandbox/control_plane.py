# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""HTTP client for the remote sandbox control plane.

Wraps the container lifecycle endpoints and the per-container toolbox
(git, process sessions, filesystem) used by
:class:`~harness.sandbox.remote.RemoteSandbox`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from harness.sandbox.types import SandboxError
from harness.sanitize import redact


logger = logging.getLogger(__name__)

#: Default control-plane endpoint.
DEFAULT_API_URL = "https://app.daytona.io/api"

#: Timeout for lifecycle and toolbox requests other than command execution.
_REQUEST_TIMEOUT_SECONDS = 120.0

#: Extra time granted to the HTTP request beyond the command timeout.
_EXEC_GRACE_SECONDS = 15.0


class ControlPlaneError(SandboxError):
    """A control-plane request failed."""


class ControlPlaneTimeout(ControlPlaneError):
    """A control-plane request timed out."""


class CommandTimeout(ControlPlaneTimeout):
    """A session command did not finish within its timeout."""


@dataclass(frozen=True)
class SessionCommandResult:
    """Result of a command run in a persistent session.

    Attributes:
        exit_code: Exit code, or None when the control plane did not
            report one.
        stdout: Standard output.
        stderr: Standard error.
    """

    exit_code: int | None
    stdout: str
    stderr: str


class ControlPlaneClient:
    """Thin synchronous client for the control-plane REST API.

    Every non-2xx response raises :class:`ControlPlaneError` with the
    status and a short excerpt of the body.

    Args:
        api_key: Bearer token for the API.
        api_url: Base URL.  Defaults to :data:`DEFAULT_API_URL`.
        target: Optional region/target sent with container creation.
        transport: Optional httpx transport (tests use
            ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_key: str,
        api_url: str | None = None,
        target: str | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Control-plane API key cannot be empty")
        self.target = target
        self._api_key = api_key
        self._client = httpx.Client(
            base_url=(api_url or DEFAULT_API_URL).rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "User-Agent": "blueprint-harness",
            },
            timeout=_REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    # -- container lifecycle ------------------------------------------------

    def create_sandbox(self, image: str, auto_stop_minutes: int) -> str:
        """Create a container from *image* and return its id."""
        body: dict[str, Any] = {
            "snapshot": image,
            "autoStopInterval": auto_stop_minutes,
            "autoDeleteInterval": 0,
        }
        if self.target:
            body["target"] = self.target
        data = self._request("POST", "/sandbox", json=body)
        sandbox_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(sandbox_id, str) or not sandbox_id:
            raise ControlPlaneError("Control plane did not return sandbox id")
        logger.info("Created remote sandbox %s from %s", sandbox_id, image)
        return sandbox_id

    def delete_sandbox(self, sandbox_id: str) -> None:
        self._request("DELETE", f"/sandbox/{sandbox_id}")
        logger.info("Deleted remote sandbox %s", sandbox_id)

    # -- git ----------------------------------------------------------------

    def git_clone(
        self, sandbox_id: str, url: str, path: str, token: str | None
    ) -> None:
        body: dict[str, Any] = {"url": url, "path": path}
        if token:
            body["username"] = "git"
            body["password"] = token
        self._toolbox("POST", sandbox_id, "/git/clone", json=body)

    def git_create_branch(self, sandbox_id: str, path: str, name: str) -> None:
        self._toolbox(
            "POST",
            sandbox_id,
            "/git/branches",
            json={"path": path, "name": name},
        )

    def git_checkout(self, sandbox_id: str, path: str, branch: str) -> None:
        self._toolbox(
            "POST",
            sandbox_id,
            "/git/checkout",
            json={"path": path, "branch": branch},
        )

    def git_status(self, sandbox_id: str, path: str) -> list[Any]:
        """Return the list of changed files in the repository at *path*."""
        data = self._toolbox(
            "GET", sandbox_id, "/git/status", params={"path": path}
        )
        if isinstance(data, dict):
            return list(data.get("fileStatus") or [])
        return []

    def git_add(self, sandbox_id: str, path: str, files: list[str]) -> None:
        self._toolbox(
            "POST", sandbox_id, "/git/add", json={"path": path, "files": files}
        )

    def git_commit(
        self,
        sandbox_id: str,
        path: str,
        message: str,
        author: str,
        email: str,
        *,
        allow_empty: bool = False,
    ) -> None:
        self._toolbox(
            "POST",
            sandbox_id,
            "/git/commit",
            json={
                "path": path,
                "message": message,
                "author": author,
                "email": email,
                "allow_empty": allow_empty,
            },
        )

    def git_push(self, sandbox_id: str, path: str, token: str) -> None:
        """Push the checked-out branch of the repository at *path*."""
        self._toolbox(
            "POST",
            sandbox_id,
            "/git/push",
            json={"path": path, "username": "git", "password": token},
        )

    # -- process sessions ---------------------------------------------------

    def create_session(self, sandbox_id: str, session_id: str) -> None:
        self._toolbox(
            "POST",
            sandbox_id,
            "/process/session",
            json={"sessionId": session_id},
        )

    def execute_session_command(
        self,
        sandbox_id: str,
        session_id: str,
        command: str,
        timeout_s: int,
    ) -> SessionCommandResult:
        """Run *command* synchronously in a session.

        Raises:
            CommandTimeout: If the request times out.
            ControlPlaneError: On any other request failure.
        """
        try:
            data = self._toolbox(
                "POST",
                sandbox_id,
                f"/process/session/{session_id}/exec",
                json={"command": command, "runAsync": False},
                params={"timeout": timeout_s},
                timeout=timeout_s + _EXEC_GRACE_SECONDS,
            )
        except ControlPlaneTimeout as e:
            raise CommandTimeout(
                f"Session command timed out after {timeout_s}s"
            ) from e
        if not isinstance(data, dict):
            data = {}
        exit_code = data.get("exitCode")
        stdout = data.get("stdout")
        if stdout is None:
            stdout = data.get("output")
        return SessionCommandResult(
            exit_code=exit_code if isinstance(exit_code, int) else None,
            stdout=stdout or "",
            stderr=data.get("stderr") or "",
        )

    def delete_session(self, sandbox_id: str, session_id: str) -> None:
        self._toolbox("DELETE", sandbox_id, f"/process/session/{session_id}")

    # -- filesystem ---------------------------------------------------------

    def create_folder(self, sandbox_id: str, path: str, mode: str) -> None:
        self._toolbox(
            "POST",
            sandbox_id,
            "/files/folder",
            params={"path": path, "mode": mode},
        )

    def upload_file(self, sandbox_id: str, path: str, content: bytes) -> None:
        self._toolbox(
            "POST",
            sandbox_id,
            "/files/upload",
            params={"path": path},
            files={"file": content},
        )

    # -- plumbing -----------------------------------------------------------

    def _toolbox(
        self, method: str, sandbox_id: str, path: str, **kwargs: Any
    ) -> Any:
        return self._request(
            method, f"/toolbox/{sandbox_id}/toolbox{path}", **kwargs
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and decode the JSON body (None if empty).

        Error messages have the API key and any git credential sent with
        the request redacted.
        """
        secrets = self._request_secrets(kwargs.get("json"))
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise ControlPlaneTimeout(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise ControlPlaneError(
                redact(f"{method} {path} failed: {e}", secrets)
            ) from e

        if response.is_error:
            raise ControlPlaneError(
                redact(
                    f"{method} {path} returned {response.status_code}: "
                    f"{response.text[:500]}",
                    secrets,
                )
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def _request_secrets(self, body: Any) -> dict[str, str]:
        secrets = {"CONTROL_PLANE_API_KEY": self._api_key}
        if isinstance(body, dict) and body.get("password"):
            secrets["GIT_TOKEN"] = body["password"]
        return secrets
