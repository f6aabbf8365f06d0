# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Harness configuration.

Configuration is loaded from a YAML file.  The default location follows
the XDG Base Directory Specification:

    ``$XDG_CONFIG_HOME/harness/harness.yaml``
    (typically ``~/.config/harness/harness.yaml``)

The file is optional: every setting has a default, and credentials fall
back to the conventional environment variables (``GITHUB_TOKEN``,
``DAYTONA_API_KEY``, ``DAYTONA_API_URL``, ``DAYTONA_TARGET``).
``!env`` tags resolve values from environment variables.  A ``.env``
file is loaded once before the config is read.

Example::

    branch_prefix: harness
    sandbox: local
    operation_timeout_ms: 600000
    github_token: !env GITHUB_TOKEN

    commands:
      install: [pnpm, install, --frozen-lockfile]
      typecheck: [pnpm, typecheck]
      test: [pnpm, test]

    remote:
      api_key: !env DAYTONA_API_KEY
      image: daytona-medium
      auto_stop_minutes: 30
"""

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar, overload

import yaml
from platformdirs import user_config_path

from harness.dotenv_loader import load_dotenv_once
from harness.logging import SecretFilter
from harness.sandbox.types import DEFAULT_OPERATION_TIMEOUT_MS, SandboxType


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "harness"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})

_VALID_LOG_LEVELS = frozenset(
    {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
)


def get_config_path() -> Path:
    """Return the default config file path (XDG)."""
    return user_config_path(_APP_NAME) / "harness.yaml"


def get_dotenv_path() -> Path:
    """Return the ``.env`` path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


class ConfigError(Exception):
    """Base exception for configuration errors."""


# ---------------------------------------------------------------------------
# YAML tag placeholders
# ---------------------------------------------------------------------------


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


# ---------------------------------------------------------------------------
# Value resolution
# ---------------------------------------------------------------------------


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None if the value is None or the env var is not set.
    """
    if isinstance(value, _EnvVar):
        return os.environ.get(value.var_name)
    if value is None:
        return None
    return str(value)


_MISSING = object()

_T = TypeVar("_T")


@overload
def _resolve(value: object, coerce: type[_T], *, default: _T) -> _T: ...


@overload
def _resolve(value: object, coerce: type[_T]) -> _T | None: ...


def _resolve(
    value: object,
    coerce: type[Any],
    *,
    default: object = _MISSING,
) -> Any:
    """Resolve a YAML value, handling ``!env`` tags and type coercion.

    Args:
        value: Raw value from YAML (may be ``_EnvVar``, None, or a
            literal already parsed by PyYAML).
        coerce: Target type (``str``, ``int``, ``bool``).
        default: Default when the value is absent.

    Returns:
        The resolved, coerced value, or None when absent without default.

    Raises:
        ConfigError: If the value cannot be coerced.
    """
    if not isinstance(value, _EnvVar) and value is not None:
        if coerce is bool:
            return _coerce_bool(value)
        if isinstance(value, coerce) and not isinstance(value, bool):
            return value

    resolved = _raw_resolve(value)
    if resolved is None:
        return None if default is _MISSING else default

    if coerce is bool:
        return _coerce_bool(resolved)
    try:
        return coerce(resolved)
    except ValueError as e:
        raise ConfigError(
            f"Cannot convert {resolved!r} to {coerce.__name__}"
        ) from e


def _resolve_command(
    value: object, *, name: str, default: tuple[str, ...]
) -> tuple[str, ...]:
    """Resolve a command given as an argv list or a shell-style string.

    Strings are split with :func:`shlex.split`; nothing is ever run
    through a shell.
    """
    if value is None:
        return default
    if isinstance(value, list):
        argv = tuple(
            resolved
            for resolved in (_raw_resolve(item) for item in value)
            if resolved
        )
    else:
        resolved = _raw_resolve(value)
        argv = tuple(shlex.split(resolved)) if resolved else ()
    if not argv:
        raise ConfigError(f"Config 'commands.{name}' cannot be empty")
    return argv


def _mapping(raw: dict, key: str) -> dict:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a YAML mapping")
    return value


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandsConfig:
    """Project commands used by the built-in blueprints.

    Attributes:
        install: Dependency install command.
        typecheck: Type-check command (first validation step).
        test: Test command (second validation step).
    """

    install: tuple[str, ...] = ("pnpm", "install", "--frozen-lockfile")
    typecheck: tuple[str, ...] = ("pnpm", "typecheck")
    test: tuple[str, ...] = ("pnpm", "test")


@dataclass(frozen=True)
class RemoteSandboxConfig:
    """Settings for the remote (control-plane) sandbox backend.

    Attributes:
        api_key: Control-plane API key.  Required to create a remote
            sandbox, not to load the config.
        api_url: Control-plane base URL.  None uses the client default.
        target: Optional region/target for container placement.
        image: Base image (snapshot) the container is created from.
        auto_stop_minutes: Idle minutes before the container is stopped.
    """

    api_key: str | None = None
    api_url: str | None = None
    target: str | None = None
    image: str = "daytona-medium"
    auto_stop_minutes: int = 30

    def __post_init__(self) -> None:
        """Validate settings and register the API key for redaction.

        Raises:
            ConfigError: If a value is invalid.
        """
        if self.api_key:
            SecretFilter.register_secret(self.api_key)
        if not self.image:
            raise ConfigError("remote.image cannot be empty")
        if self.auto_stop_minutes < 0:
            raise ConfigError(
                f"remote.auto_stop_minutes must be >= 0: "
                f"{self.auto_stop_minutes}"
            )


@dataclass(frozen=True)
class HarnessConfig:
    """Complete harness configuration.

    Attributes:
        branch_prefix: First segment of run branch names.
        sandbox: Default sandbox backend.
        operation_timeout_ms: Per-operation timeout for sandbox commands.
        log_level: Root log level name.
        github_token: Token for clone, push and pull requests.
        commands: Project commands for the built-in blueprints.
        remote: Remote sandbox settings.
    """

    branch_prefix: str = "harness"
    sandbox: SandboxType = SandboxType.LOCAL
    operation_timeout_ms: int = DEFAULT_OPERATION_TIMEOUT_MS
    log_level: str = "INFO"
    github_token: str | None = None
    commands: CommandsConfig = field(default_factory=CommandsConfig)
    remote: RemoteSandboxConfig = field(default_factory=RemoteSandboxConfig)

    def __post_init__(self) -> None:
        """Validate configuration and register secrets.

        Raises:
            ConfigError: If configuration is invalid.
        """
        if self.github_token:
            SecretFilter.register_secret(self.github_token)
        if not self.branch_prefix or "/" in self.branch_prefix.strip("/"):
            raise ConfigError(
                f"branch_prefix must be a single path segment: "
                f"{self.branch_prefix!r}"
            )
        if self.operation_timeout_ms < 1000:
            raise ConfigError(
                f"operation_timeout_ms must be >= 1000: "
                f"{self.operation_timeout_ms}"
            )
        if self.log_level.upper() not in _VALID_LOG_LEVELS:
            raise ConfigError(f"Invalid log_level: {self.log_level!r}")

    @classmethod
    def from_yaml(cls, config_path: Path | None = None) -> "HarnessConfig":
        """Load configuration from a YAML file.

        A ``.env`` file is loaded first if present.  When *config_path* is
        None and the default file does not exist, defaults plus
        environment fallbacks are used.

        Args:
            config_path: Explicit config path.  Must exist if given.

        Returns:
            HarnessConfig instance.

        Raises:
            ConfigError: If an explicit file is missing, the YAML is not a
                mapping, or a value is invalid.
        """
        load_dotenv_once()

        if config_path is None:
            config_path = get_config_path()
            if not config_path.exists():
                logger.debug("No config at %s, using defaults", config_path)
                return cls._from_raw({})

        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            try:
                raw = yaml.load(f, Loader=_make_loader())
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Config file must be a YAML mapping: {config_path}"
            )

        logger.debug("Loaded config from %s", config_path)
        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict) -> "HarnessConfig":
        """Build config from parsed (but unresolved) YAML dict."""
        commands = _mapping(raw, "commands")
        remote = _mapping(raw, "remote")
        defaults = CommandsConfig()

        sandbox_name = _resolve(raw.get("sandbox"), str, default="local")
        try:
            sandbox = SandboxType(sandbox_name)
        except ValueError as e:
            raise ConfigError(
                f"Invalid sandbox {sandbox_name!r}: expected one of "
                f"{', '.join(t.value for t in SandboxType)}"
            ) from e

        return cls(
            branch_prefix=_resolve(
                raw.get("branch_prefix"), str, default="harness"
            ),
            sandbox=sandbox,
            operation_timeout_ms=_resolve(
                raw.get("operation_timeout_ms"),
                int,
                default=DEFAULT_OPERATION_TIMEOUT_MS,
            ),
            log_level=_resolve(raw.get("log_level"), str, default="INFO"),
            github_token=_resolve(raw.get("github_token"), str)
            or os.environ.get("GITHUB_TOKEN")
            or None,
            commands=CommandsConfig(
                install=_resolve_command(
                    commands.get("install"),
                    name="install",
                    default=defaults.install,
                ),
                typecheck=_resolve_command(
                    commands.get("typecheck"),
                    name="typecheck",
                    default=defaults.typecheck,
                ),
                test=_resolve_command(
                    commands.get("test"), name="test", default=defaults.test
                ),
            ),
            remote=RemoteSandboxConfig(
                api_key=_resolve(remote.get("api_key"), str)
                or os.environ.get("DAYTONA_API_KEY")
                or None,
                api_url=_resolve(remote.get("api_url"), str)
                or os.environ.get("DAYTONA_API_URL")
                or None,
                target=_resolve(remote.get("target"), str)
                or os.environ.get("DAYTONA_TARGET")
                or None,
                image=_resolve(
                    remote.get("image"), str, default="daytona-medium"
                ),
                auto_stop_minutes=_resolve(
                    remote.get("auto_stop_minutes"), int, default=30
                ),
            ),
        )
