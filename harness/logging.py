# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Centralized logging configuration with secret redaction.

Blueprint runs carry credentials (GitHub tokens, control-plane API keys,
agent provider keys) in their environment.  Anything that reaches a log
handler passes through :class:`SecretFilter` first.

Usage:
    # In entry points
    from harness.logging import configure_logging
    configure_logging(level=logging.INFO)

    # In library modules
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Creating sandbox for %s", repo)
"""

import logging
import re
from collections.abc import Mapping
from typing import ClassVar

from harness.sanitize import MIN_REDACT_LENGTH, is_secret_name


class SecretFilter(logging.Filter):
    """Logging filter that redacts registered secrets from log output.

    Secrets are registered at runtime with :meth:`register_secret` (or in
    bulk from an environment map with :meth:`register_env_secrets`).  Any
    registered secret appearing in a log message is replaced with
    ``[REDACTED]``.
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact registered secrets in the record message and arguments.

        Returns:
            Always True (records are modified, never suppressed).
        """
        if self._pattern is not None:
            record.msg = self._pattern.sub("[REDACTED]", str(record.msg))
            if record.args:
                record.args = tuple(
                    self._pattern.sub("[REDACTED]", str(arg))
                    if isinstance(arg, str)
                    else arg
                    for arg in record.args
                )
        return True

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Register a secret to be redacted from all log output.

        Args:
            secret: The secret string to redact. Empty strings are ignored.
        """
        if secret:
            cls._secrets.add(secret)
            cls._rebuild_pattern()

    @classmethod
    def register_env_secrets(cls, env: Mapping[str, str]) -> int:
        """Register the values of secret-named variables from *env*.

        Only variables whose names end in a secret suffix (KEY, TOKEN,
        SECRET, PASSWORD, CREDENTIAL) and whose values are long enough to
        be worth redacting are registered.

        Args:
            env: Environment map, typically the run environment.

        Returns:
            Number of values registered.
        """
        count = 0
        for name, value in env.items():
            if is_secret_name(name) and len(value) >= MIN_REDACT_LENGTH:
                cls._secrets.add(value)
                count += 1
        if count:
            cls._rebuild_pattern()
        return count

    @classmethod
    def clear_secrets(cls) -> None:
        """Clear all registered secrets. Primarily for testing."""
        cls._secrets.clear()
        cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        """Rebuild the compiled regex from registered secrets.

        Longer secrets come first so a secret that contains another is
        replaced whole.
        """
        if cls._secrets:
            ordered = sorted(cls._secrets, key=len, reverse=True)
            cls._pattern = re.compile("|".join(re.escape(s) for s in ordered))
        else:
            cls._pattern = None


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    add_secret_filter: bool = True,
) -> None:
    """Configure the root logger.

    Args:
        level: The logging level (e.g., logging.INFO, logging.DEBUG).
        format_string: Custom format string. If None, uses default format.
        add_secret_filter: Whether to add the SecretFilter to redact secrets.
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string))

    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)
