# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Output sanitization: secret redaction, truncation, and slugs.

Everything a node produces (command output, agent transcripts, error
strings) may contain credentials from the run environment and may be
arbitrarily large.  Reporters pass it through :func:`sanitize` before it
leaves the process.
"""

import re
from collections.abc import Mapping


#: Default cap on captured command output, per stream.
MAX_OUTPUT_BYTES = 50 * 1024

#: Appended to output that was cut by :func:`truncate`.
TRUNCATION_MARKER = "\n[truncated]"

#: Environment values shorter than this are never redacted.
MIN_REDACT_LENGTH = 8

#: Variable-name suffixes that mark a value as a secret (case-insensitive).
SECRET_SUFFIXES = ("KEY", "TOKEN", "SECRET", "PASSWORD", "CREDENTIAL")

_SLUG_MAX_LENGTH = 64
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def is_secret_name(name: str) -> bool:
    """Return True if *name* ends in one of :data:`SECRET_SUFFIXES`."""
    return name.upper().endswith(SECRET_SUFFIXES)


def redact(text: str, env: Mapping[str, str]) -> str:
    """Replace environment values found in *text*.

    Values of secret-named variables become ``[REDACTED:<NAME>]``; any
    other value becomes ``[REDACTED]``.  Values shorter than
    :data:`MIN_REDACT_LENGTH` are left alone.  Longer values are replaced
    first so a secret sharing a prefix with a shorter one is never
    partially exposed.

    Args:
        text: Text to scan.
        env: Environment map whose values are redacted.

    Returns:
        Redacted text.
    """
    entries = sorted(
        (
            (name, value)
            for name, value in env.items()
            if len(value) >= MIN_REDACT_LENGTH
        ),
        key=lambda item: len(item[1]),
        reverse=True,
    )
    for name, value in entries:
        replacement = (
            f"[REDACTED:{name}]" if is_secret_name(name) else "[REDACTED]"
        )
        text = text.replace(value, replacement)
    return text


def truncate(text: str, max_bytes: int) -> str:
    """Cut *text* to at most *max_bytes* UTF-8 bytes.

    A code point split by the cut is dropped.  :data:`TRUNCATION_MARKER`
    is appended only when something was removed.
    """
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    head = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return head + TRUNCATION_MARKER


def sanitize(
    text: str,
    env: Mapping[str, str],
    max_bytes: int = MAX_OUTPUT_BYTES,
) -> str:
    """Truncate then redact *text*.

    Truncation runs first so the discarded tail is never scanned.
    """
    return redact(truncate(text, max_bytes), env)


def slugify(text: str) -> str:
    """Turn *text* into a branch- and filename-safe slug.

    Lowercase alphanumerics separated by single hyphens, no leading or
    trailing hyphen, at most 64 characters.
    """
    slug = _NON_SLUG_RE.sub("-", text.lower()).strip("-")
    return slug[:_SLUG_MAX_LENGTH]
