# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Built-in blueprints and their registry."""

from collections.abc import Callable

from harness.blueprint.types import Blueprint
from harness.blueprints import bug_fix, self_build
from harness.config import CommandsConfig


_BUILDERS: dict[str, Callable[[CommandsConfig | None], Blueprint]] = {
    bug_fix.NAME: bug_fix.build,
    self_build.NAME: self_build.build,
}


class UnknownBlueprintError(KeyError):
    """No blueprint is registered under the requested name."""

    def __str__(self) -> str:
        return str(self.args[0])


def blueprint_names() -> list[str]:
    """Return registered blueprint names, sorted."""
    return sorted(_BUILDERS)


def get_blueprint(
    name: str, commands: CommandsConfig | None = None
) -> Blueprint:
    """Build the blueprint registered as *name*.

    Raises:
        UnknownBlueprintError: If *name* is not registered.
    """
    try:
        builder = _BUILDERS[name]
    except KeyError:
        raise UnknownBlueprintError(
            f"Unknown blueprint {name!r}. Available: "
            f"{', '.join(blueprint_names())}"
        ) from None
    return builder(commands)


def list_blueprints(commands: CommandsConfig | None = None) -> list[Blueprint]:
    """Build every registered blueprint, sorted by name."""
    return [get_blueprint(name, commands) for name in blueprint_names()]
