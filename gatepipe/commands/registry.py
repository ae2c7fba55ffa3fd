"""
registry.py - Command registry and default command set.

The registry is an explicit value built once per process invocation and
threaded through RunContext; there is no module-level singleton.

Usage:
    from gatepipe.commands.registry import create_default_registry

    registry = create_default_registry()
    registry.get("exec")     # Command or None
    registry.list()          # sorted command names
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from .base import Command

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Name -> Command map with unique names."""

    def __init__(self, commands: Optional[Iterable[Command]] = None):
        self._commands: Dict[str, Command] = {}
        for command in commands or ():
            self.register(command)

    def register(self, command: Command) -> None:
        """Add a command.

        Raises:
            ValueError: If the name is empty or already registered.
        """
        if not command.name:
            raise ValueError(f"Command {type(command).__name__} has no name")
        if command.name in self._commands:
            raise ValueError(f"Duplicate command name: {command.name}")
        self._commands[command.name] = command

    def get(self, name: str) -> Optional[Command]:
        return self._commands.get(name)

    def list(self) -> List[str]:
        return sorted(self._commands)

    def __contains__(self, name: object) -> bool:
        return name in self._commands

    def __len__(self) -> int:
        return len(self._commands)


def default_commands() -> List[Command]:
    """Instantiate the standard command library."""
    from .stdlib import (
        ApproveCommand,
        CommandsListCommand,
        DiffLastCommand,
        ExecCommand,
        HeadCommand,
        JsonCommand,
        PickCommand,
        StateGetCommand,
        StateSetCommand,
        TableCommand,
        TemplateCommand,
        WhereCommand,
        WorkflowsListCommand,
        WorkflowsRunCommand,
    )

    return [
        ExecCommand(),
        HeadCommand(),
        JsonCommand(),
        PickCommand(),
        TableCommand(),
        WhereCommand(),
        TemplateCommand(),
        ApproveCommand(),
        StateGetCommand(),
        StateSetCommand(),
        DiffLastCommand(),
        CommandsListCommand(),
        WorkflowsListCommand(),
        WorkflowsRunCommand(),
    ]


def create_default_registry() -> CommandRegistry:
    """Build a registry holding the standard command library."""
    registry = CommandRegistry(default_commands())
    logger.debug("Created command registry with %d commands", len(registry))
    return registry
