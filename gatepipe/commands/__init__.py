# gatepipe/commands package
# Command contract, registry and the standard command library.

from .base import Command, CommandResult
from .registry import CommandRegistry, create_default_registry

__all__ = ["Command", "CommandResult", "CommandRegistry", "create_default_registry"]
