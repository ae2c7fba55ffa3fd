"""
base.py - Abstract base class for pipeline commands.

This module defines the interface contract every pipeline stage implements:
- Command: name, help(), run()
- CommandResult: output stream plus halt/rendered signals

Commands are stateless; one instance serves every invocation in a process.

Contract obligations for run():
- The input stream must be fully drained, even when its items are ignored,
  so upstream resources are released.
- Output may be produced lazily (a generator) or after buffering all input.
- rendered=True means the command already wrote human-facing output.
- halt=True means the runtime must not advance to later stages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from gatepipe.runtime.errors import CommandError
from gatepipe.runtime.stream import ItemStream, empty_stream
from gatepipe.runtime.types import ArgValue, RunContext


@dataclass
class CommandResult:
    """Output of a single stage invocation."""

    output: ItemStream = field(default_factory=empty_stream)
    halt: bool = False
    rendered: bool = False


class Command(ABC):
    """Abstract base class for pipeline commands.

    Commands are responsible for:
    - Consuming their input stream
    - Producing an output stream
    - Signalling halts (approval requests) and direct rendering

    Commands do NOT own:
    - Stage sequencing (that's the runtime's job)
    - Resume token issuance (that's the approval gate's job)
    """

    #: Registry name used in pipeline text (e.g. "exec", "state.get")
    name: str = ""

    #: Optional JSON-schema-like description of accepted args
    args_schema: Optional[Dict[str, Any]] = None

    @abstractmethod
    def help(self) -> str:
        """Usage text. The first line reads "<name> - <description>"."""
        ...

    @abstractmethod
    def run(
        self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext
    ) -> CommandResult:
        """Run the stage.

        Args:
            input: Output stream of the previous stage.
            args: Parsed stage args (positionals under "_").
            ctx: Per-invocation run context.

        Returns:
            CommandResult with the output stream.
        """
        ...

    def describe(self) -> str:
        """Short description extracted from the first help line."""
        first = next((line for line in self.help().splitlines() if line.strip()), "")
        if " - " in first:
            return first.split(" - ", 1)[1].strip()
        return first.strip()

    # -------------------------------------------------------------------------
    # Arg helpers shared by stdlib commands
    # -------------------------------------------------------------------------

    def positional(self, args: Dict[str, ArgValue], index: int = 0) -> Optional[str]:
        values = args.get("_") or []
        if isinstance(values, list) and len(values) > index:
            return values[index]
        return None

    def string_arg(self, args: Dict[str, ArgValue], *names: str) -> Optional[str]:
        """First of `names` present as a string value."""
        for name in names:
            value = args.get(name)
            if isinstance(value, str):
                return value
        return None

    def flag(self, args: Dict[str, ArgValue], *names: str) -> bool:
        """True if any of `names` is set (a bare flag or a truthy string)."""
        for name in names:
            value = args.get(name)
            if value is True:
                return True
            if isinstance(value, str) and value.strip().lower() not in ("", "0", "false", "no"):
                return True
        return False

    def int_arg(self, args: Dict[str, ArgValue], default: int, *names: str) -> int:
        """Parse a non-negative integer arg, raising CommandError otherwise."""
        raw = self.string_arg(args, *names)
        if raw is None:
            return default
        try:
            value = float(raw)
        except ValueError:
            raise CommandError(self.name, f"{self.name} --{names[0]} must be a number (got {raw!r})")
        if value < 0 or value != value or value == float("inf"):
            raise CommandError(self.name, f"{self.name} --{names[0]} must be a non-negative number")
        return int(value)
