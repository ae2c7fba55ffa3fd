"""State stages backed by StateStore: state.get, state.set, diff.last."""

from __future__ import annotations

from typing import Any, Dict, List

from gatepipe.runtime.errors import CommandError
from gatepipe.runtime.storage import StateStore
from gatepipe.runtime.stream import ItemStream, collect, drain, stream_of
from gatepipe.runtime.types import ArgValue, RunContext

from ..base import Command, CommandResult


def single_or_list(items: List[Any]) -> Any:
    """A lone item is stored as itself; anything else as the list."""
    return items[0] if len(items) == 1 else items


class StateGetCommand(Command):
    name = "state.get"

    def help(self) -> str:
        return (
            "state.get - read a JSON value from state\n\n"
            "Usage:\n"
            "  state.get <key>\n\n"
            "Env:\n"
            "  GATEPIPE_STATE_DIR overrides storage directory\n"
        )

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        drain(input)
        key = self.positional(args)
        if not key:
            raise CommandError(self.name, "state.get requires a key")
        value = StateStore.from_env(ctx.env).read(key)
        return CommandResult(output=stream_of([value]))


class StateSetCommand(Command):
    name = "state.set"

    def help(self) -> str:
        return (
            "state.set - write a JSON value to state\n\n"
            "Usage:\n"
            "  <value> | state.set <key>\n\n"
            "Notes:\n"
            "  - Consumes the entire input stream; stores a single JSON value.\n"
        )

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        key = self.positional(args)
        if not key:
            drain(input)
            raise CommandError(self.name, "state.set requires a key")
        value = single_or_list(collect(input))
        StateStore.from_env(ctx.env).write(key, value)
        return CommandResult(output=stream_of([value]))


class DiffLastCommand(Command):
    name = "diff.last"

    def help(self) -> str:
        return (
            "diff.last - compare current items to last stored snapshot\n\n"
            "Usage:\n"
            "  <items> | diff.last --key <stateKey>\n\n"
            "Output:\n"
            "  { kind, key, changed, before, after }\n"
        )

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        key = self.string_arg(args, "key") or self.positional(args)
        if not key:
            drain(input)
            raise CommandError(self.name, "diff.last requires --key")
        after = single_or_list(collect(input))
        diff = StateStore.from_env(ctx.env).diff_and_store(key, after)
        record = {"kind": "diff.last", "key": key, **diff.to_dict()}
        return CommandResult(output=stream_of([record]))
