"""exec - run an OS command as a pipeline stage."""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

from gatepipe.runtime.errors import CommandError
from gatepipe.runtime.shell import run_process, shell_argv
from gatepipe.runtime.stream import ItemStream, collect, drain, stream_of
from gatepipe.runtime.types import ArgValue, RunContext

from ..base import Command, CommandResult

logger = logging.getLogger(__name__)

STDIN_MODES = ("raw", "json", "jsonl")

_LINE_SPLIT = re.compile(r"\r?\n")


def encode_stdin(items: List[Any], mode: str) -> str:
    """Serialize buffered items for a child's stdin.

    - json: the whole list as one JSON document
    - jsonl: one JSON document per line
    - raw: strings verbatim, everything else as JSON, newline-joined
    """
    if mode == "json":
        return json.dumps(items)
    if mode == "jsonl":
        return "".join(json.dumps(item) + "\n" for item in items)
    if mode == "raw":
        return "\n".join(item if isinstance(item, str) else json.dumps(item) for item in items)
    raise CommandError("exec", f"exec --stdin must be raw, json, or jsonl (got {mode})")


class ExecCommand(Command):
    name = "exec"
    args_schema = {
        "type": "object",
        "properties": {
            "json": {"type": "boolean", "description": "Parse stdout as JSON (single value)."},
            "shell": {"type": "string", "description": "Run via the shell with this command line."},
            "stdin": {"type": "string", "enum": list(STDIN_MODES)},
            "_": {"type": "array", "items": {"type": "string"}, "description": "Command + args."},
        },
    }

    def help(self) -> str:
        return (
            "exec - run an OS command\n\n"
            "Usage:\n"
            "  exec <command...>\n"
            "  exec --stdin raw|json|jsonl <command...>\n"
            "  exec --json <command...>\n"
            '  exec --shell "<command line>"\n\n'
            "Notes:\n"
            "  - With --json, parses stdout as JSON (single value; lists are flattened).\n"
            "  - With --stdin, writes pipeline input to stdin.\n"
            "  - With --shell (or a single arg containing spaces), runs via /bin/sh -lc.\n"
        )

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        cmd = [str(a) for a in (args.get("_") or [])]
        shell_line: Optional[str] = self.string_arg(args, "shell")
        use_shell = bool(args.get("shell")) or (len(cmd) == 1 and bool(re.search(r"\s", cmd[0])))
        stdin_mode = self.string_arg(args, "stdin")

        if not cmd and not shell_line:
            drain(input)
            raise CommandError(self.name, "exec requires a command")

        stdin_payload = None
        if stdin_mode:
            stdin_payload = encode_stdin(collect(input), stdin_mode.lower())
        else:
            drain(input)

        if use_shell:
            line = shell_line if shell_line is not None else (cmd[0] if cmd else "")
            argv = shell_argv(line)
            display = line
        else:
            argv = cmd
            display = " ".join(cmd)

        result = run_process(argv, stdin=stdin_payload, env=ctx.env, cwd=os.getcwd(), display=display)

        if self.flag(args, "json"):
            text = result.stdout.strip() or "null"
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError as e:
                raise CommandError(self.name, f"exec --json could not parse stdout as JSON: {e}")
            return CommandResult(output=stream_of(parsed if isinstance(parsed, list) else [parsed]))

        lines = [line for line in _LINE_SPLIT.split(result.stdout) if line]
        return CommandResult(output=stream_of(lines))
