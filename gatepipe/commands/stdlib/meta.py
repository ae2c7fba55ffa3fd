"""Discovery and workflow stages: commands.list, workflows.list, workflows.run."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from gatepipe.runtime.approval import run_outcome_to_dict
from gatepipe.runtime.errors import CommandError
from gatepipe.runtime.stream import ItemStream, drain, stream_of
from gatepipe.runtime.types import ArgValue, RunContext
from gatepipe.workflows import get_workflow, list_workflows, run_workflow_file

from ..base import Command, CommandResult

logger = logging.getLogger(__name__)


class CommandsListCommand(Command):
    name = "commands.list"

    def help(self) -> str:
        return (
            "commands.list - list available pipeline commands\n\n"
            "Usage:\n"
            "  commands.list\n\n"
            "Notes:\n"
            "  - Intended for agents to discover available pipeline stages dynamically.\n"
            "  - Output includes the command name, a short description extracted from help()\n"
            "    and the argsSchema (JSON Schema) when the command declares one.\n"
        )

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        drain(input)
        entries = []
        for name in ctx.registry.list():
            command = ctx.registry.get(name)
            entries.append({
                "name": name,
                "description": command.describe() if command else "",
                "argsSchema": command.args_schema if command else None,
            })
        return CommandResult(output=stream_of(entries))


class WorkflowsListCommand(Command):
    name = "workflows.list"

    def help(self) -> str:
        return "workflows.list - list built-in workflows\n\nUsage:\n  workflows.list\n"

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        drain(input)
        return CommandResult(output=stream_of(list_workflows()))


class WorkflowsRunCommand(Command):
    name = "workflows.run"
    args_schema = {
        "type": "object",
        "properties": {
            "file": {"type": "string", "description": "Workflow file (YAML or JSON)"},
            "name": {"type": "string", "description": "Built-in workflow name"},
            "args-json": {"type": "string", "description": "Workflow args as a JSON object"},
        },
    }

    def help(self) -> str:
        return (
            "workflows.run - run a workflow file or built-in workflow\n\n"
            "Usage:\n"
            "  workflows.run --file ./deploy.yaml --args-json '{\"env\": \"prod\"}'\n"
            "  workflows.run --name github.pr.monitor --args-json '{\"repo\": \"o/r\", \"pr\": 1}'\n\n"
            "Output:\n"
            "  Workflow files yield { status, output, requiresApproval }.\n"
            "  Built-in workflows yield their result record.\n"
        )

    def _parse_args_json(self, args: Dict[str, ArgValue]) -> Dict[str, Any]:
        raw = self.string_arg(args, "args-json", "argsJson")
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CommandError(self.name, f"workflows.run --args-json must be valid JSON: {e}")
        if not isinstance(parsed, dict):
            raise CommandError(self.name, "workflows.run --args-json must be a JSON object")
        return parsed

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        drain(input)
        workflow_args = self._parse_args_json(args)
        file_path = self.string_arg(args, "file")
        name = self.string_arg(args, "name") or self.positional(args)

        if file_path:
            outcome = run_workflow_file(ctx, file_path=file_path, args=workflow_args)
            return CommandResult(output=stream_of([run_outcome_to_dict(outcome)]))

        if not name:
            raise CommandError(self.name, "workflows.run requires --file or --name")
        workflow = get_workflow(name)
        if workflow is None:
            raise CommandError(self.name, f"Unknown workflow: {name}")
        logger.debug("Running built-in workflow %s", name)
        return CommandResult(output=stream_of([workflow.runner(workflow_args, ctx)]))
