"""
registry.py - Built-in named workflows.

Each entry pairs discoverable metadata (what `workflows.list` shows) with the
function that runs it. Runners take the args mapping and the run context and
return a single JSON-serializable record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from gatepipe.runtime.types import RunContext

from .github_pr_monitor import WORKFLOW_NAME as GITHUB_PR_MONITOR, run_github_pr_monitor

WorkflowRunner = Callable[[Mapping[str, Any], RunContext], Any]


@dataclass
class BuiltinWorkflow:
    name: str
    description: str
    runner: WorkflowRunner
    args_schema: Dict[str, Any] = field(default_factory=dict)
    examples: List[Dict[str, Any]] = field(default_factory=list)
    side_effects: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "argsSchema": self.args_schema,
            "examples": self.examples,
            "sideEffects": self.side_effects,
        }


BUILTIN_WORKFLOWS: Dict[str, BuiltinWorkflow] = {
    GITHUB_PR_MONITOR: BuiltinWorkflow(
        name=GITHUB_PR_MONITOR,
        description="Fetch PR state via gh, diff against last run, emit only on change.",
        runner=run_github_pr_monitor,
        args_schema={
            "type": "object",
            "properties": {
                "repo": {"type": "string", "description": "owner/repo"},
                "pr": {"type": "number", "description": "Pull request number"},
                "key": {"type": "string", "description": "Optional state key override."},
                "changesOnly": {
                    "type": "boolean",
                    "description": "If true, suppress snapshot when unchanged.",
                },
            },
            "required": ["repo", "pr"],
        },
        examples=[
            {"args": {"repo": "octocat/hello-world", "pr": 42}, "description": "Monitor a PR and report when it changes."}
        ],
        side_effects=["writes state"],
    ),
}


def get_workflow(name: str) -> Optional[BuiltinWorkflow]:
    return BUILTIN_WORKFLOWS.get(name)


def list_workflows() -> List[Dict[str, Any]]:
    """Metadata for every built-in workflow, sorted by name."""
    return [BUILTIN_WORKFLOWS[name].to_dict() for name in sorted(BUILTIN_WORKFLOWS)]
