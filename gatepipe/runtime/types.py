"""
types.py - Core type definitions for pipeline execution.

Defines the records passed between the parser, the runtime, the approval gate
and the driving CLI:

- Stage: one parsed pipeline stage (name, args, raw text)
- ApprovalRequest: the sole item of a halted stream
- HaltedAt / PipelineResult: the runtime's result shape
- RunContext: per-invocation bundle (env, stdio, registry, mode, renderer)

Wire keys are camelCase; the *_to_dict / *_from_dict helpers are the only
place where that mapping happens.

Usage:
    from gatepipe.runtime.types import (
        Stage, ApprovalRequest, PipelineResult, HaltedAt, RunContext, RunMode,
        stage_to_dict, stage_from_dict,
        approval_request_to_dict,
        pipeline_result_to_dict, is_approval_request,
    )
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Mapping, Optional, TextIO, Union

if TYPE_CHECKING:
    from gatepipe.commands.registry import CommandRegistry
    from gatepipe.runtime.render import JsonRenderer

# Type aliases
RunMode = Literal["human", "tool"]
ArgValue = Union[str, bool, List[str]]

APPROVAL_REQUEST_TYPE = "approval_request"


@dataclass(frozen=True)
class Stage:
    """A single parsed pipeline stage.

    Attributes:
        name: Command name (first token of the stage).
        args: Named args plus positionals under "_".
        raw: The stage text as it appeared in the pipeline.
    """

    name: str
    args: Dict[str, ArgValue] = field(default_factory=lambda: {"_": []})
    raw: str = ""

    @property
    def positionals(self) -> List[str]:
        return list(self.args.get("_", []))  # type: ignore[arg-type]


@dataclass
class ApprovalRequest:
    """Request for external approval emitted by a halting stage.

    Attributes:
        prompt: Question shown to the approver.
        items: Items awaiting approval (the halted stage's buffered input).
        preview: Optional human-readable preview of the items.
    """

    prompt: str
    items: List[Any] = field(default_factory=list)
    preview: Optional[str] = None
    type: str = APPROVAL_REQUEST_TYPE


@dataclass
class HaltedAt:
    """Location of a halt within the executed pipeline."""

    index: int


@dataclass
class PipelineResult:
    """Outcome of running a pipeline.

    Attributes:
        items: Fully drained output of the last executed stage.
        rendered: True if any stage wrote human-facing output itself.
        halted: True if a stage stopped the pipeline.
        halted_at: Index of the halting stage (None unless halted).
    """

    items: List[Any] = field(default_factory=list)
    rendered: bool = False
    halted: bool = False
    halted_at: Optional[HaltedAt] = None


@dataclass
class RunContext:
    """Per-invocation execution context shared by every stage.

    Attributes:
        registry: Command registry used for stage lookup.
        env: Environment variables visible to commands and subprocesses.
        stdin: Input handle (approval prompts read from it).
        stdout: Output handle for rendering commands.
        stderr: Diagnostic handle.
        mode: "human" (renderers may write) or "tool" (single JSON envelope).
        render: Renderer bound to stdout; created lazily when not given.
    """

    registry: "CommandRegistry"
    env: Dict[str, str] = field(default_factory=dict)
    stdin: TextIO = field(default_factory=lambda: sys.stdin)
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    stderr: TextIO = field(default_factory=lambda: sys.stderr)
    mode: RunMode = "human"
    render: Optional["JsonRenderer"] = None

    def __post_init__(self) -> None:
        if self.render is None:
            from gatepipe.runtime.render import JsonRenderer

            self.render = JsonRenderer(self.stdout)


# =============================================================================
# Serialization
# =============================================================================


def stage_to_dict(stage: Stage) -> Dict[str, Any]:
    """Convert Stage to a JSON-serializable dict."""
    args: Dict[str, Any] = {"_": stage.positionals}
    for key, value in stage.args.items():
        if key == "_":
            continue
        args[key] = list(value) if isinstance(value, list) else value
    return {"name": stage.name, "args": args, "raw": stage.raw}


def stage_from_dict(data: Mapping[str, Any]) -> Stage:
    """Build a Stage from its dict form.

    Raises:
        ValueError: If the dict does not describe a stage.
    """
    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise ValueError("stage requires a non-empty name")
    raw_args = data.get("args") or {}
    if not isinstance(raw_args, Mapping):
        raise ValueError(f"stage {name} args must be an object")

    args: Dict[str, ArgValue] = {"_": []}
    for key, value in raw_args.items():
        if key == "_":
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ValueError(f"stage {name} positional args must be a list of strings")
            args["_"] = list(value)
        elif isinstance(value, (str, bool)):
            args[key] = value
        else:
            raise ValueError(f"stage {name} arg {key} must be a string or boolean")
    return Stage(name=name, args=args, raw=str(data.get("raw", "")))


def is_approval_request(item: Any) -> bool:
    """Check whether an item is an approval request."""
    return isinstance(item, dict) and item.get("type") == APPROVAL_REQUEST_TYPE


def approval_request_to_dict(request: ApprovalRequest) -> Dict[str, Any]:
    """Convert ApprovalRequest to a dict, omitting an empty preview."""
    data: Dict[str, Any] = {
        "type": APPROVAL_REQUEST_TYPE,
        "prompt": request.prompt,
        "items": list(request.items),
    }
    if request.preview:
        data["preview"] = request.preview
    return data


def pipeline_result_to_dict(result: PipelineResult) -> Dict[str, Any]:
    """Convert PipelineResult to its external shape."""
    return {
        "items": list(result.items),
        "rendered": result.rendered,
        "halted": result.halted,
        "haltedAt": {"index": result.halted_at.index} if result.halted_at else None,
    }
