"""
approval.py - Approval gate shared by pipelines and workflow files.

Any stage may halt with a single `approval_request` item instead of passing
items through. The gate recognizes that shape, packages the unexecuted part of
the pipeline into a `pipeline-continuation` token, and later resumes it:

    halted result  ->  RunOutcome(status="needs_approval", requires_approval={..., resumeToken})
    resume(token, approved=True)   ->  remaining stages run with the buffered items
    resume(token, approved=False)  ->  RunOutcome(status="cancelled"), nothing runs

Workflow files report their outcomes with the same RunOutcome shape.

Usage:
    from gatepipe.runtime.approval import run_gated_pipeline, resume_pipeline

    outcome = run_gated_pipeline(stages, ctx)
    if outcome.status == "needs_approval":
        token = outcome.requires_approval["resumeToken"]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, TextIO

from .pipeline import run_pipeline
from .stream import stream_of
from .tokens import PipelineContinuation, encode_token
from .types import PipelineResult, RunContext, Stage, is_approval_request

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["ok", "needs_approval", "cancelled"]

_YES = re.compile(r"^y(es)?$", re.IGNORECASE)


@dataclass
class RunOutcome:
    """Status-bearing result reported to the driving CLI/agent layer.

    Attributes:
        status: "ok", "needs_approval" or "cancelled".
        output: Output items (empty unless status is "ok").
        requires_approval: Approval request plus resumeToken when halted.
    """

    status: OutcomeStatus
    output: List[Any] = field(default_factory=list)
    requires_approval: Optional[Dict[str, Any]] = None


def run_outcome_to_dict(outcome: RunOutcome) -> Dict[str, Any]:
    """Convert RunOutcome to its wire shape."""
    return {
        "status": outcome.status,
        "output": list(outcome.output),
        "requiresApproval": outcome.requires_approval,
    }


# =============================================================================
# Halt detection and continuation
# =============================================================================


def find_approval_request(result: PipelineResult) -> Optional[Dict[str, Any]]:
    """Return the approval request if the result is an approval halt.

    An approval halt is a halted result whose stream held exactly one item of
    type "approval_request".
    """
    if result.halted and len(result.items) == 1 and is_approval_request(result.items[0]):
        return result.items[0]
    return None


def build_continuation(
    stages: Sequence[Stage], result: PipelineResult, approval: Dict[str, Any]
) -> PipelineContinuation:
    """Build the continuation for an approval halt.

    Resumption starts right after the halted stage and is fed the items the
    halted stage was asked to approve.
    """
    halted_index = result.halted_at.index if result.halted_at else -1
    items = approval.get("items")
    return PipelineContinuation(
        pipeline=list(stages),
        resume_at_index=halted_index + 1,
        items=list(items) if isinstance(items, list) else [],
        prompt=str(approval.get("prompt", "")),
    )


def run_gated_pipeline(
    stages: Sequence[Stage],
    ctx: RunContext,
    input: Optional[Iterable[Any]] = None,
) -> RunOutcome:
    """Run a pipeline and convert an approval halt into a resumable outcome."""
    result = run_pipeline(stages, ctx, input=input)
    approval = find_approval_request(result)

    if approval is None:
        return RunOutcome(status="ok", output=result.items)

    continuation = build_continuation(stages, result, approval)
    token = encode_token(continuation)
    logger.info(
        "Pipeline needs approval at stage %d; resume at %d",
        continuation.resume_at_index - 1,
        continuation.resume_at_index,
    )
    return RunOutcome(
        status="needs_approval",
        output=[],
        requires_approval={**approval, "resumeToken": token},
    )


def resume_pipeline(
    payload: PipelineContinuation, ctx: RunContext, approved: bool
) -> RunOutcome:
    """Resume a halted pipeline with an external decision.

    A rejected decision executes nothing and reports "cancelled". An approved
    one runs the remaining stages with the buffered items as initial input;
    if they halt again, a fresh token for the remaining stages is issued.
    """
    if not approved:
        logger.info("Approval rejected; pipeline cancelled")
        return RunOutcome(status="cancelled", output=[])

    remaining = payload.remaining_stages()
    logger.debug("Resuming %d remaining stage(s)", len(remaining))
    return run_gated_pipeline(remaining, ctx, input=stream_of(payload.items))


# =============================================================================
# Interactive prompting
# =============================================================================


def is_interactive(stdin: Optional[TextIO]) -> bool:
    """True if stdin is attached to a terminal."""
    if stdin is None:
        return False
    isatty = getattr(stdin, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:
        # closed file
        return False


def should_emit(ctx: RunContext, force: bool = False) -> bool:
    """True when an approval must be emitted instead of asked for."""
    return force or ctx.mode == "tool" or not is_interactive(ctx.stdin)


def ask_approval(ctx: RunContext, prompt: str) -> bool:
    """Prompt on stdout and block for a line on stdin.

    Only "y" or "yes" (any case) counts as approval.
    """
    ctx.stdout.write(f"{prompt} [y/N] ")
    ctx.stdout.flush()
    answer = ctx.stdin.readline()
    return bool(_YES.match(answer.strip()))
