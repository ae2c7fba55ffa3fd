# gatepipe/runtime package
# Pipeline parsing and execution, approval gating and resume tokens.
#
# Core components:
#   - parser: pipeline text -> Stage list (and back)
#   - pipeline: stream executor over registered commands
#   - approval: approval halts, continuation tokens, resume
#   - tokens: versioned resume token codec
#   - storage: keyed JSON state store with change detection
#
# Usage:
#     from gatepipe.runtime import parse_pipeline, run_gated_pipeline, RunContext
#     outcome = run_gated_pipeline(parse_pipeline("exec --json 'echo [1]'"), ctx)

from .approval import RunOutcome, resume_pipeline, run_gated_pipeline, run_outcome_to_dict
from .errors import (
    ApprovalRejectedError,
    CommandError,
    GatepipeError,
    ParseError,
    StateKeyError,
    StepExecutionError,
    TokenProtocolError,
    UnknownCommandError,
)
from .parser import parse_pipeline, render_pipeline
from .pipeline import run_pipeline
from .storage import StateStore
from .tokens import PipelineContinuation, WorkflowFileToken, decode_token, encode_token
from .types import PipelineResult, RunContext, Stage

__all__ = [
    # Types
    "Stage",
    "PipelineResult",
    "RunContext",
    "RunOutcome",
    # Parsing / execution
    "parse_pipeline",
    "render_pipeline",
    "run_pipeline",
    "run_gated_pipeline",
    "resume_pipeline",
    "run_outcome_to_dict",
    # Tokens
    "PipelineContinuation",
    "WorkflowFileToken",
    "encode_token",
    "decode_token",
    # Storage
    "StateStore",
    # Errors
    "GatepipeError",
    "ParseError",
    "UnknownCommandError",
    "CommandError",
    "StepExecutionError",
    "ApprovalRejectedError",
    "TokenProtocolError",
    "StateKeyError",
]
