"""
tokens.py - Resume token codec.

A resume token is an opaque, transport-safe string describing exactly how to
continue a halted run. Internally it is a tagged union keyed by `kind` and
gated by two version fields:

    {
      "protocolVersion": 1,
      "version": 1,
      "kind": "pipeline-continuation",
      "pipeline": [<stage>, ...],
      "resumeAtIndex": 2,
      "items": [...],
      "prompt": "Send these?"
    }

    {"protocolVersion": 1, "version": 1, "kind": "workflow-file", "stateKey": "workflow_resume_..."}
    {"protocolVersion": 1, "version": 1, "kind": "workflow-file",
     "filePath": "...", "resumeAtIndex": 3, "steps": {...}, "args": {...}, "approvalStepId": "..."}

Encoding is base64url (no padding) of canonical JSON (sorted keys, compact
separators), so identical payloads always encode to identical strings.

Decoding fails closed: the versions must match exactly, and the `kind` tag is
checked before any variant-specific field is read.

Usage:
    from gatepipe.runtime.tokens import encode_token, decode_token, PipelineContinuation

    token = encode_token(PipelineContinuation(pipeline=stages, resume_at_index=2, items=[], prompt="ok?"))
    payload = decode_token(token)
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import TokenProtocolError
from .storage import canonical_json
from .types import Stage, stage_from_dict, stage_to_dict

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = 1
TOKEN_VERSION = 1

KIND_PIPELINE = "pipeline-continuation"
KIND_WORKFLOW = "workflow-file"


@dataclass
class PipelineContinuation:
    """Continuation of a pipeline halted for approval.

    Attributes:
        pipeline: Stages of the pipeline that halted.
        resume_at_index: First stage to run on resume (halted index + 1).
        items: The halted stage's buffered input, fed back in on resume.
        prompt: Approval prompt shown to the approver.
    """

    pipeline: List[Stage]
    resume_at_index: int
    items: List[Any] = field(default_factory=list)
    prompt: str = ""

    kind = KIND_PIPELINE

    def remaining_stages(self) -> List[Stage]:
        """Stages that have not run yet."""
        return list(self.pipeline[self.resume_at_index :])


@dataclass
class WorkflowFileToken:
    """Continuation of a workflow file halted for approval.

    Either indirect (only `state_key`, pointing at a persisted
    WorkflowResumeState) or inline (every field except `state_key`).
    """

    state_key: Optional[str] = None
    file_path: Optional[str] = None
    resume_at_index: Optional[int] = None
    steps: Optional[Dict[str, Dict[str, Any]]] = None
    args: Optional[Dict[str, Any]] = None
    approval_step_id: Optional[str] = None

    kind = KIND_WORKFLOW

    @property
    def is_indirect(self) -> bool:
        return bool(self.state_key)


ResumePayload = Union[PipelineContinuation, WorkflowFileToken]


# =============================================================================
# Dict conversion
# =============================================================================


def payload_to_dict(payload: ResumePayload) -> Dict[str, Any]:
    """Convert a payload to its tagged wire form."""
    data: Dict[str, Any] = {
        "protocolVersion": PROTOCOL_VERSION,
        "version": TOKEN_VERSION,
        "kind": payload.kind,
    }

    if isinstance(payload, PipelineContinuation):
        data["pipeline"] = [stage_to_dict(s) for s in payload.pipeline]
        data["resumeAtIndex"] = payload.resume_at_index
        data["items"] = list(payload.items)
        data["prompt"] = payload.prompt
        return data

    if payload.is_indirect:
        data["stateKey"] = payload.state_key
        return data

    data["filePath"] = payload.file_path
    data["resumeAtIndex"] = payload.resume_at_index
    data["steps"] = payload.steps or {}
    data["args"] = payload.args or {}
    if payload.approval_step_id is not None:
        data["approvalStepId"] = payload.approval_step_id
    return data


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _pipeline_from_dict(data: Mapping[str, Any]) -> PipelineContinuation:
    pipeline = data.get("pipeline")
    if not isinstance(pipeline, list):
        raise TokenProtocolError("Invalid token: pipeline must be a list")
    try:
        stages = [stage_from_dict(s) for s in pipeline if isinstance(s, Mapping)]
    except ValueError as e:
        raise TokenProtocolError(f"Invalid token: {e}") from e
    if len(stages) != len(pipeline):
        raise TokenProtocolError("Invalid token: pipeline stages must be objects")

    index = data.get("resumeAtIndex")
    if not _is_int(index) or index < 0 or index > len(stages):
        raise TokenProtocolError("Invalid token: resumeAtIndex out of range")

    items = data.get("items")
    if not isinstance(items, list):
        raise TokenProtocolError("Invalid token: items must be a list")

    prompt = data.get("prompt", "")
    if not isinstance(prompt, str):
        raise TokenProtocolError("Invalid token: prompt must be a string")

    return PipelineContinuation(pipeline=stages, resume_at_index=index, items=items, prompt=prompt)


def _workflow_from_dict(data: Mapping[str, Any]) -> WorkflowFileToken:
    state_key = data.get("stateKey")
    if isinstance(state_key, str) and state_key:
        return WorkflowFileToken(state_key=state_key)

    file_path = data.get("filePath")
    if not isinstance(file_path, str) or not file_path:
        raise TokenProtocolError("Invalid workflow token: filePath required")
    index = data.get("resumeAtIndex")
    if not _is_int(index) or index < 0:
        raise TokenProtocolError("Invalid workflow token: resumeAtIndex required")
    steps = data.get("steps")
    if not isinstance(steps, dict):
        raise TokenProtocolError("Invalid workflow token: steps must be an object")
    args = data.get("args")
    if not isinstance(args, dict):
        raise TokenProtocolError("Invalid workflow token: args must be an object")
    approval_step_id = data.get("approvalStepId")
    if approval_step_id is not None and not isinstance(approval_step_id, str):
        raise TokenProtocolError("Invalid workflow token: approvalStepId must be a string")

    return WorkflowFileToken(
        file_path=file_path,
        resume_at_index=index,
        steps=steps,
        args=args,
        approval_step_id=approval_step_id,
    )


def payload_from_dict(data: Any) -> ResumePayload:
    """Validate a decoded token body and build the matching payload.

    Raises:
        TokenProtocolError: On version mismatch, unknown kind or bad fields.
    """
    if not isinstance(data, dict):
        raise TokenProtocolError("Invalid token: payload must be an object")

    protocol = data.get("protocolVersion")
    if not _is_int(protocol) or protocol != PROTOCOL_VERSION:
        raise TokenProtocolError(f"Unsupported protocol version: {protocol!r}")
    version = data.get("version")
    if not _is_int(version) or version != TOKEN_VERSION:
        raise TokenProtocolError(f"Unsupported token version: {version!r}")

    kind = data.get("kind")
    if kind == KIND_PIPELINE:
        return _pipeline_from_dict(data)
    if kind == KIND_WORKFLOW:
        return _workflow_from_dict(data)
    raise TokenProtocolError(f"Unknown token kind: {kind!r}")


# =============================================================================
# String codec
# =============================================================================


def encode_token(payload: ResumePayload) -> str:
    """Encode a payload as an opaque base64url string."""
    body = canonical_json(payload_to_dict(payload)).encode("utf-8")
    token = base64.urlsafe_b64encode(body).decode("ascii").rstrip("=")
    logger.debug("Encoded %s token (%d bytes)", payload.kind, len(token))
    return token


def decode_token(token: str) -> ResumePayload:
    """Decode and validate a resume token.

    Raises:
        TokenProtocolError: If the token is malformed or fails validation.
    """
    if not isinstance(token, str) or not token.strip():
        raise TokenProtocolError("Invalid token: empty")

    text = token.strip()
    padded = text + "=" * (-len(text) % 4)
    try:
        body = base64.urlsafe_b64decode(padded.encode("ascii"))
        data = json.loads(body.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise TokenProtocolError(f"Invalid token: {e}") from e

    return payload_from_dict(data)
