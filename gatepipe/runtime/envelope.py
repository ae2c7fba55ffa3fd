"""
envelope.py - Tool-mode output envelope.

In tool mode every invocation prints exactly one JSON document:

    {"protocolVersion": 1, "ok": true, "status": "ok", "output": [...], "requiresApproval": null}
    {"protocolVersion": 1, "ok": true, "status": "needs_approval", "output": [],
     "requiresApproval": {"type": "approval_request", "prompt": "...", "items": [...], "resumeToken": "..."}}
    {"protocolVersion": 1, "ok": false, "error": {"type": "parse_error", "message": "..."}}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .approval import RunOutcome
from .errors import GatepipeError
from .render import dumps_pretty
from .tokens import PROTOCOL_VERSION


class ToolError(BaseModel):
    """Error payload; GatepipeError subclasses may add context fields."""

    model_config = ConfigDict(extra="allow")

    type: str
    message: str


class ToolEnvelope(BaseModel):
    """Single JSON document written to stdout in tool mode."""

    model_config = ConfigDict(populate_by_name=True)

    protocol_version: int = Field(default=PROTOCOL_VERSION, alias="protocolVersion")
    ok: bool
    status: Optional[str] = None
    output: Optional[List[Any]] = None
    requires_approval: Optional[Dict[str, Any]] = Field(default=None, alias="requiresApproval")
    error: Optional[ToolError] = None

    @classmethod
    def from_outcome(cls, outcome: RunOutcome) -> "ToolEnvelope":
        return cls(
            protocol_version=PROTOCOL_VERSION,
            ok=True,
            status=outcome.status,
            output=list(outcome.output),
            requires_approval=outcome.requires_approval,
        )

    @classmethod
    def from_error(cls, error: BaseException, error_type: Optional[str] = None) -> "ToolEnvelope":
        """Wrap an exception; non-runtime errors report as runtime_error."""
        if isinstance(error, GatepipeError):
            payload = error.to_dict()
        else:
            payload = {"type": "runtime_error", "message": str(error) or type(error).__name__}
        if error_type:
            payload["type"] = error_type
        return cls(protocol_version=PROTOCOL_VERSION, ok=False, error=ToolError(**payload))

    def to_dict(self) -> Dict[str, Any]:
        """Wire form: camelCase keys, fields that were never set omitted."""
        return self.model_dump(by_alias=True, exclude_unset=True)

    def to_json(self) -> str:
        return dumps_pretty(self.to_dict())
