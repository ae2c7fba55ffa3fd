"""
models.py - Workflow file schema and per-run records.

Workflow files are untrusted input, so they are validated with pydantic:

    name: pr-review
    args:
      repo: {default: "owner/repo"}
    env: {GH_PAGER: ""}
    cwd: ./work
    steps:
      - id: fetch
        command: gh pr view ${pr} --repo ${repo} --json title
      - id: confirm
        command: |-
          echo '{"prompt": "Post comment?"}'
        approval: required
      - id: post
        command: gh pr comment ${pr} --body-file -
        stdin: $fetch.stdout
        when: $confirm.approved

Records produced while running (step results, persisted resume state) are
plain dataclasses with camelCase dict conversion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class _Unset:
    """Marker for a step whose stdout did not parse as JSON."""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


# =============================================================================
# Workflow file (pydantic)
# =============================================================================


class WorkflowStep(BaseModel):
    """One shell step of a workflow file."""

    model_config = ConfigDict(extra="allow")

    id: str
    command: str
    env: Optional[Dict[str, Any]] = None
    cwd: Optional[str] = None
    stdin: Any = None
    approval: Union[bool, str, None] = None
    condition: Any = None
    when: Any = None

    @property
    def gate(self) -> Any:
        """The step's condition; `when` wins over `condition`."""
        return self.when if self.when is not None else self.condition

    @property
    def requires_approval(self) -> bool:
        if self.approval is True:
            return True
        return isinstance(self.approval, str) and self.approval.lower() == "required"


class WorkflowFile(BaseModel):
    """A declarative sequence of shell steps."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    description: Optional[str] = None
    args: Optional[Dict[str, Any]] = None
    env: Optional[Dict[str, Any]] = None
    cwd: Optional[str] = None
    steps: List[WorkflowStep] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def check_steps(cls, data: Any) -> Any:
        """Reject malformed step lists with actionable messages."""
        if not isinstance(data, dict):
            raise ValueError("Workflow file must be a JSON/YAML object")
        steps = data.get("steps")
        if not isinstance(steps, list) or not steps:
            raise ValueError("Workflow file requires a non-empty steps array")

        seen = set()
        for step in steps:
            if not isinstance(step, dict):
                raise ValueError("Workflow step must be an object")
            step_id = step.get("id")
            if not step_id or not isinstance(step_id, str):
                raise ValueError("Workflow step requires an id")
            command = step.get("command")
            if not command or not isinstance(command, str):
                raise ValueError(f"Workflow step {step_id} requires a command string")
            if step_id in seen:
                raise ValueError(f"Duplicate workflow step id: {step_id}")
            seen.add(step_id)
        return data

    @field_validator("args")
    @classmethod
    def check_args(cls, v: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if v is None:
            return v
        for key, definition in v.items():
            if definition is not None and not isinstance(definition, dict):
                raise ValueError(f"Workflow arg '{key}' must be an object (e.g. {{default: ...}})")
        return v

    def arg_defaults(self) -> Dict[str, Any]:
        """Defaults declared under `args.<name>.default`."""
        defaults: Dict[str, Any] = {}
        for key, definition in (self.args or {}).items():
            if isinstance(definition, dict) and "default" in definition:
                defaults[key] = definition["default"]
        return defaults


# =============================================================================
# Run records (dataclasses)
# =============================================================================


@dataclass
class WorkflowStepResult:
    """Outcome of one step, referenced by later steps as `$<id>.<field>`.

    Attributes:
        id: Step id.
        stdout: Captured stdout (None if the step was skipped).
        json: Parsed stdout, or UNSET when stdout was empty or not JSON.
        approved: Approval decision for approval steps.
        skipped: True if the step's condition was false.
    """

    id: str
    stdout: Optional[str] = None
    json: Any = UNSET
    approved: Optional[bool] = None
    skipped: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id}
        if self.stdout is not None:
            data["stdout"] = self.stdout
        if self.json is not UNSET:
            data["json"] = self.json
        if self.approved is not None:
            data["approved"] = self.approved
        if self.skipped is not None:
            data["skipped"] = self.skipped
        return data

    @classmethod
    def from_dict(cls, step_id: str, data: Mapping[str, Any]) -> "WorkflowStepResult":
        approved = data.get("approved")
        skipped = data.get("skipped")
        stdout = data.get("stdout")
        return cls(
            id=str(data.get("id") or step_id),
            stdout=stdout if isinstance(stdout, str) else None,
            json=data["json"] if "json" in data else UNSET,
            approved=approved if isinstance(approved, bool) else None,
            skipped=skipped if isinstance(skipped, bool) else None,
        )


def results_to_dict(results: Mapping[str, WorkflowStepResult]) -> Dict[str, Dict[str, Any]]:
    return {key: result.to_dict() for key, result in results.items()}


def results_from_dict(data: Mapping[str, Any]) -> Dict[str, WorkflowStepResult]:
    """Rebuild step results; entries that are not objects are dropped."""
    return {
        key: WorkflowStepResult.from_dict(key, value)
        for key, value in data.items()
        if isinstance(value, Mapping)
    }


@dataclass
class WorkflowResumeState:
    """Everything needed to continue a halted workflow file.

    Persisted under a `workflow_resume_<uuid>` state key and referenced by
    an indirect `workflow-file` resume token.
    """

    file_path: str
    resume_at_index: int
    steps: Dict[str, WorkflowStepResult] = field(default_factory=dict)
    args: Dict[str, Any] = field(default_factory=dict)
    approval_step_id: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "filePath": self.file_path,
            "resumeAtIndex": self.resume_at_index,
            "steps": results_to_dict(self.steps),
            "args": dict(self.args),
            "createdAt": self.created_at,
        }
        if self.approval_step_id is not None:
            data["approvalStepId"] = self.approval_step_id
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "WorkflowResumeState":
        """Validate a stored resume state.

        Raises:
            ValueError: If a required field is missing or mistyped.
        """
        if not isinstance(data, Mapping):
            raise ValueError("Invalid workflow resume state")
        file_path = data.get("filePath")
        index = data.get("resumeAtIndex")
        steps = data.get("steps")
        args = data.get("args")
        approval_step_id = data.get("approvalStepId")
        if not isinstance(file_path, str) or not file_path:
            raise ValueError("Invalid workflow resume state: filePath")
        if not isinstance(index, int) or isinstance(index, bool) or index < 0:
            raise ValueError("Invalid workflow resume state: resumeAtIndex")
        if not isinstance(steps, Mapping):
            raise ValueError("Invalid workflow resume state: steps")
        if not isinstance(args, Mapping):
            raise ValueError("Invalid workflow resume state: args")
        return cls(
            file_path=file_path,
            resume_at_index=index,
            steps=results_from_dict(steps),
            args=dict(args),
            approval_step_id=approval_step_id if isinstance(approval_step_id, str) else None,
            created_at=str(data.get("createdAt") or ""),
        )
