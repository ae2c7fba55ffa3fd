"""
engine.py - Sequential executor for workflow files.

Steps run strictly in order through the configured shell. Each step:

1. Evaluates its condition; a false condition records {id, skipped: true}.
2. Resolves command, stdin, env and cwd templates against args and the
   results of earlier steps.
3. Runs; a non-zero exit aborts the whole run with StepExecutionError.
4. Records {id, stdout, json}.
5. If it is an approval step, either halts with a resume token (tool mode or
   non-interactive stdin) or prompts on the terminal.

A halted run persists its WorkflowResumeState under a fresh
`workflow_resume_<uuid>` key and hands out an indirect `workflow-file` token.
Resuming with a decision merges it into the approval step's result, so later
steps can branch on `$<id>.approved`.

Usage:
    from gatepipe.workflows.engine import run_workflow_file

    outcome = run_workflow_file(ctx, file_path="deploy.lobster", args={"env": "prod"})
    if outcome.status == "needs_approval":
        token = outcome.requires_approval["resumeToken"]
        outcome = run_workflow_file(ctx, resume=decode_token(token), approved=True)
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional

from gatepipe.config.runtime_config import get_approval_preview_chars
from gatepipe.runtime.approval import RunOutcome, ask_approval, should_emit
from gatepipe.runtime.errors import ApprovalRejectedError, GatepipeError, TokenProtocolError
from gatepipe.runtime.shell import run_shell_command
from gatepipe.runtime.storage import StateStore
from gatepipe.runtime.tokens import WorkflowFileToken, encode_token
from gatepipe.runtime.types import ApprovalRequest, RunContext, approval_request_to_dict

from .loader import load_workflow_file
from .models import (
    UNSET,
    WorkflowFile,
    WorkflowResumeState,
    WorkflowStep,
    WorkflowStepResult,
    results_from_dict,
)
from .templating import evaluate_condition, merge_env, resolve_cwd, resolve_stdin, resolve_template

logger = logging.getLogger(__name__)

RESUME_KEY_PREFIX = "workflow_resume_"


def resolve_workflow_args(
    workflow: WorkflowFile, provided: Optional[Mapping[str, Any]] = None
) -> Dict[str, Any]:
    """Declared defaults overridden by provided values."""
    resolved = workflow.arg_defaults()
    resolved.update(provided or {})
    return resolved


def parse_step_json(stdout: str) -> Any:
    """Best-effort parse of trimmed stdout; UNSET when empty or not JSON."""
    trimmed = stdout.strip()
    if not trimmed:
        return UNSET
    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        return UNSET


def extract_approval_request(step: WorkflowStep, result: WorkflowStepResult) -> ApprovalRequest:
    """Build the approval request for an approval step.

    Precedence: `requiresApproval.prompt` in the step's JSON, then a top-level
    `prompt`, then a generic prompt previewing the step's stdout.
    """
    data = result.json
    if isinstance(data, dict):
        nested = data.get("requiresApproval")
        for candidate in (nested, data):
            if isinstance(candidate, dict) and candidate.get("prompt"):
                items = candidate.get("items")
                return ApprovalRequest(
                    prompt=str(candidate["prompt"]),
                    items=list(items) if isinstance(items, list) else [],
                    preview=candidate.get("preview") or None,
                )

    preview = None
    if result.stdout:
        preview = result.stdout.strip()[: get_approval_preview_chars()] or None
    return ApprovalRequest(prompt=f"Approve {step.id}?", items=[], preview=preview)


def output_items(result: Optional[WorkflowStepResult]) -> List[Any]:
    """Turn the last executed step's result into output items."""
    if result is None:
        return []
    if result.json is not UNSET:
        return list(result.json) if isinstance(result.json, list) else [result.json]
    if result.stdout:
        return [result.stdout]
    return []


# =============================================================================
# Resume state persistence
# =============================================================================


def save_resume_state(store: StateStore, state: WorkflowResumeState) -> str:
    """Persist resume state under a fresh key and return the key."""
    key = f"{RESUME_KEY_PREFIX}{uuid.uuid4()}"
    store.write(key, state.to_dict())
    logger.info("Saved workflow resume state %s (resume at step %d)", key, state.resume_at_index)
    return key


def load_resume_state(store: StateStore, state_key: str) -> WorkflowResumeState:
    """Load persisted resume state.

    Raises:
        TokenProtocolError: If the key is missing, unreadable or invalid.
    """
    try:
        stored = store.read(state_key)
    except (json.JSONDecodeError, GatepipeError) as e:
        raise TokenProtocolError(f"Workflow resume state not found: {e}") from e
    if not isinstance(stored, dict):
        raise TokenProtocolError("Workflow resume state not found")
    try:
        return WorkflowResumeState.from_dict(stored)
    except ValueError as e:
        raise TokenProtocolError(str(e)) from e


def resume_state_from_token(token: WorkflowFileToken, store: StateStore) -> WorkflowResumeState:
    """Resolve a workflow-file token (indirect or inline) into resume state."""
    if token.is_indirect:
        return load_resume_state(store, token.state_key)  # type: ignore[arg-type]
    return WorkflowResumeState(
        file_path=token.file_path or "",
        resume_at_index=token.resume_at_index or 0,
        steps=results_from_dict(token.steps or {}),
        args=dict(token.args or {}),
        approval_step_id=token.approval_step_id,
    )


# =============================================================================
# Execution
# =============================================================================


def run_workflow_file(
    ctx: RunContext,
    file_path: Optional[str] = None,
    args: Optional[Mapping[str, Any]] = None,
    resume: Optional[WorkflowFileToken] = None,
    approved: Optional[bool] = None,
) -> RunOutcome:
    """Run (or resume) a workflow file.

    Args:
        ctx: Run context (env, stdio, mode).
        file_path: Workflow file; taken from the resume state when omitted.
        args: Arg values; falls back to the resume state's args.
        resume: Decoded workflow-file token to continue from.
        approved: Decision for the halted approval step, if any.

    Returns:
        RunOutcome with status "ok" or "needs_approval".

    Raises:
        ParseError: Invalid workflow file, condition or step reference.
        StepExecutionError: A step exited non-zero.
        ApprovalRejectedError: An interactive approval was declined.
        TokenProtocolError: The resume state cannot be found.
    """
    store = StateStore.from_env(ctx.env)
    state = resume_state_from_token(resume, store) if resume is not None else None

    resolved_path = file_path or (state.file_path if state else None)
    if not resolved_path:
        raise GatepipeError("Workflow file path required")

    workflow = load_workflow_file(resolved_path)
    resolved_args = resolve_workflow_args(
        workflow, args if args is not None else (state.args if state else None)
    )
    results: Dict[str, WorkflowStepResult] = copy.deepcopy(state.steps) if state else {}
    start_index = state.resume_at_index if state else 0

    if state and state.approval_step_id and isinstance(approved, bool):
        previous = results.get(state.approval_step_id) or WorkflowStepResult(id=state.approval_step_id)
        previous.approved = approved
        results[state.approval_step_id] = previous
        logger.debug("Merged decision approved=%s into step %s", approved, state.approval_step_id)

    last_step_id: Optional[str] = None

    for index in range(start_index, len(workflow.steps)):
        step = workflow.steps[index]

        if not evaluate_condition(step.gate, results):
            logger.debug("Step %s skipped (condition false)", step.id)
            results[step.id] = WorkflowStepResult(id=step.id, skipped=True)
            continue

        command = resolve_template(step.command, resolved_args, results)
        stdin = resolve_stdin(step.stdin, resolved_args, results)
        env = merge_env(ctx.env, workflow.env, step.env, resolved_args, results)
        cwd = resolve_cwd(step.cwd or workflow.cwd, resolved_args)

        logger.debug("Step %d (%s): %s", index, step.id, command)
        process = run_shell_command(command, stdin=stdin, env=env, cwd=cwd, step_id=step.id)

        result = WorkflowStepResult(
            id=step.id, stdout=process.stdout, json=parse_step_json(process.stdout)
        )
        results[step.id] = result
        last_step_id = step.id

        if not step.requires_approval:
            continue

        request = extract_approval_request(step, result)

        if should_emit(ctx):
            state_key = save_resume_state(
                store,
                WorkflowResumeState(
                    file_path=str(resolved_path),
                    resume_at_index=index + 1,
                    steps=results,
                    args=resolved_args,
                    approval_step_id=step.id,
                ),
            )
            token = encode_token(WorkflowFileToken(state_key=state_key))
            return RunOutcome(
                status="needs_approval",
                output=[],
                requires_approval={**approval_request_to_dict(request), "resumeToken": token},
            )

        if not ask_approval(ctx, request.prompt):
            raise ApprovalRejectedError(request.prompt)
        result.approved = True

    output = output_items(results.get(last_step_id) if last_step_id else None)
    return RunOutcome(status="ok", output=output)
