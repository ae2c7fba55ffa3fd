"""
templating.py - Variable substitution and conditions for workflow steps.

Two reference forms are substituted in step strings:

    ${name}             workflow arg (left as-is when the arg is undefined)
    $<id>.stdout        prior step stdout ("" when absent)
    $<id>.json          prior step parsed JSON, re-serialized ("" when absent)
    $<id>.approved      "true" / "false"

References to steps that have not produced a result are left literally.

Conditions (`when` / `condition`) accept None, booleans, "true", "false",
`$<id>.approved` and `$<id>.skipped`. Anything else is a ParseError.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Mapping, Optional

from gatepipe.runtime.errors import ParseError

from .models import UNSET, WorkflowStepResult

ARG_REF = re.compile(r"\$\{([A-Za-z0-9_-]+)\}")
STEP_REF = re.compile(r"\$([A-Za-z0-9_-]+)\.(stdout|json|approved)")
STDIN_REF = re.compile(r"^\$([A-Za-z0-9_-]+)\.(stdout|json)$")
CONDITION_REF = re.compile(r"^\$([A-Za-z0-9_-]+)\.(approved|skipped)$")

Results = Mapping[str, WorkflowStepResult]


def arg_to_string(value: Any) -> str:
    """String form of an arg value as it appears in a command line."""
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"))


def _json_text(result: WorkflowStepResult) -> str:
    return "" if result.json is UNSET else json.dumps(result.json, separators=(",", ":"))


def resolve_args_template(text: str, args: Mapping[str, Any]) -> str:
    def _sub(match: "re.Match[str]") -> str:
        key = match.group(1)
        return arg_to_string(args[key]) if key in args else match.group(0)

    return ARG_REF.sub(_sub, text)


def resolve_step_refs(text: str, results: Results) -> str:
    def _sub(match: "re.Match[str]") -> str:
        step_id, ref_field = match.groups()
        result = results.get(step_id)
        if result is None:
            return match.group(0)
        if ref_field == "stdout":
            return result.stdout or ""
        if ref_field == "json":
            return _json_text(result)
        return "true" if result.approved is True else "false"

    return STEP_REF.sub(_sub, text)


def resolve_template(text: str, args: Mapping[str, Any], results: Results) -> str:
    """Substitute args first, then step references."""
    return resolve_step_refs(resolve_args_template(text, args), results)


def resolve_stdin(value: Any, args: Mapping[str, Any], results: Results) -> Optional[str]:
    """Compute the text fed to a step's stdin.

    A string that is exactly `$<id>.stdout` or `$<id>.json` must name a step
    that already ran. Other strings are templated; other values are sent as
    JSON.

    Raises:
        ParseError: For an exact reference to an unknown step.
    """
    if value is None:
        return None
    if isinstance(value, str):
        match = STDIN_REF.match(value.strip())
        if match:
            step_id, ref_field = match.groups()
            result = results.get(step_id)
            if result is None:
                raise ParseError(f"Unknown step reference: {step_id}.{ref_field}")
            return (result.stdout or "") if ref_field == "stdout" else _json_text(result)
        return resolve_template(value, args, results)
    return json.dumps(value)


def merge_env(
    base: Mapping[str, str],
    workflow_env: Optional[Mapping[str, Any]],
    step_env: Optional[Mapping[str, Any]],
    args: Mapping[str, Any],
    results: Results,
) -> Dict[str, str]:
    """Layer workflow env then step env over the base env (string values only)."""
    env = dict(base)
    for source in (workflow_env, step_env):
        for key, value in (source or {}).items():
            if isinstance(value, str):
                env[key] = resolve_template(value, args, results)
    return env


def resolve_cwd(cwd: Optional[str], args: Mapping[str, Any]) -> Optional[str]:
    """Working directory with `${arg}` substitution (step refs are not allowed)."""
    if not cwd:
        return None
    return resolve_args_template(cwd, args)


def evaluate_condition(condition: Any, results: Results) -> bool:
    """Decide whether a step runs.

    Raises:
        ParseError: For an unsupported condition type or expression.
    """
    if condition is None:
        return True
    if isinstance(condition, bool):
        return condition
    if not isinstance(condition, str):
        raise ParseError(f"Unsupported condition type: {type(condition).__name__}")

    trimmed = condition.strip()
    if trimmed == "true":
        return True
    if trimmed == "false":
        return False

    match = CONDITION_REF.match(trimmed)
    if not match:
        raise ParseError(f"Unsupported condition: {condition}")

    result = results.get(match.group(1))
    if result is None:
        return False
    if match.group(2) == "approved":
        return result.approved is True
    return result.skipped is True
