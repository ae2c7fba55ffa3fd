"""
errors.py - Error taxonomy for pipelines, workflows and resume tokens.

Every failure surfaced by the runtime is a GatepipeError subclass. Errors
carry enough structured context (command, exit code, trailing output) to
diagnose a failure without re-running, and serialize to the `{type, message}`
shape used by the tool-mode envelope.

Usage:
    from gatepipe.runtime.errors import (
        GatepipeError,
        ParseError,
        UnknownCommandError,
        CommandError,
        StepExecutionError,
        ApprovalRejectedError,
        TokenProtocolError,
        StateKeyError,
    )
"""

from __future__ import annotations

from typing import Any, Dict, Optional

# Default number of trailing characters of stderr/stdout kept in messages
DEFAULT_OUTPUT_TAIL_CHARS = 2000


class GatepipeError(Exception):
    """Base class for all runtime errors."""

    error_type = "runtime_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {"type": self.error_type, "message": self.message}


class ParseError(GatepipeError):
    """Malformed pipeline text or workflow file.

    Always reported before any execution begins.
    """

    error_type = "parse_error"

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.source:
            data["source"] = self.source
        return data


class UnknownCommandError(GatepipeError):
    """A pipeline stage names a command missing from the registry."""

    error_type = "unknown_command"

    def __init__(self, name: str):
        super().__init__(f"Unknown command: {name}")
        self.name = name


class CommandError(GatepipeError):
    """A stage rejected its arguments or input."""

    error_type = "command_error"

    def __init__(self, command: str, message: str):
        super().__init__(message)
        self.command = command


def _tail(text: str, limit: int) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return "..." + text[-limit:]


class StepExecutionError(GatepipeError):
    """A subprocess exited with a non-zero status.

    Fatal to the whole run: there is no continuation and no retry. The message
    includes the command, the exit status and the trailing stderr (or stdout
    when stderr is empty).
    """

    error_type = "step_execution_error"

    def __init__(
        self,
        command: str,
        exit_code: int,
        stderr: str = "",
        stdout: str = "",
        step_id: Optional[str] = None,
        tail_chars: int = DEFAULT_OUTPUT_TAIL_CHARS,
    ):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout
        self.step_id = step_id
        detail = _tail(stderr, tail_chars) or _tail(stdout, tail_chars) or command
        prefix = f"step {step_id} failed" if step_id else "command failed"
        super().__init__(f"{prefix} ({exit_code}): {detail}\n  command: {command}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["command"] = self.command
        data["exitCode"] = self.exit_code
        if self.step_id:
            data["stepId"] = self.step_id
        return data


class ApprovalRejectedError(GatepipeError):
    """An interactive approval prompt was answered with anything but yes."""

    error_type = "not_approved"

    def __init__(self, prompt: Optional[str] = None):
        super().__init__("Not approved")
        self.prompt = prompt


class TokenProtocolError(GatepipeError):
    """A resume token (or the state it references) is unusable.

    Raised for version mismatches, malformed payloads, unknown `kind` tags and
    missing resume-state keys. Never recovered from.
    """

    error_type = "token_error"


class StateKeyError(GatepipeError):
    """A state key slugifies to an empty string."""

    error_type = "state_key_error"

    def __init__(self, key: Any):
        super().__init__(f"state key is empty/invalid: {key!r}")
        self.key = key
