"""
shell.py - Subprocess execution for exec stages and workflow steps.

Commands run to completion with stdout/stderr captured as text. There is no
timeout: a hung child blocks the run until the host process is killed.

Usage:
    from gatepipe.runtime.shell import run_process, run_shell_command

    result = run_shell_command("echo hi", env=dict(os.environ))
    result.stdout  # "hi\n"
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from gatepipe.config.runtime_config import get_output_tail_chars, get_shell_argv

from .errors import CommandError, StepExecutionError

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Captured output of a finished subprocess."""

    stdout: str
    stderr: str
    exit_code: int


def _clean_env(env: Optional[Mapping[str, Optional[str]]]) -> Optional[dict]:
    if env is None:
        return None
    return {str(k): str(v) for k, v in env.items() if v is not None}


def run_process(
    argv: Sequence[str],
    stdin: Optional[str] = None,
    env: Optional[Mapping[str, Optional[str]]] = None,
    cwd: Optional[str] = None,
    display: Optional[str] = None,
    step_id: Optional[str] = None,
) -> ProcessResult:
    """Run argv, feed it stdin, and wait for it to exit.

    Args:
        argv: Program and arguments.
        stdin: Text written to the child's stdin (stdin is closed either way).
        env: Full environment for the child.
        cwd: Working directory (None for the current one).
        display: Command text used in error messages (defaults to argv joined).
        step_id: Workflow step id, included in errors when set.

    Returns:
        ProcessResult on exit status 0.

    Raises:
        StepExecutionError: On a non-zero exit status.
        CommandError: If the program cannot be started.
    """
    argv = [str(a) for a in argv]
    shown = display or " ".join(argv)
    logger.debug("Running %s (cwd=%s, stdin=%s)", shown, cwd, stdin is not None)

    try:
        process = subprocess.Popen(
            argv,
            cwd=cwd,
            env=_clean_env(env),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
        )
    except FileNotFoundError as e:
        if cwd is not None and e.filename is not None and str(e.filename) == str(cwd):
            raise CommandError(argv[0], f"working directory not found: {cwd}") from e
        raise CommandError(argv[0], f"{argv[0]} not found on PATH: {e}") from e
    except OSError as e:
        raise CommandError(argv[0], f"failed to start {shown}: {e}") from e

    stdout_data, stderr_data = process.communicate(input=stdin if stdin is not None else "")
    result = ProcessResult(
        stdout=stdout_data or "",
        stderr=stderr_data or "",
        exit_code=process.returncode,
    )

    if result.exit_code != 0:
        logger.debug("Command exited with %d: %s", result.exit_code, shown)
        raise StepExecutionError(
            command=shown,
            exit_code=result.exit_code,
            stderr=result.stderr,
            stdout=result.stdout,
            step_id=step_id,
            tail_chars=get_output_tail_chars(),
        )
    return result


def shell_argv(command: str) -> List[str]:
    """Build the argv that runs a command line through the configured shell."""
    return get_shell_argv() + [command]


def run_shell_command(
    command: str,
    stdin: Optional[str] = None,
    env: Optional[Mapping[str, Optional[str]]] = None,
    cwd: Optional[str] = None,
    step_id: Optional[str] = None,
) -> ProcessResult:
    """Run a command line through the shell. See run_process()."""
    return run_process(
        shell_argv(command),
        stdin=stdin,
        env=env,
        cwd=cwd,
        display=command,
        step_id=step_id,
    )
