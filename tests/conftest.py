"""
Test fixtures for gatepipe.

Provides an isolated state directory, a default command registry, run
contexts bound to in-memory stdio, and a helper that turns small Python
snippets into shell commands for workflow and exec tests.
"""

import io
import os
import shlex
import sys
import textwrap
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

# Ensure gatepipe is importable without installation
_REPO_ROOT = Path(__file__).resolve().parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from gatepipe.commands.registry import CommandRegistry, create_default_registry
from gatepipe.config.runtime_config import STATE_DIR_ENV, reset_config
from gatepipe.runtime.types import RunContext


class TtyInput(io.StringIO):
    """In-memory stdin that claims to be a terminal."""

    def isatty(self) -> bool:
        return True


# ============================================================================
# Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_config():
    """Reset cached runtime config around every test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def state_dir(tmp_path: Path, monkeypatch) -> Path:
    """Point the state store at a fresh temporary directory."""
    path = tmp_path / "state"
    monkeypatch.setenv(STATE_DIR_ENV, str(path))
    return path


@pytest.fixture
def run_env(state_dir: Path) -> Dict[str, str]:
    """Process environment with the isolated state directory."""
    env = dict(os.environ)
    env[STATE_DIR_ENV] = str(state_dir)
    return env


# ============================================================================
# Registry and contexts
# ============================================================================


@pytest.fixture
def registry() -> CommandRegistry:
    return create_default_registry()


@pytest.fixture
def make_ctx(registry: CommandRegistry, run_env: Dict[str, str]) -> Callable[..., RunContext]:
    """Factory for run contexts with in-memory stdio (tool mode by default)."""

    def _make(mode: str = "tool", stdin: Optional[io.StringIO] = None, reg: Optional[CommandRegistry] = None) -> RunContext:
        return RunContext(
            registry=reg or registry,
            env=dict(run_env),
            stdin=stdin if stdin is not None else io.StringIO(""),
            stdout=io.StringIO(),
            stderr=io.StringIO(),
            mode=mode,  # type: ignore[arg-type]
        )

    return _make


@pytest.fixture
def ctx(make_ctx) -> RunContext:
    return make_ctx()


@pytest.fixture
def tty_stdin() -> Callable[[str], io.StringIO]:
    """Factory for stdin handles that report isatty() == True."""
    return TtyInput


# ============================================================================
# Subprocess helpers
# ============================================================================


@pytest.fixture
def py_command(tmp_path: Path) -> Callable[[str, str], str]:
    """Write a Python snippet to a script and return a shell command running it."""
    scripts = tmp_path / "scripts"
    scripts.mkdir(exist_ok=True)

    def _make(name: str, code: str) -> str:
        script = scripts / f"{name}.py"
        script.write_text(textwrap.dedent(code).lstrip(), encoding="utf-8")
        return f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"

    return _make

