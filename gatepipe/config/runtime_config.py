"""Runtime configuration for pipelines and workflows.

Provides centralized settings for the state directory, the shell used for
workflow steps, approval previews and logging. Environment variables take
precedence over YAML config.

Usage:
    from gatepipe.config.runtime_config import get_state_dir, get_shell_argv

    state_dir = get_state_dir(os.environ)   # Path
    argv = get_shell_argv() + ["echo hi"]   # ["/bin/sh", "-lc", "echo hi"]

Environment variables:
    GATEPIPE_STATE_DIR   Directory for persisted state (read from the run env)
    GATEPIPE_LOG_LEVEL   Default log level for the CLI
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "runtime.yaml"
_cached_config: Optional[Dict[str, Any]] = None

STATE_DIR_ENV = "GATEPIPE_STATE_DIR"
LOG_LEVEL_ENV = "GATEPIPE_LOG_LEVEL"

DEFAULT_SHELL_ARGV = ["/bin/sh", "-lc"]
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _load_config() -> Dict[str, Any]:
    """Load runtime.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH, encoding="utf-8") as f:
            _cached_config = yaml.safe_load(f) or {}
    else:
        _cached_config = _default_config()

    return _cached_config


def _default_config() -> Dict[str, Any]:
    """Return default configuration if runtime.yaml doesn't exist."""
    return {
        "version": "1.0",
        "state": {"dir": None},
        "shell": {"argv": list(DEFAULT_SHELL_ARGV)},
        "approval": {
            "preview_chars": 2000,
            "preview_limit": 5,
        },
        "errors": {"output_tail_chars": 2000},
        "logging": {"level": "WARNING"},
    }


def reset_config() -> None:
    """Reset cached config (for testing)."""
    global _cached_config
    _cached_config = None


def _section(name: str) -> Dict[str, Any]:
    value = _load_config().get(name)
    if isinstance(value, dict):
        return value
    return _default_config()[name]


def _positive_int(section: str, key: str) -> int:
    default = _default_config()[section][key]
    value = _section(section).get(key, default)
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        logger.warning(
            "Invalid %s.%s value %r in config; using %d.", section, key, value, default
        )
        return default
    return value


def get_state_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """Get the directory used by the state store.

    Precedence (highest to lowest):
    1. GATEPIPE_STATE_DIR in `env` (falls back to os.environ when env is None)
    2. Config file `state.dir`
    3. Default: ~/.gatepipe/state
    """
    source = os.environ if env is None else env
    override = (source.get(STATE_DIR_ENV) or "").strip()
    if override:
        return Path(override).expanduser()

    configured = _section("state").get("dir")
    if configured:
        return Path(str(configured)).expanduser()

    return Path.home() / ".gatepipe" / "state"


def get_shell_argv() -> List[str]:
    """Get the argv prefix used to run a command line through a shell."""
    argv = _section("shell").get("argv")
    if isinstance(argv, list) and argv and all(isinstance(a, str) for a in argv):
        return list(argv)
    logger.warning("Invalid shell.argv %r in config; using %s.", argv, DEFAULT_SHELL_ARGV)
    return list(DEFAULT_SHELL_ARGV)


def get_approval_preview_chars() -> int:
    """Max characters of step stdout used as a fallback approval preview."""
    return _positive_int("approval", "preview_chars")


def get_approval_preview_limit() -> int:
    """Default number of items `approve --preview-from-stdin` shows."""
    return _positive_int("approval", "preview_limit")


def get_output_tail_chars() -> int:
    """Trailing characters of stderr/stdout kept in execution errors."""
    return _positive_int("errors", "output_tail_chars")


def get_log_level() -> str:
    """Get the default log level name.

    Precedence: GATEPIPE_LOG_LEVEL > config `logging.level` > WARNING.
    """
    value = os.environ.get(LOG_LEVEL_ENV) or _section("logging").get("level") or "WARNING"
    level = str(value).upper()
    if level not in VALID_LOG_LEVELS:
        logger.warning(
            "Invalid log level '%s' (valid: %s). Falling back to WARNING.",
            value,
            ", ".join(VALID_LOG_LEVELS),
        )
        return "WARNING"
    return level
