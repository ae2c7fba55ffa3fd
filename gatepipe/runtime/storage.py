"""
storage.py - Keyed JSON document store with change detection.

Each key maps to one JSON file in the state directory:

    <state_dir>/
      <slug>.json        # one JSON value per key, pretty-printed

Keys are slugified (lowercased, runs of characters outside [a-z0-9._-]
collapsed to a single "_", leading/trailing "_" trimmed). A key whose slug is
empty is rejected.

The store makes no locking or transactional promises: concurrent writers
targeting the same key race and the last write wins.

Usage:
    from gatepipe.runtime.storage import StateStore, canonical_json, slugify_key

    store = StateStore.from_env(os.environ)
    store.write("inbox", [{"id": 1}])
    diff = store.diff_and_store("inbox", [{"id": 1}])
    assert diff.changed is False
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from gatepipe.config.runtime_config import get_state_dir

from .errors import StateKeyError

# Module logger
logger = logging.getLogger(__name__)

STATE_FILE_EXT = ".json"

_UNSAFE_CHARS = re.compile(r"[^a-z0-9._-]+")
_UNDERSCORE_RUNS = re.compile(r"_+")


# -----------------------------------------------------------------------------
# Key and value helpers
# -----------------------------------------------------------------------------


def slugify_key(key: Any) -> str:
    """Derive the on-disk slug for a state key.

    Raises:
        StateKeyError: If the slug is empty.

    Example:
        >>> slugify_key("github.pr:owner/repo#12")
        'github.pr_owner_repo_12'
    """
    slug = _UNSAFE_CHARS.sub("_", str(key).lower())
    slug = _UNDERSCORE_RUNS.sub("_", slug).strip("_")
    if not slug:
        raise StateKeyError(key)
    return slug


def canonical_json(value: Any) -> str:
    """Serialize a value with object keys sorted recursively.

    Two values that differ only in key order produce the same string, which
    is what change detection compares.
    """
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass
class StateDiff:
    """Result of diff_and_store().

    Attributes:
        before: Previously stored value (None if the key was absent).
        after: Newly stored value.
        changed: True if the canonical forms differ.
    """

    before: Any
    after: Any
    changed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"before": self.before, "after": self.after, "changed": self.changed}


# -----------------------------------------------------------------------------
# File I/O
# -----------------------------------------------------------------------------


def _write_json_file(path: Path, data: Any) -> None:
    """Write JSON via a temp file + os.replace so readers never see half a file."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(suffix=".tmp", prefix=path.name + ".", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class StateStore:
    """JSON documents keyed by slug under a single directory."""

    def __init__(self, state_dir: Path):
        self.state_dir = Path(state_dir)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "StateStore":
        """Create a store rooted at the directory configured for `env`."""
        return cls(get_state_dir(env))

    def path_for(self, key: Any) -> Path:
        """Get the file path backing a key."""
        return self.state_dir / f"{slugify_key(key)}{STATE_FILE_EXT}"

    def read(self, key: Any) -> Any:
        """Read the value stored under key.

        Returns:
            The stored JSON value, or None if the key has never been written.

        Raises:
            StateKeyError: If the key is invalid.
            json.JSONDecodeError: If the stored file is corrupt.
        """
        path = self.path_for(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("State key '%s' not found at %s", key, path)
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("Corrupt state file for key '%s' at %s: %s", key, path, e)
            raise

    def write(self, key: Any, value: Any) -> None:
        """Store value under key, replacing any previous value."""
        path = self.path_for(key)
        _write_json_file(path, value)
        logger.debug("Wrote state key '%s' to %s", key, path)

    def diff_and_store(self, key: Any, value: Any) -> StateDiff:
        """Compare value with the stored one, then store it.

        Comparison uses canonical_json(), so key order never counts as a
        change.
        """
        before = self.read(key)
        changed = canonical_json(before) != canonical_json(value)
        self.write(key, value)
        logger.debug("diff_and_store('%s'): changed=%s", key, changed)
        return StateDiff(before=before, after=value, changed=changed)
