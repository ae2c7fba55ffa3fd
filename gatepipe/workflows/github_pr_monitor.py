"""
github_pr_monitor.py - Report pull request changes since the last run.

Fetches a PR snapshot with the GitHub CLI, stores it through
StateStore.diff_and_store(), and reports whether anything changed:

    {"kind": "github.pr.monitor", "repo": "owner/repo", "pr": 12,
     "key": "github.pr:owner/repo#12", "changed": true, "prSnapshot": {...}}

With changesOnly, an unchanged PR yields `{..., "changed": false,
"suppressed": true}` instead of the snapshot.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Mapping

from gatepipe.runtime.errors import CommandError
from gatepipe.runtime.shell import run_process
from gatepipe.runtime.storage import StateStore
from gatepipe.runtime.types import RunContext

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "github.pr.monitor"

PR_FIELDS = (
    "number",
    "title",
    "url",
    "state",
    "isDraft",
    "mergeable",
    "reviewDecision",
    "author",
    "baseRefName",
    "headRefName",
    "updatedAt",
)


def _pr_number(value: Any) -> int:
    try:
        return int(str(value))
    except ValueError:
        raise CommandError(WORKFLOW_NAME, f"{WORKFLOW_NAME} args.pr must be a number (got {value!r})")


def run_github_pr_monitor(args: Mapping[str, Any], ctx: RunContext) -> Dict[str, Any]:
    """Fetch, diff and store one PR snapshot."""
    repo = args.get("repo")
    pr = args.get("pr")
    if not repo or not pr:
        raise CommandError(WORKFLOW_NAME, f"{WORKFLOW_NAME} requires args.repo and args.pr")

    number = _pr_number(pr)
    key = args.get("key") or f"github.pr:{repo}#{pr}"
    changes_only = bool(args.get("changesOnly"))

    argv = ["gh", "pr", "view", str(pr), "--repo", str(repo), "--json", ",".join(PR_FIELDS)]
    result = run_process(argv, env=ctx.env, cwd=os.getcwd())

    try:
        snapshot = json.loads(result.stdout.strip())
    except json.JSONDecodeError as e:
        raise CommandError(WORKFLOW_NAME, f"gh returned non-JSON output: {e}")

    diff = StateStore.from_env(ctx.env).diff_and_store(key, snapshot)
    logger.info("PR %s#%s changed=%s", repo, number, diff.changed)

    record: Dict[str, Any] = {
        "kind": WORKFLOW_NAME,
        "repo": repo,
        "pr": number,
        "key": key,
        "changed": diff.changed,
    }
    if changes_only and not diff.changed:
        record["suppressed"] = True
    else:
        record["prSnapshot"] = snapshot
    return record
