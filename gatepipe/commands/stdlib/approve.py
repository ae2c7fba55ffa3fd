"""
approve.py - Approval gate as a pipeline stage.

Two modes:
- Emit: buffer all input, yield a single approval_request item and halt.
  Used in tool mode, when stdin is not a terminal, or with --emit.
- Interactive: prompt on stdout, read one line from stdin; "y"/"yes" passes
  the buffered items through, anything else raises ApprovalRejectedError.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from gatepipe.config.runtime_config import get_approval_preview_limit
from gatepipe.runtime.approval import ask_approval, should_emit
from gatepipe.runtime.errors import ApprovalRejectedError
from gatepipe.runtime.render import dumps_pretty
from gatepipe.runtime.stream import ItemStream, collect, stream_of
from gatepipe.runtime.types import ApprovalRequest, ArgValue, RunContext, approval_request_to_dict

from ..base import Command, CommandResult

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "Approve?"


def build_preview(items: List[Any]) -> str:
    """Newline-joined strings, or pretty JSON for anything else."""
    if not items:
        return ""
    if all(isinstance(item, str) for item in items):
        return "\n".join(items)
    return dumps_pretty(items)


def _preview_limit(args: Dict[str, ArgValue]) -> int:
    """Lenient item limit: unparseable values fall back to the configured default."""
    for name in ("limit", "previewLimit", "preview-limit"):
        raw = args.get(name)
        if isinstance(raw, str):
            try:
                return max(0, int(float(raw)))
            except (ValueError, OverflowError):
                break
    return get_approval_preview_limit()


class ApproveCommand(Command):
    name = "approve"
    args_schema = {
        "type": "object",
        "properties": {
            "prompt": {"type": "string", "description": "Approval prompt text", "default": DEFAULT_PROMPT},
            "emit": {"type": "boolean", "description": "Force emit approval request + halt"},
            "preview-from-stdin": {"type": "boolean", "description": "Include a preview of the items"},
            "limit": {"type": "number", "description": "Items shown in the preview"},
        },
    }

    def help(self) -> str:
        return (
            "approve - require confirmation to continue\n\n"
            "Usage:\n"
            '  ... | approve --prompt "Send these emails?"\n'
            '  ... | approve --emit --prompt "Send these emails?"\n'
            '  ... | approve --emit --preview-from-stdin --limit 5 --prompt "Proceed?"\n\n'
            "Modes:\n"
            "  - Interactive (default): prompts on TTY and passes items through if approved.\n"
            "  - Emit (--emit): returns an approval request object and stops the pipeline.\n\n"
            "Notes:\n"
            "  - In tool mode (or non-interactive), this emits an approval request and halts.\n"
        )

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        prompt = self.string_arg(args, "prompt") or DEFAULT_PROMPT
        items = collect(input)

        if should_emit(ctx, force=self.flag(args, "emit")):
            preview: Optional[str] = None
            if self.flag(args, "preview-from-stdin", "previewFromStdin"):
                preview = build_preview(items[: _preview_limit(args)]) or None
            request = ApprovalRequest(prompt=prompt, items=items, preview=preview)
            logger.debug("approve: emitting request for %d item(s)", len(items))
            return CommandResult(output=stream_of([approval_request_to_dict(request)]), halt=True)

        if not ask_approval(ctx, prompt):
            raise ApprovalRejectedError(prompt)
        return CommandResult(output=stream_of(items))
