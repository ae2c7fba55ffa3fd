"""
transform.py - Streaming item transforms: head, pick, where, template.

These stages produce output lazily, one pulled item at a time, and always
exhaust their input, even when they reject their arguments.
"""

from __future__ import annotations

import json
import logging
import math
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from gatepipe.runtime.errors import CommandError
from gatepipe.runtime.stream import ItemStream, drain
from gatepipe.runtime.types import ArgValue, RunContext

from ..base import Command, CommandResult

logger = logging.getLogger(__name__)

_MISSING = object()


def get_path(obj: Any, path: str) -> Any:
    """Follow a dotted path through objects (and list indexes).

    Returns the _MISSING sentinel when any segment is absent.
    """
    cur = obj
    for part in path.split("."):
        if isinstance(cur, dict):
            if part not in cur:
                return _MISSING
            cur = cur[part]
        elif isinstance(cur, list) and part.isdigit() and int(part) < len(cur):
            cur = cur[int(part)]
        else:
            return _MISSING
    return cur


# =============================================================================
# head
# =============================================================================


class HeadCommand(Command):
    name = "head"

    def help(self) -> str:
        return "head - take first N items\n\nUsage:\n  head --n 10\n"

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        try:
            limit = self.int_arg(args, 10, "n")
        except CommandError:
            drain(input)
            raise

        def _gen():
            for index, item in enumerate(input):
                if index < limit:
                    yield item

        return CommandResult(output=_gen())


# =============================================================================
# pick
# =============================================================================


class PickCommand(Command):
    name = "pick"

    def help(self) -> str:
        return "pick - project fields from objects\n\nUsage:\n  ... | pick id,subject,from\n"

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        field_list = self.positional(args)
        if not field_list:
            drain(input)
            raise CommandError(self.name, "pick requires a comma-separated field list")
        fields = [f.strip() for f in field_list.split(",") if f.strip()]

        def _gen():
            for item in input:
                if not isinstance(item, dict):
                    yield item
                    continue
                yield {f: item.get(f) for f in fields}

        return CommandResult(output=_gen())


# =============================================================================
# where
# =============================================================================

_PREDICATE = re.compile(r"^([a-zA-Z0-9_.]+)\s*(==|=|!=|<=|>=|<|>)\s*(.+)$")
_NUMERIC = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?\s*$")


def parse_literal(raw: str) -> Any:
    """Parse a predicate value: true/false/null, numbers, else the string."""
    if raw == "true":
        return True
    if raw == "false":
        return False
    if raw == "null":
        return None
    if _NUMERIC.match(raw):
        number = float(raw)
        return int(number) if number.is_integer() and "." not in raw and "e" not in raw.lower() else number
    return raw


def parse_predicate(expr: str) -> Tuple[str, str, Any]:
    """Split `path<op>value` into its parts; `=` is an alias for `==`."""
    match = _PREDICATE.match(expr)
    if not match:
        raise CommandError("where", f"Invalid where expression: {expr}")
    path, op, raw = match.groups()
    return path, "==" if op == "=" else op, parse_literal(raw)


def _to_number(value: Any) -> float:
    """Numeric coercion used by loose comparisons (NaN when impossible)."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if _NUMERIC.match(text):
            return float(text)
    return math.nan


def loose_equals(left: Any, right: Any) -> bool:
    """Type-coercing equality.

    null only equals a missing value or null. Booleans and numeric strings
    compare as numbers. Objects compare structurally against objects only.
    """
    if left is _MISSING:
        left = None
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, (dict, list)) or isinstance(right, (dict, list)):
        return type(left) is type(right) and left == right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    return _to_number(left) == _to_number(right)


def _loose_compare(left: Any, op: str, right: Any) -> bool:
    if left is _MISSING:
        return False
    if isinstance(left, str) and isinstance(right, str):
        a, b = left, right
    else:
        a, b = _to_number(left), _to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


def evaluate_predicate(item: Any, path: str, op: str, value: Any) -> bool:
    left = get_path(item, path)
    if op == "==":
        return loose_equals(left, value)
    if op == "!=":
        return not loose_equals(left, value)
    return _loose_compare(left, op, value)


class WhereCommand(Command):
    name = "where"

    def help(self) -> str:
        return (
            "where - filter objects by a simple predicate\n\n"
            "Usage:\n"
            "  ... | where unread=true\n"
            "  ... | where minutes>=30\n"
            "  ... | where sender.domain==example.com\n"
        )

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        expr = self.positional(args)
        if not expr:
            drain(input)
            raise CommandError(self.name, "where requires an expression (e.g. field=value)")
        try:
            path, op, value = parse_predicate(expr)
        except CommandError:
            drain(input)
            raise

        def _gen():
            for item in input:
                if evaluate_predicate(item, path, op, value):
                    yield item

        return CommandResult(output=_gen())


# =============================================================================
# template
# =============================================================================

_PLACEHOLDER = re.compile(r"\{\{\s*([^}]+?)\s*\}\}")


def render_template(template: str, item: Any) -> str:
    """Render `{{path}}` placeholders against an item.

    `{{.}}` and `{{this}}` refer to the whole item; missing or null values
    render empty; non-strings render as JSON.
    """

    def _sub(match: "re.Match[str]") -> str:
        key = match.group(1).strip()
        if key in (".", "this"):
            value = item
        else:
            value = get_path(item, ".".join(p for p in key.split(".") if p))
        if value is _MISSING or value is None:
            return ""
        if isinstance(value, str):
            return value
        return json.dumps(value, separators=(",", ":"))

    return _PLACEHOLDER.sub(_sub, template)


class TemplateCommand(Command):
    name = "template"
    args_schema = {
        "type": "object",
        "properties": {
            "text": {"type": "string", "description": "Template text ({{path}}, {{.}})"},
            "file": {"type": "string", "description": "Template file path"},
            "_": {"type": "array", "items": {"type": "string"}},
        },
    }

    def help(self) -> str:
        return (
            "template - render a simple template against each item\n\n"
            "Usage:\n"
            "  ... | template --text 'PR {{number}}: {{title}}'\n"
            "  ... | template --file ./draft.txt\n\n"
            "Template syntax:\n"
            "  - {{field}} or {{nested.field}}\n"
            "  - {{.}} for the whole item\n"
            "  - Missing values render as empty string\n"
        )

    def _load_template(self, args: Dict[str, ArgValue]) -> Optional[str]:
        text = self.string_arg(args, "text")
        if text:
            return text
        file = self.string_arg(args, "file")
        if file:
            try:
                return Path(file).read_text(encoding="utf-8")
            except OSError as e:
                raise CommandError(self.name, f"template could not read {file}: {e}")
        positionals: List[str] = list(args.get("_") or [])  # type: ignore[arg-type]
        if positionals:
            return " ".join(positionals)
        return None

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        try:
            template = self._load_template(args)
        except CommandError:
            drain(input)
            raise
        if not template:
            drain(input)
            raise CommandError(self.name, "template requires --text or --file (or positional text)")

        def _gen():
            for item in input:
                yield render_template(template, item)

        return CommandResult(output=_gen())
