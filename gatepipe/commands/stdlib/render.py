"""Rendering stages: json and table. Both write to ctx.stdout and emit nothing."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from gatepipe.runtime.stream import ItemStream, collect
from gatepipe.runtime.types import ArgValue, RunContext

from ..base import Command, CommandResult

TABLE_SAMPLE_SIZE = 20
MIN_COLUMN_WIDTH = 3


class JsonCommand(Command):
    name = "json"

    def help(self) -> str:
        return "json - render items as JSON\n\nUsage:\n  ... | json\n"

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        ctx.render.json(collect(input))
        return CommandResult(rendered=True)


def stringify_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"))


def format_table(items: List[Any]) -> List[str]:
    """Lay out items as aligned text lines.

    Columns are the union of keys over the first TABLE_SAMPLE_SIZE items, in
    first-seen order. If any sampled item is not an object, each item gets
    one line instead.
    """
    if not items:
        return ["(no results)"]

    sample = items[:TABLE_SAMPLE_SIZE]
    if not all(isinstance(item, dict) for item in sample):
        return [stringify_cell(item) for item in items]

    columns: List[str] = []
    for obj in sample:
        for key in obj:
            if key not in columns:
                columns.append(key)

    rows = [columns] + [
        [stringify_cell(item.get(c) if isinstance(item, dict) else None) for c in columns]
        for item in items
    ]
    rows = [[cell.replace("\n", " ") for cell in row] for row in rows]
    widths = [max([len(row[i]) for row in rows] + [MIN_COLUMN_WIDTH]) for i in range(len(columns))]

    def render_row(row: List[str]) -> str:
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row))

    lines = [render_row(rows[0]), "  ".join("-" * w for w in widths)]
    lines.extend(render_row(row) for row in rows[1:])
    return lines


class TableCommand(Command):
    name = "table"

    def help(self) -> str:
        return (
            "table - render items as a simple table\n\n"
            "Usage:\n"
            "  ... | table\n\n"
            "Notes:\n"
            f"  - If items are objects, columns are union of keys (first {TABLE_SAMPLE_SIZE} items).\n"
        )

    def run(self, input: ItemStream, args: Dict[str, ArgValue], ctx: RunContext) -> CommandResult:
        ctx.render.lines(format_table(collect(input)))
        return CommandResult(rendered=True)
