"""Human-facing output helpers bound to a writable text handle."""

from __future__ import annotations

import json
from typing import Any, Iterable, List, TextIO


def dumps_pretty(value: Any) -> str:
    """Serialize a value as 2-space indented JSON."""
    return json.dumps(value, indent=2, ensure_ascii=False)


class JsonRenderer:
    """Writes items to stdout as JSON or as plain lines."""

    def __init__(self, stdout: TextIO):
        self.stdout = stdout

    def json(self, items: List[Any]) -> None:
        self.stdout.write(dumps_pretty(items))
        self.stdout.write("\n")

    def lines(self, lines: Iterable[Any]) -> None:
        for line in lines:
            self.stdout.write(f"{line}\n")
