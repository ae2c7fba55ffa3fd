"""
parser.py - Pipeline text to Stage descriptors.

A pipeline is a single line of `|`-separated stages:

    exec --json "gh pr list --json number" | where state=OPEN | pick number,title

Quoting rules (shared by stage splitting and tokenizing):
- single or double quotes group characters, including `|` and whitespace
- inside quotes, a backslash emits the following character literally
- outside quotes, a backslash is an ordinary character
- an unterminated quote is a ParseError

Argument rules:
- `--key=value` sets key to "value"
- `--key value` consumes the next token when it is not itself a flag
- `--key` followed by nothing or another flag sets key to True
- every other token is positional and collected under args["_"]

Usage:
    from gatepipe.runtime.parser import parse_pipeline, render_pipeline

    stages = parse_pipeline("exec echo hi | json")
    text = render_pipeline(stages)
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Sequence

from .errors import ParseError
from .types import ArgValue, Stage

logger = logging.getLogger(__name__)

QUOTES = ("'", '"')
WHITESPACE = (" ", "\t", "\n", "\r")

# Tokens that survive rendering without quotes
_BARE_TOKEN = re.compile(r"^[^\s'\"|\\]+$")


def split_stages(text: str) -> List[str]:
    """Split pipeline text on unquoted `|` characters.

    Quotes and escapes are kept verbatim in each stage so that tokenizing the
    stage applies the same rules again.

    Raises:
        ParseError: On an unterminated quote.
    """
    parts: List[str] = []
    current: List[str] = []
    quote = None
    i = 0

    while i < len(text):
        ch = text[i]

        if quote:
            current.append(ch)
            if ch == "\\" and i + 1 < len(text):
                current.append(text[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue

        if ch in QUOTES:
            quote = ch
            current.append(ch)
        elif ch == "|":
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1

    if quote:
        raise ParseError("Unclosed quote", source=text)

    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return parts


def tokenize(text: str) -> List[str]:
    """Split a stage into whitespace-separated tokens, honoring quotes.

    Raises:
        ParseError: On an unterminated quote.
    """
    tokens: List[str] = []
    current: List[str] = []
    quote = None
    i = 0

    def push() -> None:
        if current:
            tokens.append("".join(current))
            current.clear()

    while i < len(text):
        ch = text[i]

        if quote:
            if ch == "\\" and i + 1 < len(text):
                current.append(text[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
            else:
                current.append(ch)
            i += 1
            continue

        if ch in QUOTES:
            quote = ch
        elif ch in WHITESPACE:
            push()
        else:
            current.append(ch)
        i += 1

    if quote:
        raise ParseError("Unclosed quote", source=text)

    push()
    return tokens


def parse_args(tokens: Sequence[str]) -> Dict[str, ArgValue]:
    """Turn a token list (without the command name) into an args mapping."""
    args: Dict[str, ArgValue] = {"_": []}
    positionals: List[str] = []

    i = 0
    while i < len(tokens):
        tok = tokens[i]

        if tok.startswith("--"):
            body = tok[2:]
            if "=" in body:
                key, value = body.split("=", 1)
                args[key] = value
                i += 1
                continue

            nxt = tokens[i + 1] if i + 1 < len(tokens) else None
            if nxt is None or nxt.startswith("--"):
                args[body] = True
                i += 1
                continue

            args[body] = nxt
            i += 2
            continue

        positionals.append(tok)
        i += 1

    args["_"] = positionals
    return args


def parse_pipeline(text: str) -> List[Stage]:
    """Parse pipeline text into an ordered list of stages.

    Raises:
        ParseError: On an empty pipeline, an empty stage or an unterminated
            quote.
    """
    parts = split_stages(text)
    if not parts:
        raise ParseError("Empty pipeline", source=text)

    stages: List[Stage] = []
    for part in parts:
        tokens = tokenize(part)
        if not tokens:
            raise ParseError("Empty command stage", source=text)
        stages.append(Stage(name=tokens[0], args=parse_args(tokens[1:]), raw=part))

    logger.debug("Parsed pipeline into %d stage(s): %s", len(stages), [s.name for s in stages])
    return stages


# =============================================================================
# Rendering
# =============================================================================


def quote_token(token: str) -> str:
    """Quote a token so that tokenize() reproduces it exactly."""
    if _BARE_TOKEN.match(token):
        return token
    escaped = token.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def render_stage(stage: Stage) -> str:
    """Render a stage back to pipeline text.

    Positionals come first so a boolean flag can never swallow them; named
    values always use the `--key=value` form. The whole named token is
    quoted, since keys may hold whitespace or quotes too.
    """
    parts = [quote_token(stage.name)]
    parts.extend(quote_token(tok) for tok in stage.positionals)
    for key, value in stage.args.items():
        if key == "_":
            continue
        if value is True:
            parts.append(quote_token(f"--{key}"))
        elif value is False:
            continue
        else:
            parts.append(quote_token(f"--{key}={value}"))
    return " ".join(parts)


def render_pipeline(stages: Sequence[Stage]) -> str:
    """Render stages back to a single pipeline line."""
    return " | ".join(render_stage(stage) for stage in stages)
