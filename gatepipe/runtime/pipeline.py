"""
pipeline.py - Stream executor for parsed pipelines.

Threads a lazy item stream through the stages of a pipeline:

    stream = initial input (empty for a fresh run)
    for each stage:
        command = registry.get(stage.name)        # UnknownCommandError if absent
        result = command.run(stream, stage.args, ctx)
        stream = result.output
        if result.halt: stop
    items = drain(stream)

Stage N's run() is only called after stage N-1's run() has returned its
stream object; consumption of the streams may be lazy, but stages never
advance concurrently.

Usage:
    from gatepipe.runtime.pipeline import run_pipeline

    result = run_pipeline(stages, ctx)
    result.items, result.halted, result.halted_at
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Sequence

from .errors import UnknownCommandError
from .stream import collect, empty_stream
from .types import HaltedAt, PipelineResult, RunContext, Stage

logger = logging.getLogger(__name__)


def run_pipeline(
    stages: Sequence[Stage],
    ctx: RunContext,
    input: Optional[Iterable[Any]] = None,
) -> PipelineResult:
    """Run stages in order and drain the final stream.

    Args:
        stages: Parsed pipeline (or a suffix of one, on resume).
        ctx: Run context carrying the command registry.
        input: Initial item stream; empty when None.

    Returns:
        PipelineResult with drained items and halt information.

    Raises:
        UnknownCommandError: If a stage names an unregistered command. Stages
            already started keep their side effects; nothing later runs.
    """
    stream = iter(input) if input is not None else empty_stream()
    rendered = False
    halted_at: Optional[HaltedAt] = None

    for index, stage in enumerate(stages):
        command = ctx.registry.get(stage.name)
        if command is None:
            raise UnknownCommandError(stage.name)

        logger.debug("Stage %d: %s %s", index, stage.name, stage.args)
        result = command.run(stream, stage.args, ctx)

        if result.rendered:
            rendered = True
        stream = result.output if result.output is not None else empty_stream()

        if result.halt:
            halted_at = HaltedAt(index=index)
            logger.debug("Pipeline halted at stage %d (%s)", index, stage.name)
            break

    items = collect(stream)
    return PipelineResult(
        items=items,
        rendered=rendered,
        halted=halted_at is not None,
        halted_at=halted_at,
    )
