"""Item stream helpers.

An item stream is a plain Python iterator of JSON values: lazy, forward-only
and single-pass. Once consumed it is exhausted and cannot be restarted.
Stages suspend at each pull; cancelling a stream means no longer pulling
from it.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, List

ItemStream = Iterator[Any]


def empty_stream() -> ItemStream:
    """Return a stream that yields nothing."""
    return iter(())


def stream_of(items: Iterable[Any]) -> ItemStream:
    """Wrap a finite collection of items as a single-pass stream."""

    def _gen() -> ItemStream:
        for item in items:
            yield item

    return _gen()


def collect(stream: Iterable[Any]) -> List[Any]:
    """Pull every item from a stream into an ordered list."""
    return [item for item in stream]


def drain(stream: Iterable[Any]) -> int:
    """Exhaust a stream, discarding its items.

    Commands that ignore their input still call this so upstream resources
    (subprocess pipes, open files) are released deterministically.

    Returns:
        Number of items discarded.
    """
    count = 0
    for _ in stream:
        count += 1
    return count
