from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from contact_insights.utils import Throttle, chunked

from .events import batch_window

A = TypeVar("A")
P = TypeVar("P")


def merge_append(acc: Dict[str, List], partial: Dict[str, List]) -> Dict[str, List]:
    """Per-key list concatenation; keeps upstream order within each key."""
    for key, values in partial.items():
        acc.setdefault(key, []).extend(values)
    return acc


def merge_replace(acc: Dict[str, object], partial: Dict[str, object]) -> Dict[str, object]:
    acc.update(partial)
    return acc


class BatchChunker:
    """
    Splits an id list into contiguous windows of at most `batch_size` and folds each
    window's result into an accumulator.

    fetch(window) -> partial; merge(acc, partial) -> acc. Errors from fetch propagate.
    The throttle waits after each window's call.
    """

    def __init__(self, batch_size: int, *, throttle: Optional[Throttle] = None, stream: str = "batch"):
        if int(batch_size) < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.batch_size = int(batch_size)
        self.throttle = throttle
        self.stream = stream
        self.calls = 0

    def run(
        self,
        ids: Sequence[str],
        fetch: Callable[[List[str]], P],
        merge: Callable[[A, P], A],
        initial: A,
    ) -> A:
        acc = initial
        if not ids:
            return acc

        for n, window in enumerate(chunked(ids, self.batch_size), start=1):
            batch_window(stream=self.stream, window=n, size=len(window))
            try:
                partial = fetch(window)
                self.calls += 1
            finally:
                if self.throttle is not None:
                    self.throttle.wait()
            acc = merge(acc, partial)
        return acc
