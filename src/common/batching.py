"""Fixed-size batch processing with per-batch error isolation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class BatchOutcome:
    """Result of handling one batch."""

    index: int
    items: List
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def chunked(items: Sequence[T], batch_size: int) -> List[List[T]]:
    """Split ``items`` into consecutive lists of at most ``batch_size`` elements."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


def run_in_batches(
    items: Sequence[T],
    batch_size: int,
    handler: Callable[[List[T]], None],
) -> List[BatchOutcome]:
    """Call ``handler`` once per batch; a failing batch does not stop the others."""
    outcomes = []
    for index, batch in enumerate(chunked(items, batch_size)):
        try:
            handler(batch)
            outcomes.append(BatchOutcome(index, batch))
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Batch %d (%d item(s)) failed: %s", index + 1, len(batch), e)
            outcomes.append(BatchOutcome(index, batch, error=str(e)))
    return outcomes
