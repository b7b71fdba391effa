"""Which examples each group and each worker within a group trains on."""

from __future__ import annotations

import math
from collections.abc import Callable

GroupWindowFn = Callable[[int, int, int], slice]
"""``(group_index, group_size, num_examples) -> slice`` of dataset rows."""


def num_groups(num_examples: int, group_size: int) -> int:
    """Groups per epoch; the last one may be short."""
    if group_size <= 0:
        msg = f"group_size must be positive, got {group_size}"
        raise ValueError(msg)
    return math.ceil(num_examples / group_size)


def advancing_window(group: int, group_size: int, num_examples: int) -> slice:
    """Group ``g`` (0-based) covers rows ``[g * group_size, (g + 1) * group_size)``."""
    start = group * group_size
    return slice(start, min(num_examples, start + group_size))


def leading_window(group: int, group_size: int, num_examples: int) -> slice:
    """Every group reuses the leading ``group_size`` rows of the dataset.

    Groups after the first do not advance through the data, so an epoch
    trains repeatedly on the same window. Selected with
    ``group_window="leading"`` to reproduce runs made that way.
    """
    return slice(0, min(num_examples, group_size))


GROUP_WINDOWS: dict[str, GroupWindowFn] = {
    "advancing": advancing_window,
    "leading": leading_window,
}


def worker_slices(
    group_examples: int, batch_size: int, parallel_batches: int
) -> list[slice]:
    """Contiguous, non-overlapping mini-batches for the workers of a group.

    Worker ``i`` takes ``[i * batch_size, min(group_examples, (i + 1) * batch_size))``.
    Workers whose slice would be empty (a short trailing group) are
    dropped, so layer primitives never see a zero-row batch.
    """
    slices = []
    for worker in range(parallel_batches):
        start = worker * batch_size
        stop = min(group_examples, start + batch_size)
        if stop <= start:
            break
        slices.append(slice(start, stop))
    return slices
