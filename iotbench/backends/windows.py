"""
Window arithmetic for dual-window scans.

Given a reference timestamp ``T``:

* the recent window is ``[T, T + width]``;
* the historical window starts at a base (the run start time when positive,
  else ``T - fallback_offset``), moved forward by a random amount inside the
  elapsed span ``[base, T - 10_000]`` so repeated scans sample different
  history. It has the same width, ends at or before ``T`` and never starts
  below zero.
"""
from __future__ import annotations

import random
from typing import Optional, Tuple

RECENT_WINDOW_WIDTH = 5000
HISTORICAL_FALLBACK_OFFSET = 1_800_000
HISTORICAL_GUARD = 10_000

Window = Tuple[int, int]


def recent_window(reference_timestamp: int, width: int = RECENT_WINDOW_WIDTH) -> Window:
    return reference_timestamp, reference_timestamp + width


def historical_base(
    reference_timestamp: int,
    run_start_time: int,
    fallback_offset: int = HISTORICAL_FALLBACK_OFFSET,
) -> int:
    if run_start_time > 0:
        return run_start_time
    return reference_timestamp - fallback_offset


def historical_window(
    reference_timestamp: int,
    run_start_time: int,
    width: int = RECENT_WINDOW_WIDTH,
    fallback_offset: int = HISTORICAL_FALLBACK_OFFSET,
    rng: Optional[random.Random] = None,
) -> Window:
    """
    Historical window for ``reference_timestamp``.

    The start is drawn from ``[base, T - 10_000]``. A base inside the guard
    (a run that started less than 10_000 time units before ``T``) is pulled
    back to ``T - 10_000``, and the window always ends at or before ``T`` so it
    never overlaps the recent one.
    """
    base = historical_base(reference_timestamp, run_start_time, fallback_offset)
    latest = reference_timestamp - HISTORICAL_GUARD
    base = min(base, latest)
    start = base
    if latest > base:
        start = base + int((rng or random).random() * (latest - base))
    start = max(0, min(start, reference_timestamp - width))
    return start, start + width


__all__ = [
    "HISTORICAL_FALLBACK_OFFSET",
    "HISTORICAL_GUARD",
    "RECENT_WINDOW_WIDTH",
    "Window",
    "historical_base",
    "historical_window",
    "recent_window",
]
