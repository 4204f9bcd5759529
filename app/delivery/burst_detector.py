from __future__ import annotations

from collections.abc import Sequence

BURST_WINDOW_SECONDS = 10.0
BURST_THRESHOLD = 3
MESSAGE_INTERVAL_MAX_SECONDS = 2.5


def accumulation_slice(timestamps: Sequence[float]) -> list[float] | None:
    """Return the trailing timestamps that form a burst, or None.

    Only the last ``BURST_THRESHOLD`` entries are inspected: they must fit in
    ``BURST_WINDOW_SECONDS`` and no gap between neighbours may exceed
    ``MESSAGE_INTERVAL_MAX_SECONDS``.
    """
    if len(timestamps) < BURST_THRESHOLD:
        return None

    tail = list(timestamps[-BURST_THRESHOLD:])
    if tail[-1] - tail[0] > BURST_WINDOW_SECONDS:
        return None
    for previous, current in zip(tail, tail[1:]):
        if current - previous > MESSAGE_INTERVAL_MAX_SECONDS:
            return None
    return tail


def detect_burst(timestamps: Sequence[float]) -> bool:
    return accumulation_slice(timestamps) is not None
