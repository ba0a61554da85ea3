"""Timeline ticker that reports the playback position at a steady rate."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

TICK_INTERVAL = 0.05


@dataclass(frozen=True)
class Tick:
    """Current playback position in seconds."""

    pos: float


async def run_ticker(
    queue: "asyncio.Queue[Tick]",
    start_pos: float = 0.0,
    interval: float = TICK_INTERVAL,
) -> None:
    """Put a :class:`Tick` on ``queue`` every ``interval`` seconds until cancelled.

    The position advances from ``start_pos`` by wall-clock elapsed time. The first
    tick is immediate; ticks missed while the consumer is slow are skipped rather
    than delivered in a burst.
    """
    if interval <= 0:
        raise ValueError(f"tick interval must be positive, got {interval}")
    start = time.monotonic()
    deadline = start
    while True:
        delay = deadline - time.monotonic()
        if delay > 0:
            await asyncio.sleep(delay)
        await queue.put(Tick(start_pos + (time.monotonic() - start)))
        deadline += interval
        now = time.monotonic()
        if deadline < now:
            deadline = now