"""Reveal clocks for typed dialogue."""

from __future__ import annotations

import asyncio

DEFAULT_UNIT_SECONDS = 0.001


class AsyncioClock:
    """One delay unit is ``unit_seconds`` of wall time (a millisecond by default)."""

    def __init__(self, unit_seconds: float = DEFAULT_UNIT_SECONDS) -> None:
        self.unit_seconds = unit_seconds

    async def tick(self, delay_units: float) -> None:
        await asyncio.sleep(max(float(delay_units), 0.0) * self.unit_seconds)


class InstantClock:
    """Yields to the event loop without waiting; text appears at once."""

    async def tick(self, delay_units: float) -> None:
        await asyncio.sleep(0)
