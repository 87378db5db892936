"""Time source for the gateway and cache, injectable so tests can fast-forward."""

import asyncio
import time


class Clock:
    """Monotonic wall clock backed by asyncio.sleep."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float):
        await asyncio.sleep(max(0.0, seconds))


SYSTEM_CLOCK = Clock()
