import asyncio
from datetime import datetime


class Clock:
    """Wall clock and timer used by the capture loop.

    Everything that waits goes through here so tests can swap in a clock
    that records sleeps instead of performing them.
    """

    def now(self) -> datetime:
        return datetime.now()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


__all__ = ["Clock"]
