"""Injectable time source.

Every pause and every elapsed-time measurement in the monitor, the portal
navigator and the form engine goes through a ``Clock`` so tests can run the
loop without real delays.
"""

import asyncio
import time


class Clock:
    """Wall clock, monotonic clock and cooperative sleep."""

    def monotonic(self) -> float:
        """Seconds from an arbitrary origin, for measuring elapsed time."""
        return time.monotonic()

    def now(self) -> float:
        """Current Unix timestamp."""
        return time.time()

    async def sleep(self, seconds: float) -> None:
        """Suspend the current task for ``seconds`` (no-op when <= 0)."""
        if seconds > 0:
            await asyncio.sleep(seconds)


SYSTEM_CLOCK = Clock()
