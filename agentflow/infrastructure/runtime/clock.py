from datetime import datetime, timezone
from typing import Optional
import asyncio
import random
import string
import time


class Clock:
    """Time source used by the engine; swap for a fake in tests"""

    def now(self) -> datetime:
        raise NotImplementedError

    def monotonic(self) -> float:
        raise NotImplementedError

    async def sleep(self, seconds: float) -> None:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock backed by the running event loop"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0))


_ALPHABET = string.digits + string.ascii_lowercase


class IdGenerator:
    """Produces ids like exec_1729170000000_k3j9x0a1b"""

    def __init__(self, clock: Optional[Clock] = None, rng: Optional[random.Random] = None):
        self.clock = clock or SystemClock()
        self.rng = rng or random.Random()

    def new_id(self, prefix: str) -> str:
        millis = int(self.clock.now().timestamp() * 1000)
        suffix = "".join(self.rng.choice(_ALPHABET) for _ in range(9))
        return f"{prefix}_{millis}_{suffix}"
