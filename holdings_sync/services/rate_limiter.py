import asyncio
import time
from typing import Awaitable, Callable, Optional

class RequestSpacer:
    """
    Enforces a minimum gap between consecutive remote calls.
    The store rejects the rest of a run once its request-rate ceiling is hit,
    so every unbatched call waits here first.
    """
    def __init__(
        self,
        min_interval_s: float,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.min_interval_s = max(0.0, min_interval_s)
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic
        self._last: Optional[float] = None
        self.lock = asyncio.Lock()

    @classmethod
    def from_ms(cls, delay_ms: int, **kwargs) -> "RequestSpacer":
        return cls(delay_ms / 1000.0, **kwargs)

    async def wait(self) -> None:
        async with self.lock:
            if self._last is not None:
                need = self.min_interval_s - (self._clock() - self._last)
                if need > 0:
                    await self._sleep(need)
            self._last = self._clock()
