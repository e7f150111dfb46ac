"""
Countdown driving an in-progress attempt.

One asyncio task sleeps one interval at a time and decrements ``remaining``.
The stopped flag is checked after every sleep and again before the next one,
so a stop() that lands between two ticks is honoured before any further
decrement. The expiry callback runs at most once.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
TickListener = Callable[[int], None]
ExpireCallback = Callable[[], Awaitable[None]]


class SessionClock:
    TICK_SECONDS = 1.0

    def __init__(
        self,
        seconds: int,
        on_expire: ExpireCallback,
        on_tick: Optional[TickListener] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        if seconds < 0:
            raise ValueError(f"Countdown cannot start below zero: {seconds}")
        self.remaining = seconds
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._stopped = False
        self._expired = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def stopped(self) -> bool:
        return self._stopped

    def start(self) -> asyncio.Task:
        if self._task is not None:
            raise RuntimeError("Clock already started")
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def stop(self) -> None:
        """Stop counting. Safe to call from the expiry callback itself."""
        self._stopped = True
        task = self._task
        if task is not None and not task.done() and not self._expired and task is not asyncio.current_task():
            task.cancel()

    async def wait(self) -> None:
        """Wait for the countdown task to finish (expiry handled or stopped)."""
        if self._task is None:
            return
        await asyncio.wait({self._task})
        if not self._task.cancelled() and self._task.exception() is not None:
            raise self._task.exception()

    async def _run(self) -> None:
        while not self._stopped and self.remaining > 0:
            await self._sleep(self.TICK_SECONDS)
            if self._stopped:
                return
            self.remaining -= 1
            if self._on_tick:
                self._on_tick(self.remaining)
        if self._stopped or self._expired:
            return
        self._expired = True
        logger.info("Countdown reached zero")
        await self._on_expire()
