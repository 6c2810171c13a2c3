"""
Bounded retry policy and the timer abstraction used by capture and synthesis.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional


def exponential_backoff(base: float, maximum: float) -> Callable[[int], float]:
    """Delay doubling per attempt, starting at `base` and capped at `maximum`."""
    def backoff(attempt: int) -> float:
        return min(maximum, base * (2 ** max(0, attempt - 1)))
    return backoff


@dataclass(frozen=True)
class RetryPolicy:
    """
    How many times to retry and how long to wait before each retry.

    Attributes:
        max_attempts: Retries allowed after the initial try
        backoff: Maps the 1-based retry number to a delay in seconds
    """
    max_attempts: int = 3
    backoff: Callable[[int], float] = exponential_backoff(1.0, 8.0)

    def allows(self, attempt: int) -> bool:
        return attempt <= self.max_attempts

    def delay_for(self, attempt: int) -> float:
        return max(0.0, float(self.backoff(attempt)))


class Scheduler:
    """Timer primitive for the event loop. Swappable so timing is not hard-wired."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback, *args)

    def spawn(self, coro) -> asyncio.Task:
        return self.loop.create_task(coro)

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(max(0.0, delay))

    def time(self) -> float:
        return self.loop.time()
