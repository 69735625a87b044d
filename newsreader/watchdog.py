"""
Watchdog Utility

Timing guards for long-running operations.

- Watchdog: synchronous context manager, measures a block and logs when it
  runs over its threshold. No side effects beyond logging.
- run_with_watchdog: bounds an awaitable; raises WatchdogTimeout so callers
  always reach a decision instead of hanging.
"""

import asyncio
import logging
import time
from typing import Awaitable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WatchdogTimeout(Exception):
    """Raised when a guarded awaitable exceeds its window."""

    def __init__(self, block: str, threshold_seconds: float):
        super().__init__(f"{block} exceeded {threshold_seconds:.1f}s")
        self.block = block
        self.threshold_seconds = threshold_seconds


class Watchdog:
    """
    Timer for a blocking step that should stay short (extraction, decoding).

    Never interrupts the block; on exit it records the elapsed time and warns
    when the step ran over. Exceptions from the block pass through.
    """

    def __init__(self, block: str, threshold_seconds: float):
        self.block = block
        self.threshold_seconds = threshold_seconds
        self.started_at = None
        self.elapsed_seconds = 0.0

    @property
    def triggered(self) -> bool:
        return self.threshold_seconds is not None and self.elapsed_seconds > self.threshold_seconds

    def __enter__(self):
        self.started_at = time.monotonic()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.elapsed_seconds = time.monotonic() - self.started_at
        if self.triggered:
            logger.warning(
                f"[WATCHDOG] {self.block} took {self.elapsed_seconds:.2f}s "
                f"(limit {self.threshold_seconds:.2f}s)"
            )
        return False


async def run_with_watchdog(awaitable: Awaitable[T], threshold_seconds: float, block: str) -> T:
    """
    Await with a hard window.

    The guarded task is cancelled when the window closes, so its finally
    blocks run (flags released, recordings stopped) before this raises.

    Args:
        awaitable: Coroutine or future to guard
        threshold_seconds: Window length
        block: Name used in logs and in the raised exception

    Returns:
        Result of the awaitable

    Raises:
        WatchdogTimeout: Window exceeded
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=threshold_seconds)
    except asyncio.TimeoutError:
        logger.warning("[WATCHDOG] %s cancelled after %.2fs", block, threshold_seconds)
        raise WatchdogTimeout(block, threshold_seconds) from None
