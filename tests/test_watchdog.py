import asyncio
import logging
import time

import pytest

from newsreader.watchdog import Watchdog, WatchdogTimeout, run_with_watchdog


def test_watchdog_within_threshold():
    with Watchdog("extract", 5.0) as wd:
        pass
    assert wd.elapsed_seconds < 5.0
    assert not wd.triggered


def test_watchdog_warns_when_over(caplog):
    with caplog.at_level(logging.WARNING):
        with Watchdog("extract", 0.0) as wd:
            time.sleep(0.01)
    assert wd.triggered
    assert "[WATCHDOG] extract took" in caplog.text


def test_watchdog_lets_errors_through():
    with pytest.raises(ValueError):
        with Watchdog("extract", 5.0):
            raise ValueError("bad page")


async def test_run_with_watchdog_returns_result():
    async def quick():
        return 42

    assert await run_with_watchdog(quick(), 1.0, "quick") == 42


async def test_run_with_watchdog_cancels_and_runs_cleanup():
    cleaned = []

    async def stuck():
        try:
            await asyncio.sleep(30)
        finally:
            cleaned.append(True)

    with pytest.raises(WatchdogTimeout) as exc:
        await run_with_watchdog(stuck(), 0.01, "listen")

    assert exc.value.block == "listen"
    assert cleaned == [True]


def test_log_latency_reports_elapsed(caplog):
    from newsreader.instrumentation import log_latency

    with caplog.at_level(logging.INFO):
        elapsed = log_latency("transcript_ready", time.monotonic() - 0.05, session_id="ab12")
    assert elapsed >= 50
    assert "[LATENCY] id=ab12 stage=transcript_ready" in caplog.text
