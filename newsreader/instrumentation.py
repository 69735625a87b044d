"""
Instrumentation module for the News Reader.

Provides millisecond-precision event logging for ordering verification:
- State transitions
- Speech acts and recording windows
- Transcription results
"""

import logging
import time

logger = logging.getLogger(__name__)


def log_event(event: str, stage: str = "", session_id: str = ""):
    """
    Log event with monotonic timeline metadata.

    Format: [EVT] t=<ms> id=<session_id> stage=<stage> event=<event>

    Args:
        event: Event label/message
        stage: Optional stage name (e.g., "stt", "tts", "engine")
        session_id: Optional session id for correlation
    """
    ts = int(time.monotonic() * 1000)
    logger.info(f"[EVT] t={ts} id={session_id} stage={stage} event={event}")


def log_latency(stage: str, started: float, session_id: str = "") -> float:
    """
    Log the time since a monotonic start mark.

    Format: [LATENCY] id=<session_id> stage=<stage> ms=<elapsed>

    Returns:
        Elapsed milliseconds
    """
    elapsed_ms = (time.monotonic() - started) * 1000
    logger.info(f"[LATENCY] id={session_id} stage={stage} ms={elapsed_ms:.1f}")
    return elapsed_ms
