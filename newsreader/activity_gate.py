"""
ActivityGate: Exclusive ownership of the audio activities.

Central gatekeeper for speaking, recording and transcription processing.
At most one of the three flags is set at any instant.

This pattern ensures:
- A recording start while anything else is active is rejected (no-op, no queue)
- Every path that sets a flag clears it on exit, including failures
- No component outside the engine flips flags directly

Usage:
    gate = ActivityGate()

    # Before recording (silent rejection)
    if not gate.acquire(ActivityGate.RECORDING):
        return None
    try:
        record_audio()
    finally:
        gate.release(ActivityGate.RECORDING)

    # Before speech (busy gate is a programming error)
    with gate.hold(ActivityGate.SPEAKING):
        await sink.speak(text)
"""

from contextlib import contextmanager
from typing import Dict, Iterator, Optional


class ActivityGate:
    """Mutual exclusion over the speaking / recording / processing flags."""

    # Activity types
    SPEAKING = "speaking"
    RECORDING = "recording"
    PROCESSING = "processing"

    _FLAGS = (SPEAKING, RECORDING, PROCESSING)

    def __init__(self):
        """Initialize with every flag cleared."""
        self._active: Optional[str] = None

    def _check(self, flag: str) -> None:
        if flag not in self._FLAGS:
            raise ValueError(f"Invalid activity: {flag}")

    def acquire(self, flag: str) -> bool:
        """
        Set a flag if nothing is active.

        Args:
            flag: SPEAKING, RECORDING or PROCESSING

        Returns:
            True if acquired, False if any flag is already set
        """
        self._check(flag)
        if self._active is not None:
            return False
        self._active = flag
        return True

    def release(self, flag: str) -> bool:
        """
        Clear a flag.

        Returns:
            True if it was set, False otherwise
        """
        self._check(flag)
        if self._active == flag:
            self._active = None
            return True
        return False

    @contextmanager
    def hold(self, flag: str) -> Iterator[None]:
        """
        Hold a flag for the duration of a block.

        Raises:
            RuntimeError: If another activity already owns the gate
        """
        if not self.acquire(flag):
            raise RuntimeError(f"Cannot start {flag}: {self._active} already active")
        try:
            yield
        finally:
            self.release(flag)

    def clear(self) -> None:
        """Drop every flag (session reset)."""
        self._active = None

    # ========================================================================
    # PREDICATES
    # ========================================================================

    @property
    def active(self) -> Optional[str]:
        return self._active

    @property
    def is_speaking(self) -> bool:
        return self._active == self.SPEAKING

    @property
    def is_recording(self) -> bool:
        return self._active == self.RECORDING

    @property
    def is_processing(self) -> bool:
        return self._active == self.PROCESSING

    @property
    def is_busy(self) -> bool:
        return self._active is not None

    def as_dict(self) -> Dict[str, bool]:
        return {
            "is_speaking": self.is_speaking,
            "is_recording": self.is_recording,
            "is_processing": self.is_processing,
        }
