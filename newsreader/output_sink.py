"""
OUTPUT SINK ABSTRACTION

Speech output port. Deterministic, single terminal signal, instantly stoppable.

Core semantics:
- speak(text, options) → synthesize and play, return exactly one SpeechResult
- stop() → halt any active playback (idempotent, instant, no fade)

Success and failure are the same event for flow purposes: speak() never
raises, a failed synthesis comes back as SpeechResult(error=...).

Configuration:
- VOICE_ENABLED (env var): audible Edge-TTS sink instead of the silent one
- EDGE_TTS_VOICE (env var / speech.voice): Microsoft neural voice name

Hard stops:
- stop() must halt audio instantly (no tail audio)
- stop() must be idempotent and must not raise
- Event loop must remain responsive during playback (blocking work runs in
  a worker thread)
"""

# ============================================================================
# 1) IMPORTS
# ============================================================================
import asyncio
import logging
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

from newsreader.instrumentation import log_event
from newsreader.models import SpeechOptions, SpeechResult

logger = logging.getLogger(__name__)


# ============================================================================
# 2) CONFIGURATION FLAGS
# ============================================================================

VOICE_ENABLED = os.getenv("VOICE_ENABLED", "false").lower() == "true"
"""Enable/disable audible output entirely."""

DEFAULT_VOICE = os.getenv("EDGE_TTS_VOICE", "en-US-AriaNeural")


# ============================================================================
# 3) OUTPUT SINK INTERFACE
# ============================================================================

class OutputSink(ABC):
    """
    Abstract base class for speech output.

    Implementations must provide:
    - speak(text, options) → one SpeechResult per call, never raises
    - stop() → halt active output (idempotent, instant)
    """

    @abstractmethod
    async def speak(self, text: str, options: Optional[SpeechOptions] = None) -> SpeechResult:
        """
        Speak text and wait until playback finished (or failed).

        Args:
            text: Text to speak
            options: Optional rate/pitch/volume multipliers

        Returns:
            SpeechResult (error set on failure)
        """

    @abstractmethod
    async def stop(self) -> None:
        """Stop active playback. Safe to call repeatedly."""


# ============================================================================
# DEFAULT IMPLEMENTATION: SILENT SINK
# ============================================================================

class SilentOutputSink(OutputSink):
    """
    Text-only sink.

    Logs every utterance and, with echo on, prints it so a console user can
    follow the conversation without speakers.
    """

    def __init__(self, echo: bool = True):
        self.echo = echo

    async def speak(self, text: str, options: Optional[SpeechOptions] = None) -> SpeechResult:
        logger.info(f"[TTS] (silent) {text}")
        if self.echo:
            print(f"NEWS READER: {text}")
        return SpeechResult(text=text)

    async def stop(self) -> None:
        pass


# ============================================================================
# EDGE-TTS IMPLEMENTATION
# ============================================================================

def _percent(multiplier: Optional[float]) -> str:
    """Map a 1.0-based multiplier to edge-tts "+N%" notation."""
    if multiplier is None:
        return "+0%"
    value = int(round((multiplier - 1.0) * 100))
    return f"{value:+d}%"


def _hertz(multiplier: Optional[float], base_hz: int = 200) -> str:
    """Map a 1.0-based pitch multiplier to edge-tts "+NHz" notation."""
    if multiplier is None:
        return "+0Hz"
    value = int(round((multiplier - 1.0) * base_hz))
    return f"{value:+d}Hz"


class EdgeTTSOutputSink(OutputSink):
    """
    Edge-TTS output sink: cloud text-to-speech with local playback.

    Uses the Microsoft Edge TTS service (edge-tts package), decodes the MP3
    with pydub and plays it with sounddevice on the default output device.

    Args:
        voice: Microsoft neural voice name (default: "en-US-AriaNeural")
    """

    def __init__(self, voice: str = DEFAULT_VOICE):
        self.voice = voice
        self._stop_requested = threading.Event()

    async def speak(self, text: str, options: Optional[SpeechOptions] = None) -> SpeechResult:
        """
        Speak text (returns when playback finishes, fails or is stopped).

        1. Synthesize MP3 via edge-tts into a temp directory
        2. Decode via pydub (ffmpeg) to samples
        3. Play with sounddevice, polling for stop()
        """
        if not text or not text.strip():
            return SpeechResult(text=text or "")

        options = options or SpeechOptions()
        self._stop_requested.clear()
        log_event(f"TTS start chars={len(text)}", stage="tts")

        try:
            import edge_tts

            with tempfile.TemporaryDirectory() as tmpdir:
                out_path = os.path.join(tmpdir, "edge_tts_output.mp3")
                communicate = edge_tts.Communicate(
                    text=text,
                    voice=self.voice,
                    rate=_percent(options.rate),
                    pitch=_hertz(options.pitch),
                    volume=_percent(options.volume),
                )
                await communicate.save(out_path)

                if self._stop_requested.is_set():
                    return SpeechResult(text=text)

                await asyncio.to_thread(self._play_file, out_path)
        except Exception as e:
            logger.error(f"[TTS] speak() failed: {type(e).__name__}: {e}")
            return SpeechResult(text=text, error=f"{type(e).__name__}: {e}")

        log_event("TTS done", stage="tts")
        return SpeechResult(text=text)

    def _play_file(self, path: str) -> None:
        import numpy as np
        import sounddevice as sd
        from pydub import AudioSegment

        audio = AudioSegment.from_file(path)
        samples = np.array(audio.get_array_of_samples())
        if audio.channels > 1:
            samples = samples.reshape((-1, audio.channels))
        samples = samples.astype(np.float32) / (1 << (8 * audio.sample_width - 1))

        # Normalize to prevent clipping
        peak = float(np.max(np.abs(samples))) if samples.size else 0.0
        if peak > 0:
            samples = samples * (0.8 / peak)

        sd.play(samples, samplerate=audio.frame_rate, blocking=False)
        while not self._stop_requested.is_set():
            stream = sd.get_stream()
            if not stream or not stream.active:
                break
            time.sleep(0.01)
        if self._stop_requested.is_set():
            sd.stop()

    def stop_sync(self) -> None:
        """Stop playback immediately (idempotent, never raises)."""
        self._stop_requested.set()
        try:
            import sounddevice

            sounddevice.stop()
        except Exception as e:
            logger.debug(f"[TTS] stop ignored: {e}")

    async def stop(self) -> None:
        self.stop_sync()


# ============================================================================
# GLOBAL INSTANCE
# ============================================================================

_output_sink: Optional[OutputSink] = None
"""Global output sink instance (lazy initialization)."""


def get_output_sink() -> OutputSink:
    """Return the global sink, creating it from VOICE_ENABLED on first use."""
    global _output_sink
    if _output_sink is None:
        if VOICE_ENABLED:
            _output_sink = EdgeTTSOutputSink()
        else:
            logger.warning(
                "[TTS] Audio output is disabled (VOICE_ENABLED!=true); responses are printed only"
            )
            _output_sink = SilentOutputSink()
    return _output_sink


def set_output_sink(sink: Optional[OutputSink]) -> None:
    """
    Replace the global OutputSink.

    Args:
        sink: New OutputSink implementation (None to re-create lazily)
    """
    global _output_sink
    _output_sink = sink
