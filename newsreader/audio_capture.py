"""
Audio Capture Port

Responsibility: Open the microphone, collect frames, hand back a WAV file.
Nothing more.

Does NOT:
- Decide when to record (the engine owns the activity flags)
- Transcribe (speech_to_text)
- Retry on device errors (raises, engine re-prompts)

SoundDeviceCapture records 16 kHz mono int16 through a sounddevice
InputStream; the callback appends frames until max_duration is reached,
stop_recording() writes them to a temp WAV with soundfile.
"""

import logging
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from newsreader.instrumentation import log_event
from newsreader.models import AudioRef

logger = logging.getLogger(__name__)

# ============================================================================
# INPUT CONSTANTS
# ============================================================================
INPUT_SAMPLE_RATE = 16000
CHANNELS = 1
BLOCK_SIZE = 1024
INPUT_DTYPE = "int16"


class MicrophonePermissionError(Exception):
    """Microphone access denied or no input device available."""


class RecordingError(Exception):
    """A recording could not be started or produced no audio."""


# ============================================================================
# PORT INTERFACE
# ============================================================================

class RecordingHandle:
    """
    One in-progress recording.

    Frames are appended from the audio thread; reads happen after the
    stream is stopped.
    """

    def __init__(self, sample_rate: int, max_duration: Optional[float] = None):
        self.sample_rate = sample_rate
        self.max_duration = max_duration
        self.max_frames = int(max_duration * sample_rate) if max_duration else None
        self.started_at = time.monotonic()
        self.frames: List = []
        self.frame_count = 0
        self.stream = None
        self.stopped = False
        self._lock = threading.Lock()

    def append(self, block) -> None:
        with self._lock:
            if self.max_frames is not None:
                room = self.max_frames - self.frame_count
                if room <= 0:
                    return
                block = block[:room]
            self.frames.append(block.copy())
            self.frame_count += len(block)

    @property
    def full(self) -> bool:
        return self.max_frames is not None and self.frame_count >= self.max_frames


class AudioCapture(ABC):
    """Microphone boundary used by the conversation engine."""

    @abstractmethod
    def check_permission(self) -> bool:
        """True when a usable input device can be opened."""

    @abstractmethod
    def start_recording(self, max_duration: Optional[float] = None) -> RecordingHandle:
        """
        Begin capturing.

        Args:
            max_duration: Seconds after which frames are discarded (None = unbounded)

        Raises:
            RecordingError: Device could not be opened
        """

    @abstractmethod
    def stop_recording(self, handle: RecordingHandle) -> Optional[AudioRef]:
        """
        Finish capturing.

        Returns:
            AudioRef to a WAV file, or None when nothing was recorded
        """


# ============================================================================
# SOUNDDEVICE IMPLEMENTATION
# ============================================================================

class SoundDeviceCapture(AudioCapture):
    """Microphone capture via sounddevice, WAV output via soundfile."""

    def __init__(
        self,
        sample_rate: int = INPUT_SAMPLE_RATE,
        channels: int = CHANNELS,
        input_device_index: Optional[int] = None,
        output_dir: Optional[str] = None,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.input_device_index = input_device_index
        self.output_dir = output_dir or tempfile.gettempdir()

    def check_permission(self) -> bool:
        import sounddevice as sd

        try:
            device = sd.query_devices(self.input_device_index, "input")
            sd.check_input_settings(
                device=self.input_device_index,
                channels=self.channels,
                samplerate=self.sample_rate,
                dtype=INPUT_DTYPE,
            )
        except Exception as e:
            logger.error(f"[MIC] No usable input device: {e}")
            return False
        logger.info(f"[MIC] Input device: {device['name']} @ {self.sample_rate}Hz")
        return True

    def start_recording(self, max_duration: Optional[float] = None) -> RecordingHandle:
        import sounddevice as sd

        handle = RecordingHandle(self.sample_rate, max_duration)

        def audio_callback(indata, frames, time_info, status):
            if status:
                logger.debug(f"[MIC] Stream status: {status}")
            handle.append(indata)

        try:
            stream = sd.InputStream(
                device=self.input_device_index,
                samplerate=self.sample_rate,
                channels=self.channels,
                blocksize=BLOCK_SIZE,
                dtype=INPUT_DTYPE,
                callback=audio_callback,
            )
            stream.start()
        except Exception as e:
            raise RecordingError(f"Could not open input stream: {e}") from e

        handle.stream = stream
        log_event(f"Recording start max={max_duration}", stage="mic")
        return handle

    def stop_recording(self, handle: RecordingHandle) -> Optional[AudioRef]:
        import numpy as np
        import soundfile as sf

        if handle.stopped:
            return None
        handle.stopped = True

        if handle.stream is not None:
            try:
                handle.stream.stop()
            finally:
                handle.stream.close()

        if not handle.frames:
            logger.warning("[MIC] Recording stopped with no frames")
            return None

        audio = np.concatenate(handle.frames, axis=0)
        fd, path = tempfile.mkstemp(prefix="newsreader_", suffix=".wav", dir=self.output_dir)
        os.close(fd)
        sf.write(path, audio, self.sample_rate, subtype="PCM_16")

        duration = len(audio) / float(self.sample_rate)
        log_event(f"Recording stop duration={duration:.2f}s", stage="mic")
        return AudioRef(path=Path(path), sample_rate=self.sample_rate, duration_seconds=duration)
