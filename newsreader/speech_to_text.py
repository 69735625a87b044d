"""
Speech-to-Text Module

Responsibility: Accept a recording, return text.
Nothing more.

Does NOT:
- Decide what the text means (intent_parser)
- Touch conversation state or activity flags (engine owns them)
- Record audio (audio_capture)

Remote three-call protocol (AssemblyAI v2 shape, also served by the gateway):
1. POST {base}/upload        raw audio bytes      -> {"upload_url": ...}
2. POST {base}/transcript    {"audio_url": ...}   -> {"id": ..., "status": ...}
3. GET  {base}/transcript/id                      -> {"status", "text", "error"}

Step 3 repeats every poll_interval seconds until "completed" or "error",
at most max_poll_attempts times.
"""

import asyncio
import logging
import re
import time
from typing import Any, Dict, Optional

import requests

from newsreader import policy
from newsreader.instrumentation import log_event, log_latency
from newsreader.models import AudioRef

logger = logging.getLogger(__name__)

_TRAILING_PUNCTUATION = re.compile(r"[.。！？!?]+$")

STATUS_COMPLETED = "completed"
STATUS_ERROR = "error"


class TranscriptionError(Exception):
    """Upload, job creation or the transcription itself failed."""


class TranscriptionTimeout(TranscriptionError):
    """Job never completed within the poll budget."""


def strip_trailing_punctuation(text: Optional[str]) -> str:
    """Remove trailing . 。 ！ ？ ! ? runs and surrounding whitespace."""
    if not text:
        return ""
    return _TRAILING_PUNCTUATION.sub("", text.strip()).strip()


class TranscriptionClient:
    """
    Client for the remote transcription service.

    The HTTP calls are synchronous (requests); transcribe() runs them in a
    worker thread so the event loop keeps serving stop requests.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        poll_interval: float = policy.TRANSCRIPT_POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = policy.TRANSCRIPT_MAX_POLL_ATTEMPTS,
        timeout: float = policy.HTTP_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["authorization"] = self.api_key
        if extra:
            headers.update(extra)
        return headers

    def _json(self, response: requests.Response, what: str) -> Dict[str, Any]:
        try:
            response.raise_for_status()
            return response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise TranscriptionError(f"{what} failed: {e}") from e

    # ========================================================================
    # PROTOCOL CALLS (SYNC)
    # ========================================================================

    def upload(self, audio_ref: AudioRef) -> str:
        """Upload a recording, return the service-side audio URL."""
        try:
            audio_bytes = audio_ref.read_bytes()
        except OSError as e:
            raise TranscriptionError(f"Cannot read recording {audio_ref.path}: {e}") from e
        if not audio_bytes:
            raise TranscriptionError("Recording is empty")

        try:
            response = self.session.post(
                f"{self.base_url}/upload",
                data=audio_bytes,
                headers=self._headers({"Content-Type": "application/octet-stream"}),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TranscriptionError(f"Upload failed: {e}") from e

        upload_url = self._json(response, "Upload").get("upload_url")
        if not upload_url:
            raise TranscriptionError("Upload response has no upload_url")
        return upload_url

    def create_transcript(self, audio_url: str) -> str:
        """Start a transcription job, return its id."""
        try:
            response = self.session.post(
                f"{self.base_url}/transcript",
                json={"audio_url": audio_url, "punctuate": True, "format_text": True},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TranscriptionError(f"Transcript request failed: {e}") from e

        transcript_id = self._json(response, "Transcript request").get("id")
        if not transcript_id:
            raise TranscriptionError("Transcript response has no id")
        return transcript_id

    def get_transcript(self, transcript_id: str) -> Dict[str, Any]:
        """Fetch job status: {"status": ..., "text": ..., "error": ...}."""
        try:
            response = self.session.get(
                f"{self.base_url}/transcript/{transcript_id}",
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise TranscriptionError(f"Polling failed: {e}") from e
        return self._json(response, "Polling")

    # ========================================================================
    # FULL ROUND TRIP
    # ========================================================================

    async def transcribe(self, audio_ref: AudioRef) -> str:
        """
        Upload, create and poll until a terminal status.

        Args:
            audio_ref: Finished recording

        Returns:
            Transcript text with trailing sentence punctuation removed

        Raises:
            TranscriptionError: Any call failed or the job reported an error
            TranscriptionTimeout: No terminal status within max_poll_attempts
        """
        started = time.monotonic()
        audio_url = await asyncio.to_thread(self.upload, audio_ref)
        transcript_id = await asyncio.to_thread(self.create_transcript, audio_url)
        logger.info(f"[STT] Job {transcript_id} created")

        for attempt in range(1, self.max_poll_attempts + 1):
            data = await asyncio.to_thread(self.get_transcript, transcript_id)
            status = data.get("status")

            if status == STATUS_COMPLETED:
                text = strip_trailing_punctuation(data.get("text"))
                log_latency("transcript_ready", started)
                log_event(f"Transcript '{text}'", stage="stt")
                return text

            if status == STATUS_ERROR:
                message = data.get("error") or "unknown error"
                logger.error(f"[STT] Job {transcript_id} failed: {message}")
                raise TranscriptionError(message)

            logger.debug(f"[STT] Job {transcript_id} {status} (attempt {attempt})")
            await asyncio.sleep(self.poll_interval)

        raise TranscriptionTimeout(
            f"Transcript {transcript_id} not ready after {self.max_poll_attempts} attempts"
        )
