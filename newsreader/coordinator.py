"""
COORDINATOR: NEWS READER CONVERSATION ENGINE

Orchestration layer that drives one listening session end to end.

Pipeline:
1. AskingQuestion: speak the question for the current step (topic, outlet)
2. Recording: capture the spoken answer (fixed window)
3. Transcribing: upload + poll, then skip / store the answer and confirm
4. After the last step: search for articles
5. SelectingArticle: announce a page of titles, listen for a number or "more"
6. ReadingArticle: fetch, extract, speak sentence by sentence
7. AwaitingContinuation: "another article?" yes → restart, no → goodbye

Core rules:
- One activity at a time: speaking, recording and transcription never overlap
  (ActivityGate). A recording start while busy is a silent no-op.
- Every wait is bounded: speech by the TTS timeout, every listen by a
  watchdog. A timed-out listen is a failed turn, never a hang.
- Speech success and speech failure lead to the same next step.
- Boundary failures degrade to a spoken message and a transition. Only a
  missing microphone stops the session before it starts.
- Only this class mutates ConversationState.

What Coordinator does NOT:
- Parse HTML (content_extractor)
- Interpret words (intent_parser)
- Talk HTTP (speech_to_text, news_client, article_fetcher)
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence

from newsreader import policy
from newsreader.activity_gate import ActivityGate
from newsreader.article_fetcher import ArticleFetchError
from newsreader.audio_capture import AudioCapture, MicrophonePermissionError, RecordingError
from newsreader.config import Config, get_config
from newsreader.content_extractor import ContentExtractor, ExtractionError
from newsreader.instrumentation import log_event
from newsreader.intent_parser import (
    ContinuationAnswer,
    SelectionKind,
    classify_continuation,
    is_skip,
    parse_selection,
)
from newsreader.models import AudioRef, SpeechOptions, SpeechResult
from newsreader.output_sink import OutputSink
from newsreader.sentence_splitter import clean_for_speech, pause_after
from newsreader.speech_to_text import TranscriptionError
from newsreader.state_machine import STEPS, ConversationState, Phase
from newsreader.watchdog import Watchdog, WatchdogTimeout, run_with_watchdog

logger = logging.getLogger(__name__)


# ============================================================================
# SPOKEN MESSAGES
# ============================================================================

NO_ARTICLES_MESSAGE = "No articles were found for the given topic and source."
NO_MORE_ARTICLES_MESSAGE = "No more articles available. Please choose from the current list."
EXTRACTION_FAILED_MESSAGE = (
    "Could not extract readable content from this article. Please try a different article."
)
ARTICLE_ERROR_MESSAGE = "There was an error processing the article. Please try again."
READING_COMPLETE_PROMPT = (
    "Article reading completed. Would you like to hear another article? Say yes or no."
)
CONTINUATION_CLARIFY_MESSAGE = "Sorry, I didn't catch that. Please say yes or no."
FAREWELL_MESSAGE = "Okay. Thanks for listening. Goodbye."

PROGRESS_LOG_EVERY = 10


class Coordinator:
    """
    Turn-taking engine over the five ports.

    Args:
        output_sink: Speech output port
        audio_capture: Microphone port
        transcriber: Object with async transcribe(AudioRef) -> str
        news_client: Object with async search(topic, outlet) -> list[Article]
        article_fetcher: Object with async fetch_async(url) -> str
        extractor: ContentExtractor (built from config when omitted)
        config: Config (global config when omitted)
        on_status_update: Optional callback receiving snapshot() on every transition
    """

    def __init__(
        self,
        output_sink: OutputSink,
        audio_capture: AudioCapture,
        transcriber,
        news_client,
        article_fetcher,
        extractor: Optional[ContentExtractor] = None,
        config: Optional[Config] = None,
        on_status_update: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.sink = output_sink
        self.capture = audio_capture
        self.transcriber = transcriber
        self.news_client = news_client
        self.fetcher = article_fetcher
        self.config = config or get_config()
        self.on_status_update = on_status_update

        cfg = self.config
        self.settle_delay = cfg.get("conversation.settle_delay_seconds", policy.SETTLE_DELAY_SECONDS)
        self.reset_delay = cfg.get("conversation.reset_delay_seconds", policy.RESET_DELAY_SECONDS)
        self.relisten_delay = cfg.get("conversation.relisten_delay_seconds", policy.RELISTEN_DELAY_SECONDS)
        self.answer_seconds = cfg.get("conversation.answer_record_seconds", policy.ANSWER_RECORD_SECONDS)
        self.selection_seconds = cfg.get(
            "conversation.selection_record_seconds", policy.SELECTION_RECORD_SECONDS
        )
        self.listen_window = cfg.get("conversation.listen_watchdog_seconds", policy.LISTEN_WATCHDOG_SECONDS)
        self.continuation_window = cfg.get(
            "conversation.continuation_watchdog_seconds", policy.CONTINUATION_WATCHDOG_SECONDS
        )
        self.max_failed_turns = cfg.get("conversation.max_failed_turns", policy.MAX_FAILED_TURNS)
        self.pause_scale = cfg.get("conversation.sentence_pause_scale", 1.0)
        self.tts_timeout = cfg.get("speech.timeout_seconds", policy.TTS_TIMEOUT_SECONDS)
        self.reading_options = SpeechOptions(
            rate=cfg.get("speech.reading_rate", policy.READING_RATE),
            pitch=cfg.get("speech.reading_pitch", policy.READING_PITCH),
        )

        self.extractor = extractor or ContentExtractor(
            min_length=cfg.get("extraction.min_length", 100),
            selector_min_length=cfg.get("extraction.selector_min_length", 200),
            block_min_length=cfg.get("extraction.block_min_length", 100),
            sentence_min_length=cfg.get("extraction.sentence_min_length", 8),
        )

        self.state = ConversationState(
            steps=STEPS,
            page_size=cfg.get("conversation.page_size", policy.PAGE_SIZE),
            on_state_change=self._on_state_change,
        )

        self.session_id = ""
        self._failed_turns = 0
        self._announce_page = False
        self._continue_reading = False

    # ========================================================================
    # SESSION LOOP
    # ========================================================================

    async def run(self) -> None:
        """
        Run one session until it settles in IDLE.

        Raises:
            MicrophonePermissionError: No usable microphone (nothing is spoken)
        """
        if not self.capture.check_permission():
            logger.error("[ENGINE] Microphone permission denied; session not started")
            raise MicrophonePermissionError("Microphone access is required to start a session")

        self._start_session()

        handlers = {
            Phase.ASKING_QUESTION: self._question_turn,
            Phase.SELECTING_ARTICLE: self._selection_turn,
            Phase.READING_ARTICLE: self._reading_turn,
            Phase.AWAITING_CONTINUATION: self._continuation_turn,
        }

        while self.state.phase != Phase.IDLE:
            handler = handlers.get(self.state.phase)
            if handler is None:
                raise RuntimeError(f"No handler for phase {self.state.phase.value}")
            await handler()

        logger.info("[ENGINE] Session ended")

    def _start_session(self) -> None:
        self.session_id = uuid.uuid4().hex[:8]
        self._failed_turns = 0
        self._announce_page = False
        self._continue_reading = False
        log_event("Session start", stage="engine", session_id=self.session_id)
        self.state.transition(Phase.ASKING_QUESTION)

    def _restart(self) -> None:
        """Full reset, then start over at the first question."""
        self.state.reset()
        self._start_session()

    def _end(self) -> None:
        """Full reset, staying in IDLE."""
        self.state.reset()

    async def _register_failure(self, reason: str) -> bool:
        """
        Count a failed turn.

        Returns:
            True when the failure budget is exhausted and the session ended
        """
        self._failed_turns += 1
        logger.warning(
            f"[ENGINE] Failed turn {self._failed_turns}/{self.max_failed_turns}: {reason}"
        )
        if self._failed_turns < self.max_failed_turns:
            return False
        await self._speak(policy.FALLBACK_RESPONSE)
        self._end()
        return True

    # ========================================================================
    # QUESTION TURN
    # ========================================================================

    async def _question_turn(self) -> None:
        step = self.state.current_step
        if step is None:
            raise RuntimeError("Asking a question past the end of the sequence")

        await self._speak(step.question)
        await asyncio.sleep(self.settle_delay)

        self.state.transition(Phase.RECORDING)
        text = await self._listen(
            self.answer_seconds,
            self.listen_window,
            on_captured=lambda: self.state.transition(Phase.TRANSCRIBING),
        )

        if not text:
            # Back to the question (from Recording or Transcribing)
            self.state.transition(Phase.ASKING_QUESTION)
            await self._register_failure("no transcript")
            return

        self._failed_turns = 0
        if is_skip(text):
            self.state.record_answer(step.key, text, skipped=True)
            self._publish()
            await self._speak(f"Skipping {step.skip_label}.")
        else:
            self.state.record_answer(step.key, text)
            self._publish()
            await self._speak("You said: " + text)

        self.state.advance_step()
        if self.state.ready_to_fetch and self.state.all_answered():
            await self._fetch_articles()
        else:
            self.state.transition(Phase.ASKING_QUESTION)

    async def _fetch_articles(self) -> None:
        topic = self.state.answer_for("topic")
        outlet = self.state.answer_for("outlet")
        logger.info(f"[ENGINE] Searching topic='{topic}' outlet='{outlet}'")

        articles = await self.news_client.search(topic, outlet)
        if not articles:
            await self._speak(NO_ARTICLES_MESSAGE)
            await asyncio.sleep(self.reset_delay)
            self._restart()
            return

        self.state.load_articles(articles)
        self._announce_page = True
        self.state.transition(Phase.SELECTING_ARTICLE)

    # ========================================================================
    # ARTICLE SELECTION
    # ========================================================================

    def _choice_prompt(self) -> str:
        count = len(self.state.current_page())
        prompt = f"Say a number from 1 to {count} to choose an article"
        if self.state.has_next_page():
            return prompt + f", or say 'more' to hear the next {self.state.page_size} articles."
        return prompt + "."

    def _clarification(self) -> str:
        count = len(self.state.current_page())
        message = f"I did not understand. Say a number from 1 to {count} to choose an article"
        if self.state.has_next_page():
            return message + ", or say 'more' for the next page."
        return message + "."

    async def _announce(self) -> None:
        page = self.state.current_page()
        logger.info(
            f"[ENGINE] Announcing page {self.state.page_index + 1}/{self.state.page_count}"
        )
        titles = ". ".join(f"Article {i}: {article.title}" for i, article in enumerate(page, start=1))
        await self._speak(f"{titles}. {self._choice_prompt()}")
        self._announce_page = False

    async def _selection_turn(self) -> None:
        if self._announce_page:
            await self._announce()
        await asyncio.sleep(self.settle_delay)

        text = await self._listen(self.selection_seconds, self.listen_window, explicit_stop=True)
        if not text:
            if await self._register_failure("no selection transcript"):
                return
            await self._speak(self._clarification())
            return

        self._failed_turns = 0
        selection = parse_selection(text)
        page = self.state.current_page()

        if selection.kind is SelectionKind.MORE:
            if self.state.next_page():
                self._announce_page = True
                self._publish()
            else:
                await self._speak(NO_MORE_ARTICLES_MESSAGE)
                await asyncio.sleep(self.relisten_delay)
            return

        if selection.kind is SelectionKind.NUMBER and 1 <= selection.number <= len(page):
            article = page[selection.number - 1]
            logger.info(f"[ENGINE] Selected article {selection.number}: {article.title}")
            self.state.select(article)
            self._continue_reading = True
            self.state.transition(Phase.READING_ARTICLE)
            return

        logger.info(f"[ENGINE] Unusable selection '{text}'")
        await self._speak(self._clarification())

    # ========================================================================
    # READING
    # ========================================================================

    async def _reading_turn(self) -> None:
        article = self.state.selected_article
        try:
            html = await self.fetcher.fetch_async(article.url)
            with Watchdog("extract", policy.EXTRACT_WARN_SECONDS):
                document = await asyncio.to_thread(self.extractor.extract, html)
        except ExtractionError as e:
            logger.warning(f"[ENGINE] Extraction failed for {article.url}: {e}")
            await self._back_to_selection(EXTRACTION_FAILED_MESSAGE)
            return
        except ArticleFetchError as e:
            logger.warning(f"[ENGINE] Fetch failed for {article.url}: {e}")
            await self._back_to_selection(ARTICLE_ERROR_MESSAGE)
            return
        except Exception as e:
            logger.error(f"[ENGINE] Processing {article.url} failed: {type(e).__name__}: {e}")
            await self._back_to_selection(ARTICLE_ERROR_MESSAGE)
            return

        self.state.document = document
        self._publish()

        if not await self._read_sentences(document.sentences):
            logger.info("[ENGINE] Reading stopped by user")
            self._end()
            return

        await self._speak(READING_COMPLETE_PROMPT)
        self.state.transition(Phase.AWAITING_CONTINUATION)

    async def _back_to_selection(self, message: str) -> None:
        await self._speak(message)
        self.state.clear_selection()
        self._announce_page = True
        self.state.transition(Phase.SELECTING_ARTICLE)

    async def _read_sentences(self, sentences: Sequence[str]) -> bool:
        """
        Speak sentences in order, checking the stop signal at every boundary.

        Returns:
            True if every sentence was spoken, False if the user stopped
        """
        total = len(sentences)
        for index, sentence in enumerate(sentences, start=1):
            if not self._continue_reading:
                return False
            text = clean_for_speech(sentence)
            if text:
                await self._speak(text, self.reading_options)
            if not self._continue_reading:
                return False
            if index % PROGRESS_LOG_EVERY == 0:
                logger.info(f"[ENGINE] Progress: {index}/{total} sentences ({index * 100 // total}%)")
            await asyncio.sleep(pause_after(sentence) * self.pause_scale)
        return self._continue_reading

    def request_stop(self) -> bool:
        """
        Ask the reading loop to stop at the next sentence boundary.

        Returns:
            True if an article was being read
        """
        if self.state.phase != Phase.READING_ARTICLE:
            logger.debug("[ENGINE] Stop ignored: not reading")
            return False
        self._continue_reading = False
        log_event("User stop", stage="engine", session_id=self.session_id)
        return True

    async def stop_reading(self) -> None:
        """User stop: end the reading loop and cut the current sentence."""
        if self.request_stop():
            await self.sink.stop()

    # ========================================================================
    # CONTINUATION
    # ========================================================================

    async def _continuation_turn(self) -> None:
        for attempt in range(2):
            await asyncio.sleep(self.settle_delay)
            text = await self._listen(self.answer_seconds, self.continuation_window)
            answer = classify_continuation(text)
            logger.info(f"[ENGINE] Continuation '{text}' -> {answer.value}")

            if answer is ContinuationAnswer.POSITIVE:
                self._restart()
                return
            if answer is ContinuationAnswer.NEGATIVE:
                await self._speak(FAREWELL_MESSAGE)
                await asyncio.sleep(self.reset_delay)
                self._end()
                return
            if attempt == 0:
                await self._speak(CONTINUATION_CLARIFY_MESSAGE)

        logger.info("[ENGINE] No clear continuation answer; resetting")
        self._restart()

    # ========================================================================
    # SPEAKING / LISTENING
    # ========================================================================

    async def _speak(self, text: str, options: Optional[SpeechOptions] = None) -> SpeechResult:
        """Speak one utterance. Always returns; failures carry an error."""
        log_event(f"Speak '{text[:60]}'", stage="tts", session_id=self.session_id)
        with self.state.flags.hold(ActivityGate.SPEAKING):
            self._publish()
            try:
                result = await run_with_watchdog(
                    self.sink.speak(text, options), self.tts_timeout, "speak"
                )
            except WatchdogTimeout as e:
                await self.sink.stop()
                result = SpeechResult(text=text, error=str(e))
            except Exception as e:
                logger.error(f"[ENGINE] Speech failed: {type(e).__name__}: {e}")
                result = SpeechResult(text=text, error=str(e))
        if not result.ok:
            logger.warning(f"[ENGINE] Speech finished with error: {result.error}")
        self._publish()
        return result

    async def _listen(
        self,
        record_seconds: float,
        window: float,
        explicit_stop: bool = False,
        on_captured: Optional[Callable[[], None]] = None,
    ) -> Optional[str]:
        """
        Record then transcribe, bounded by a watchdog window.

        Returns:
            Transcript text, or None when the turn produced nothing usable
        """
        try:
            return await run_with_watchdog(
                self._capture_and_transcribe(record_seconds, explicit_stop, on_captured),
                window,
                "listen",
            )
        except WatchdogTimeout:
            return None
        except RecordingError as e:
            logger.warning(f"[ENGINE] Recording failed: {e}")
            return None
        except TranscriptionError as e:
            logger.warning(f"[ENGINE] Transcription failed: {e}")
            return None

    async def _capture_and_transcribe(
        self,
        record_seconds: float,
        explicit_stop: bool,
        on_captured: Optional[Callable[[], None]],
    ) -> Optional[str]:
        audio = await self._record(record_seconds, explicit_stop)
        if audio is None:
            return None
        if on_captured:
            on_captured()
        try:
            return await self._transcribe(audio)
        finally:
            _discard(audio)

    async def _record(self, seconds: float, explicit_stop: bool) -> Optional[AudioRef]:
        flags = self.state.flags
        if not flags.acquire(ActivityGate.RECORDING):
            logger.info(f"[ENGINE] Recording start ignored: {flags.active} active")
            return None

        handle = None
        audio = None
        try:
            self._publish()
            handle = self.capture.start_recording(None if explicit_stop else seconds)
            await asyncio.sleep(seconds)
        finally:
            if handle is not None:
                audio = self.capture.stop_recording(handle)
            flags.release(ActivityGate.RECORDING)
            self._publish()

        if audio is None:
            raise RecordingError("Recording produced no audio")
        return audio

    async def _transcribe(self, audio: AudioRef) -> str:
        with self.state.flags.hold(ActivityGate.PROCESSING):
            self._publish()
            text = await self.transcriber.transcribe(audio)
        self._publish()
        log_event(f"Heard '{text}'", stage="stt", session_id=self.session_id)
        return text

    # ========================================================================
    # STATUS
    # ========================================================================

    def _on_state_change(self, old_phase: Phase, new_phase: Phase) -> None:
        log_event(
            f"{old_phase.value}->{new_phase.value}", stage="engine", session_id=self.session_id
        )
        self._publish()

    def _publish(self) -> None:
        if self.on_status_update:
            self.on_status_update(self.snapshot())

    def snapshot(self) -> Dict[str, Any]:
        """Status view of the session (phase, answers, paging, flags, preview)."""
        state = self.state
        phase = state.phase

        if phase == Phase.SELECTING_ARTICLE:
            step_label = "Selecting Article"
        elif phase in (Phase.READING_ARTICLE, Phase.AWAITING_CONTINUATION):
            step_label = "Reading Article"
        elif state.current_step is not None and phase != Phase.IDLE:
            step_label = state.current_step.key
        else:
            step_label = ""

        page = ""
        if state.candidate_articles:
            page = f"page {state.page_index + 1} of {state.page_count}"

        return {
            "phase": phase.value,
            "step": step_label,
            "topic": state.answer_for("topic") or "N/A",
            "outlet": state.answer_for("outlet") or "N/A",
            "articles_found": len(state.candidate_articles),
            "page": page,
            "selected": state.selected_article.title if state.selected_article else None,
            "flags": state.flags.as_dict(),
            "transcript": list(state.transcript_log),
            "content_preview": state.document.preview if state.document else "",
        }


def _discard(audio: AudioRef) -> None:
    try:
        Path(audio.path).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug(f"[ENGINE] Could not remove {audio.path}: {e}")
