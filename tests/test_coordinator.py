"""
TEST: Coordinator (simulated sessions)

Every port is a scripted fake; no audio hardware, no network.
Each fake records whether the activity flags were exclusive at the moment it
was called, and every test asserts there were no violations.

Sessions end either naturally (user says "no", user stop) or through the
failed-turn budget once the scripted transcripts run out.
"""

import asyncio
from pathlib import Path

import pytest

from newsreader import coordinator as engine
from newsreader.activity_gate import ActivityGate
from newsreader.audio_capture import AudioCapture, MicrophonePermissionError, RecordingHandle
from newsreader.article_fetcher import ArticleFetchError
from newsreader.config import Config
from newsreader.coordinator import Coordinator
from newsreader.models import Article, AudioRef, SpeechResult
from newsreader.output_sink import OutputSink
from newsreader.policy import FALLBACK_RESPONSE
from newsreader.speech_to_text import TranscriptionError
from newsreader.state_machine import STEPS, Phase

TOPIC_QUESTION = STEPS[0].question
OUTLET_QUESTION = STEPS[1].question

S1 = "The council approved the transit plan on Tuesday after a long debate."
S2 = "Supporters said the plan would cut commute times across the whole region."
S3 = "Opponents warned that the budget was unrealistic and the schedule too tight."
ARTICLE_HTML = f"<html><body><nav>Menu</nav><article><p>{S1}</p><p>{S2}</p><p>{S3}</p></article></body></html>"

HANG = object()


def _articles(count):
    return [Article(title=f"Title {i}", source_name="Wire", url=f"https://example.com/{i}") for i in range(count)]


# ============================================================================
# FAKE PORTS
# ============================================================================

class FlagMonitor:
    """Checks the exclusive-flag invariant on every port call."""

    def __init__(self):
        self.coordinator = None
        self.violations = []

    def expect_only(self, flag_name, where):
        flags = self.coordinator.state.flags.as_dict()
        expected = {name: name == flag_name for name in flags}
        if flags != expected:
            self.violations.append((where, flags))


class FakeSink(OutputSink):
    def __init__(self, monitor, mode="ok"):
        self.monitor = monitor
        self.mode = mode
        self.spoken = []
        self.options = []
        self.on_speak = None
        self.stops = 0

    async def speak(self, text, options=None):
        self.monitor.expect_only("is_speaking", f"speak:{text[:20]}")
        self.spoken.append(text)
        self.options.append(options)
        if self.on_speak:
            self.on_speak(text)
        if self.mode == "error":
            return SpeechResult(text=text, error="synth failed")
        if self.mode == "raise":
            raise RuntimeError("device gone")
        return SpeechResult(text=text)

    async def stop(self):
        self.stops += 1


class FakeCapture(AudioCapture):
    def __init__(self, monitor, permitted=True, drop=()):
        self.monitor = monitor
        self.permitted = permitted
        self.drop = set(drop)
        self.started = 0
        self.max_durations = []

    def check_permission(self):
        return self.permitted

    def start_recording(self, max_duration=None):
        self.monitor.expect_only("is_recording", "start_recording")
        self.started += 1
        self.max_durations.append(max_duration)
        return RecordingHandle(16000, max_duration)

    def stop_recording(self, handle):
        if self.started in self.drop:
            return None
        return AudioRef(path=Path("/nonexistent/newsreader-test.wav"), sample_rate=16000, duration_seconds=1.0)


class FakeTranscriber:
    def __init__(self, monitor, transcripts):
        self.monitor = monitor
        self.transcripts = list(transcripts)

    async def transcribe(self, audio_ref):
        self.monitor.expect_only("is_processing", "transcribe")
        if not self.transcripts:
            raise TranscriptionError("script exhausted")
        result = self.transcripts.pop(0)
        if result is HANG:
            await asyncio.sleep(30)
        if isinstance(result, Exception):
            raise result
        return result


class FakeNews:
    def __init__(self, articles):
        self.articles = list(articles)
        self.calls = []

    async def search(self, topic, outlet):
        self.calls.append((topic, outlet))
        return list(self.articles)


class FakeFetcher:
    def __init__(self, pages):
        self.pages = pages
        self.urls = []

    async def fetch_async(self, url):
        self.urls.append(url)
        page = self.pages.get(url, ARTICLE_HTML)
        if isinstance(page, Exception):
            raise page
        return page


def _config(**conversation):
    values = {
        "settle_delay_seconds": 0,
        "reset_delay_seconds": 0,
        "relisten_delay_seconds": 0,
        "answer_record_seconds": 0,
        "selection_record_seconds": 0,
        "listen_watchdog_seconds": 5,
        "continuation_watchdog_seconds": 5,
        "max_failed_turns": 3,
        "page_size": 5,
        "sentence_pause_scale": 0,
    }
    values.update(conversation)
    return Config({"conversation": values, "speech": {"timeout_seconds": 5}})


class Session:
    """A coordinator wired to fakes plus everything the fakes observed."""

    def __init__(
        self, transcripts, articles=(), pages=None, sink_mode="ok", permitted=True, drop=(), extractor=None,
        **conversation
    ):
        self.monitor = FlagMonitor()
        self.sink = FakeSink(self.monitor, sink_mode)
        self.capture = FakeCapture(self.monitor, permitted, drop)
        self.transcriber = FakeTranscriber(self.monitor, transcripts)
        self.news = FakeNews(articles)
        self.fetcher = FakeFetcher(pages or {})
        self.snapshots = []
        self.coordinator = Coordinator(
            self.sink,
            self.capture,
            self.transcriber,
            self.news,
            self.fetcher,
            extractor=extractor,
            config=_config(**conversation),
            on_status_update=self.snapshots.append,
        )
        self.monitor.coordinator = self.coordinator

    async def run(self):
        await asyncio.wait_for(self.coordinator.run(), timeout=10)
        assert self.monitor.violations == []
        assert self.coordinator.state.phase == Phase.IDLE
        assert not self.coordinator.state.flags.is_busy

    @property
    def spoken(self):
        return self.sink.spoken

    def phases(self):
        seq = []
        for snap in self.snapshots:
            if not seq or seq[-1] != snap["phase"]:
                seq.append(snap["phase"])
        return seq


def _announcement(titles, more=False):
    listed = ". ".join(f"Article {i}: {t}" for i, t in enumerate(titles, start=1))
    prompt = f"Say a number from 1 to {len(titles)} to choose an article"
    prompt += ", or say 'more' to hear the next 5 articles." if more else "."
    return f"{listed}. {prompt}"


# ============================================================================
# PRECONDITION
# ============================================================================

async def test_permission_denied_never_starts():
    session = Session(["climate"], permitted=False)
    with pytest.raises(MicrophonePermissionError):
        await session.coordinator.run()
    assert session.spoken == []
    assert session.coordinator.state.phase == Phase.IDLE


# ============================================================================
# SCENARIOS
# ============================================================================

async def test_scenario_a_topic_only_no_articles_restarts():
    session = Session(["climate", "skip"], articles=[])

    await session.run()

    assert session.news.calls == [("climate", "")]
    assert session.spoken[:6] == [
        TOPIC_QUESTION,
        "You said: climate",
        OUTLET_QUESTION,
        "Skipping outlet selection.",
        engine.NO_ARTICLES_MESSAGE,
        TOPIC_QUESTION,
    ]
    phases = session.phases()
    restart = phases.index("Idle")
    assert phases[restart + 1] == "AskingQuestion"


async def test_scenario_b_more_on_last_page_relistens_same_page():
    session = Session(["climate", "CNN", "more", "2", "no"], articles=_articles(3))

    await session.run()

    assert session.spoken.count(_announcement(["Title 0", "Title 1", "Title 2"])) == 1
    more_index = session.spoken.index(engine.NO_MORE_ARTICLES_MESSAGE)
    assert session.spoken[more_index + 1] == S1
    assert session.fetcher.urls == ["https://example.com/1"]
    assert {s["page"] for s in session.snapshots if s["articles_found"]} == {"page 1 of 1"}
    assert session.spoken[-1] == engine.FAREWELL_MESSAGE


async def test_scenario_c_out_of_range_number_clarifies():
    session = Session(["climate", "CNN", "five"], articles=_articles(3))

    await session.run()

    assert "I did not understand. Say a number from 1 to 3 to choose an article." in session.spoken
    assert session.fetcher.urls == []
    assert all(s["selected"] is None for s in session.snapshots)
    assert "ReadingArticle" not in session.phases()


async def test_scenario_d_skip_topic():
    session = Session(["skip", "BBC News"], articles=[])

    await session.run()

    assert session.spoken[1] == "Skipping topic selection."
    assert session.news.calls == [("", "BBC News")]
    logged = [s["transcript"] for s in session.snapshots if s["transcript"]]
    assert logged[-1] == ["topic: [SKIPPED]", "outlet: BBC News"]
    assert any(s["topic"] == "N/A" and s["outlet"] == "BBC News" for s in session.snapshots)


async def test_scenario_e_stop_mid_article():
    session = Session(["climate", "CNN", "1"], articles=_articles(3))

    def stop_on_second_sentence(text):
        if text == S2:
            session.coordinator.request_stop()

    session.sink.on_speak = stop_on_second_sentence

    await session.run()

    assert S1 in session.spoken and S2 in session.spoken
    assert S3 not in session.spoken
    assert engine.READING_COMPLETE_PROMPT not in session.spoken
    assert session.spoken.count(TOPIC_QUESTION) == 1


# ============================================================================
# SELECTION AND READING
# ============================================================================

async def test_more_advances_to_next_page():
    session = Session(["climate", "CNN", "more", "1", "no"], articles=_articles(7))

    await session.run()

    titles_page_1 = [f"Title {i}" for i in range(5)]
    assert _announcement(titles_page_1, more=True) in session.spoken
    assert _announcement(["Title 5", "Title 6"]) in session.spoken
    assert session.fetcher.urls == ["https://example.com/5"]
    assert "page 2 of 2" in {s["page"] for s in session.snapshots}


async def test_article_read_sentence_by_sentence_with_reading_voice():
    session = Session(["climate", "CNN", "3", "no"], articles=_articles(3))

    await session.run()

    start = session.spoken.index(S1)
    assert session.spoken[start:start + 4] == [S1, S2, S3, engine.READING_COMPLETE_PROMPT]
    reading_options = session.sink.options[start]
    assert (reading_options.rate, reading_options.pitch) == (0.85, 1.0)
    assert any(s["content_preview"].startswith(S1) for s in session.snapshots)


@pytest.mark.parametrize(
    "page, message",
    [
        ("<html><body><p>Too short.</p></body></html>", engine.EXTRACTION_FAILED_MESSAGE),
        (ArticleFetchError("404"), engine.ARTICLE_ERROR_MESSAGE),
    ],
)
async def test_unreadable_article_returns_to_same_page(page, message):
    session = Session(
        ["climate", "CNN", "2", "1", "no"],
        articles=_articles(3),
        pages={"https://example.com/1": page},
    )

    await session.run()

    assert message in session.spoken
    assert session.spoken.count(_announcement(["Title 0", "Title 1", "Title 2"])) == 2
    assert session.fetcher.urls == ["https://example.com/1", "https://example.com/0"]
    assert S1 in session.spoken


class FailingExtractor:
    """Extractor that breaks in a way the engine has no specific handler for."""

    def __init__(self):
        self.calls = 0

    def extract(self, html):
        self.calls += 1
        raise ValueError("parser blew up")


async def test_unexpected_processing_error_returns_to_selection():
    extractor = FailingExtractor()
    session = Session(["climate", "CNN", "1", "2"], articles=_articles(3), extractor=extractor)

    await session.run()

    assert extractor.calls == 2
    assert session.spoken.count(engine.ARTICLE_ERROR_MESSAGE) == 2
    assert session.spoken.count(_announcement(["Title 0", "Title 1", "Title 2"])) == 3
    assert session.spoken[-1] == FALLBACK_RESPONSE


async def test_unexpected_fetch_error_returns_to_selection():
    session = Session(
        ["climate", "CNN", "1", "2", "no"],
        articles=_articles(3),
        pages={"https://example.com/0": RuntimeError("connection reset")},
    )

    await session.run()

    assert engine.ARTICLE_ERROR_MESSAGE in session.spoken
    assert session.fetcher.urls == ["https://example.com/0", "https://example.com/1"]
    assert session.spoken[-1] == engine.FAREWELL_MESSAGE


async def test_deeply_nested_article_is_read():
    deep = "<div>" * 1500 + f"<p>{S1}</p><p>{S2}</p><p>{S3}</p>" + "</div>" * 1500
    session = Session(
        ["climate", "CNN", "1", "no"],
        articles=_articles(3),
        pages={"https://example.com/0": f"<html><body>{deep}</body></html>"},
    )

    await session.run()

    start = session.spoken.index(S1)
    assert session.spoken[start:start + 3] == [S1, S2, S3]


async def test_selection_uses_unbounded_capture_then_explicit_stop():
    session = Session(["climate", "CNN", "1", "no"], articles=_articles(3), answer_record_seconds=0.01)

    await session.run()

    # topic, outlet, selection, continuation
    assert session.capture.max_durations == [0.01, 0.01, None, 0.01]


# ============================================================================
# CONTINUATION
# ============================================================================

async def test_yes_restarts_at_first_question():
    session = Session(["climate", "CNN", "1", "Yes."], articles=_articles(3))

    await session.run()

    reading_done = session.spoken.index(engine.READING_COMPLETE_PROMPT)
    assert session.spoken[reading_done + 1] == TOPIC_QUESTION
    assert session.spoken[-1] == FALLBACK_RESPONSE


async def test_unclear_twice_forces_reset():
    session = Session(["climate", "CNN", "1", "maybe", "hmm"], articles=_articles(3))

    await session.run()

    reading_done = session.spoken.index(engine.READING_COMPLETE_PROMPT)
    assert session.spoken[reading_done + 1] == engine.CONTINUATION_CLARIFY_MESSAGE
    assert session.spoken[reading_done + 2] == TOPIC_QUESTION


async def test_no_ends_session_in_idle():
    session = Session(["climate", "CNN", "1", "No, I'm done."], articles=_articles(3))

    await session.run()

    assert session.spoken[-1] == engine.FAREWELL_MESSAGE
    assert session.spoken.count(TOPIC_QUESTION) == 1


# ============================================================================
# FAILURES
# ============================================================================

async def test_failed_turns_end_with_fallback():
    session = Session([TranscriptionError("bad audio"), "", TranscriptionError("again")])

    await session.run()

    assert session.spoken == [TOPIC_QUESTION] * 3 + [FALLBACK_RESPONSE]
    assert session.news.calls == []


async def test_successful_turn_resets_failure_budget():
    session = Session([TranscriptionError("x"), TranscriptionError("y"), "climate", "skip"], articles=[])

    await session.run()

    assert session.news.calls == [("climate", "")]


async def test_recording_without_audio_reprompts():
    session = Session(["climate", "skip"], articles=[], drop={1})

    await session.run()

    assert session.spoken[:3] == [TOPIC_QUESTION, TOPIC_QUESTION, "You said: climate"]


async def test_listen_watchdog_clears_flags():
    session = Session([HANG, "climate", "skip"], articles=[], listen_watchdog_seconds=0.05)

    await session.run()

    assert session.spoken[:3] == [TOPIC_QUESTION, TOPIC_QUESTION, "You said: climate"]
    assert session.news.calls == [("climate", "")]


@pytest.mark.parametrize("mode", ["error", "raise"])
async def test_speech_failure_does_not_block_flow(mode):
    session = Session(["climate", "skip"], articles=[], sink_mode=mode)

    await session.run()

    assert session.news.calls == [("climate", "")]


async def test_recording_start_ignored_while_busy():
    session = Session([])
    flags = session.coordinator.state.flags
    flags.acquire(ActivityGate.SPEAKING)

    assert await session.coordinator._record(0, explicit_stop=False) is None
    assert session.capture.started == 0
    assert flags.is_speaking


async def test_stop_reading_ignored_outside_reading():
    session = Session([])
    await session.coordinator.stop_reading()
    assert session.sink.stops == 0
