#!/usr/bin/env python3
"""
News Reader - voice entry point

Asks for a topic and an outlet, lists matching articles, reads the chosen one
aloud. Press Enter while an article is being read to stop; Ctrl+C exits.

Usage:
    python main.py [--config config.json] [--log-level DEBUG] [--voice | --no-voice]
"""

import argparse
import asyncio
import logging
import sys
import threading
from pathlib import Path

# Load environment variables first
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent / ".env")

from newsreader import output_sink
from newsreader.article_fetcher import ArticleFetcher
from newsreader.audio_capture import MicrophonePermissionError, SoundDeviceCapture
from newsreader.config import Config, load_config
from newsreader.coordinator import Coordinator
from newsreader.news_client import NewsClient
from newsreader.speech_to_text import TranscriptionClient
from newsreader.version import CURRENT_VERSION

logger = logging.getLogger("newsreader.main")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Voice-driven news reader")
    parser.add_argument("--config", default="config.json", help="Path to config.json")
    parser.add_argument("--log-level", default=None, help="Override system.log_level")
    parser.add_argument(
        "--voice",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Speak through edge-tts (default: VOICE_ENABLED env var)",
    )
    return parser.parse_args(argv)


def build_coordinator(config: Config, voice: bool = None) -> Coordinator:
    """Wire the production ports from config."""
    if voice:
        output_sink.set_output_sink(output_sink.EdgeTTSOutputSink(voice=config.get("speech.voice")))
    elif voice is not None:
        output_sink.set_output_sink(output_sink.SilentOutputSink(echo=config.get("speech.echo", True)))
    sink = output_sink.get_output_sink()

    capture = SoundDeviceCapture(
        sample_rate=config.get("audio.sample_rate"),
        channels=config.get("audio.channels"),
        input_device_index=config.get("audio.input_device_index"),
    )
    transcriber = TranscriptionClient(
        base_url=config.get("transcription.base_url"),
        api_key=config.get("transcription.api_key"),
        poll_interval=config.get("transcription.poll_interval_seconds"),
        max_poll_attempts=config.get("transcription.max_poll_attempts"),
        timeout=config.get("transcription.timeout_seconds"),
    )
    news_client = NewsClient(
        base_url=config.get("news.base_url"),
        timeout=config.get("news.timeout_seconds"),
    )
    fetcher = ArticleFetcher(
        timeout=config.get("fetch.timeout_seconds"),
        retries=config.get("fetch.retries"),
        backoff_factor=config.get("fetch.backoff_factor"),
        user_agent=config.get("fetch.user_agent"),
    )
    return Coordinator(sink, capture, transcriber, news_client, fetcher, config=config)


def _watch_stdin(coordinator: Coordinator, loop: asyncio.AbstractEventLoop) -> None:
    """Enter on the console = user stop while reading."""
    for _ in sys.stdin:
        asyncio.run_coroutine_threadsafe(coordinator.stop_reading(), loop)


async def _run(coordinator: Coordinator) -> None:
    loop = asyncio.get_running_loop()
    threading.Thread(target=_watch_stdin, args=(coordinator, loop), daemon=True).start()
    await coordinator.run()


def main(argv=None) -> int:
    args = parse_args(argv)
    config = load_config(args.config)

    level = (args.log_level or config.get("system.log_level", "INFO")).upper()
    logging.basicConfig(level=level, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
    logger.info(f"News Reader {CURRENT_VERSION} (config {config.hash[:8]})")

    coordinator = build_coordinator(config, args.voice)
    try:
        asyncio.run(_run(coordinator))
    except MicrophonePermissionError as e:
        print(f"Microphone unavailable: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
