"""
Configuration Loader for the News Reader

Reads from config.json and provides a simple interface for accessing settings.
Defaults to sensible values if config.json is missing.

Secrets (API keys, service URLs) come from the environment. Entry scripts
load .env with python-dotenv before the first get_config() call.

Usage:
    from newsreader.config import get_config
    config = get_config()
    poll_interval = config.get("transcription.poll_interval_seconds")
"""

# ============================================================================
# 1) IMPORTS
# ============================================================================
import copy
import hashlib
import json
import logging
import os
from typing import Any, Optional

from newsreader import policy

# ============================================================================
# 2) MODULE LOGGER
# ============================================================================
logger = logging.getLogger(__name__)


# ============================================================================
# 3) CONFIG WRAPPER (DOT-NOTATION ACCESS)
# ============================================================================
class Config:
    """Simple config wrapper with dot-notation access."""

    def __init__(self, data: dict):
        """Initialize with config dict."""
        self._data = data
        self._hash = config_hash(self._data)

    # 3.1) Dot-notation getter
    def get(self, key: str, default: Any = None) -> Any:
        """
        Get config value using dot notation.

        Examples:
            config.get("news.base_url")
            config.get("conversation.page_size")
            config.get("nonexistent.key", "default_value")

        Args:
            key: Dot-separated config path
            default: Default value if key not found

        Returns:
            Config value or default
        """
        keys = key.split(".")
        value = self._data

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    # 3.2) Dict-style getter
    def __getitem__(self, key: str) -> Any:
        """Allow dict-style access."""
        return self.get(key)

    # 3.3) Config hash
    @property
    def hash(self) -> str:
        return self._hash


# ============================================================================
# 4) DEFAULT CONFIGURATION (FALLBACK)
# ============================================================================
def _default_config() -> dict:
    """Build defaults at call time so environment changes are picked up."""
    return {
        "system": {
            "log_level": "INFO",
        },
        "audio": {
            "sample_rate": 16000,
            "channels": 1,
            "input_device_index": None,
        },
        "speech": {
            "voice": os.getenv("EDGE_TTS_VOICE", "en-US-AriaNeural"),
            "reading_rate": policy.READING_RATE,
            "reading_pitch": policy.READING_PITCH,
            "timeout_seconds": policy.TTS_TIMEOUT_SECONDS,
            "echo": True,
        },
        "transcription": {
            "base_url": os.getenv("TRANSCRIPTION_URL", "https://api.assemblyai.com/v2"),
            "api_key": os.getenv("ASSEMBLYAI_API_KEY", ""),
            "poll_interval_seconds": policy.TRANSCRIPT_POLL_INTERVAL_SECONDS,
            "max_poll_attempts": policy.TRANSCRIPT_MAX_POLL_ATTEMPTS,
            "timeout_seconds": policy.HTTP_TIMEOUT_SECONDS,
        },
        "news": {
            "base_url": os.getenv("NEWS_SERVICE_URL", "http://127.0.0.1:8000"),
            "timeout_seconds": policy.HTTP_TIMEOUT_SECONDS,
        },
        "fetch": {
            "timeout_seconds": policy.HTTP_TIMEOUT_SECONDS,
            "retries": 3,
            "backoff_factor": 0.5,
            "user_agent": "Mozilla/5.0 (compatible; newsreader/1.0)",
        },
        "extraction": {
            "min_length": 100,
            "selector_min_length": 200,
            "block_min_length": 100,
            "sentence_min_length": 8,
        },
        "conversation": {
            "page_size": policy.PAGE_SIZE,
            "settle_delay_seconds": policy.SETTLE_DELAY_SECONDS,
            "reset_delay_seconds": policy.RESET_DELAY_SECONDS,
            "relisten_delay_seconds": policy.RELISTEN_DELAY_SECONDS,
            "answer_record_seconds": policy.ANSWER_RECORD_SECONDS,
            "selection_record_seconds": policy.SELECTION_RECORD_SECONDS,
            "listen_watchdog_seconds": policy.LISTEN_WATCHDOG_SECONDS,
            "continuation_watchdog_seconds": policy.CONTINUATION_WATCHDOG_SECONDS,
            "max_failed_turns": policy.MAX_FAILED_TURNS,
            "sentence_pause_scale": 1.0,
        },
        "gateway": {
            "host": "127.0.0.1",
            "port": 8000,
            "news_api_url": "https://newsapi.org/v2/top-headlines",
            "news_api_key": os.getenv("NEWS_API_KEY", ""),
            "transcription_url": "https://api.assemblyai.com/v2",
            "transcription_api_key": os.getenv("ASSEMBLYAI_API_KEY", ""),
            "auth_token": os.getenv("GATEWAY_TOKEN", ""),
            "timeout_seconds": policy.HTTP_TIMEOUT_SECONDS,
        },
    }


# ============================================================================
# 5) CONFIG SINGLETON
# ============================================================================
_config_instance: Optional[Config] = None


# ============================================================================
# 6) LOAD / GET CONFIG
# ============================================================================
def load_config(config_path: str = "config.json") -> Config:
    """
    Load configuration from JSON file.

    Falls back to defaults if file not found or on error.

    Args:
        config_path: Path to config.json

    Returns:
        Config instance
    """
    global _config_instance

    config_data = copy.deepcopy(_default_config())

    if os.path.exists(config_path):
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                user_config = json.load(f)
            # Deep merge user config over defaults
            _merge_dicts(config_data, user_config)
            logger.info(f"[Config] Loaded from {config_path}")
        except (OSError, ValueError) as e:
            logger.warning(f"[Config] Failed to load {config_path}: {e}, using defaults")
    else:
        logger.debug(f"[Config] No config file at {config_path}, using defaults")

    _config_instance = Config(config_data)
    return _config_instance


def get_config() -> Config:
    """
    Get current config instance (lazy load if needed).

    Returns:
        Config instance
    """
    global _config_instance
    if _config_instance is None:
        load_config()
    return _config_instance


def set_config(config: Optional[Config]) -> None:
    """Replace the global config (used in testing)."""
    global _config_instance
    _config_instance = config


# ============================================================================
# 7) HELPERS
# ============================================================================
def config_hash(cfg: dict) -> str:
    return hashlib.sha256(json.dumps(cfg, sort_keys=True).encode()).hexdigest()


def _merge_dicts(base: dict, override: dict) -> None:
    """
    Deep merge override dict into base dict (modifies base in place).

    Args:
        base: Base dict to merge into
        override: Dict with values to override
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_dicts(base[key], value)
        else:
            base[key] = value
