"""
Data Model

Plain value objects shared by the ports and the conversation engine.

- Article: one search result (immutable once retrieved)
- AudioRef: reference to a finished recording on disk
- ExtractedDocument: speakable text produced from article HTML
- SpeechOptions / SpeechResult: speech port request and terminal signal
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


# ============================================================================
# ARTICLES
# ============================================================================

REMOVED_PLACEHOLDER = "[Removed]"
"""Title the news provider uses for withdrawn articles."""


@dataclass(frozen=True)
class Article:
    """Single candidate article returned by the news search."""
    title: str
    source_name: str
    url: str
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["Article"]:
        """
        Build an Article from a search result record.

        Accepts the provider shape ({"source": {"name": ...}}) as well as a
        flat "sourceName" field.

        Returns:
            Article, or None when the record has no usable title or url
        """
        if not isinstance(data, dict):
            return None

        title = (data.get("title") or "").strip()
        url = (data.get("url") or "").strip()
        if not title or not url or title == REMOVED_PLACEHOLDER:
            return None

        source = data.get("source")
        if isinstance(source, dict):
            source_name = source.get("name") or ""
        else:
            source_name = data.get("sourceName") or data.get("source_name") or ""

        description = data.get("description")
        if description is not None:
            description = description.strip() or None

        return cls(title=title, source_name=source_name, url=url, description=description)


# ============================================================================
# AUDIO
# ============================================================================

@dataclass(frozen=True)
class AudioRef:
    """Finished recording written to a WAV file."""
    path: Path
    sample_rate: int
    duration_seconds: float

    def read_bytes(self) -> bytes:
        return Path(self.path).read_bytes()


# ============================================================================
# EXTRACTION
# ============================================================================

@dataclass(frozen=True)
class ExtractedDocument:
    """
    Result of running the content extractor over one article page.

    The raw HTML is not kept.

    Fields:
    - body_text: cleaned article text (paragraphs separated by newlines)
    - sentences: ordered, non-empty sentences ready for speech
    - source: strategy that produced the text ("json-ld", "selector:article", ...)
    """
    body_text: str
    sentences: Tuple[str, ...] = field(default_factory=tuple)
    source: str = ""

    @property
    def preview(self) -> str:
        if len(self.body_text) <= 300:
            return self.body_text
        return self.body_text[:300] + "..."


# ============================================================================
# SPEECH
# ============================================================================

@dataclass(frozen=True)
class SpeechOptions:
    """Optional synthesis parameters (multipliers, 1.0 = engine default)."""
    rate: Optional[float] = None
    pitch: Optional[float] = None
    volume: Optional[float] = None


@dataclass(frozen=True)
class SpeechResult:
    """
    Terminal signal of one speech request.

    Success and failure are the same event for flow purposes; error only
    carries detail for logging.
    """
    text: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None
