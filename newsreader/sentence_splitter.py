"""
Sentence segmentation and reading pacing.

Splits cleaned article text into speakable sentences:
1. Protect abbreviations (Mr., Dr., U.S., e.g., ...) from ending a sentence
2. Split on . ! ? followed by whitespace and an uppercase letter (or end)
3. Split on paragraph breaks
4. Restore protected periods, drop short fragments
"""

import re
from typing import List

# Stand-in for a protected period; never appears in article text
_PROTECTED_PERIOD = "\u2063"

ABBREVIATIONS = (
    "Mr.", "Mrs.", "Ms.", "Dr.", "Prof.", "Sr.", "Jr.", "St.", "Mt.",
    "Gen.", "Gov.", "Sen.", "Rep.", "Lt.", "Col.", "Sgt.", "Capt.",
    "Inc.", "Ltd.", "Co.", "Corp.", "No.", "vs.", "etc.", "approx.",
    "e.g.", "i.e.", "U.S.", "U.K.", "U.N.", "E.U.", "a.m.", "p.m.",
    "Jan.", "Feb.", "Mar.", "Apr.", "Aug.", "Sept.", "Sep.", "Oct.", "Nov.", "Dec.",
)

# Longest first so "U.S." is protected before any shorter overlap
_ABBREVIATION_PATTERN = re.compile(
    r"(?<![A-Za-z])("
    + "|".join(re.escape(a) for a in sorted(ABBREVIATIONS, key=len, reverse=True))
    + r")"
)

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])[\"'”’)]*\s+(?=[\"'“‘(]?[A-Z])")
_QUOTES = re.compile("[\"“”'‘’]")

DEFAULT_MIN_SENTENCE_LENGTH = 8


def _protect(text: str) -> str:
    return _ABBREVIATION_PATTERN.sub(lambda m: m.group(1).replace(".", _PROTECTED_PERIOD), text)


def _restore(text: str) -> str:
    return text.replace(_PROTECTED_PERIOD, ".")


def split_sentences(text: str, min_length: int = DEFAULT_MIN_SENTENCE_LENGTH) -> List[str]:
    """
    Split text into sentences.

    Args:
        text: Cleaned article text (paragraphs may be newline separated)
        min_length: Fragments shorter than this are dropped

    Returns:
        Ordered list of sentences with abbreviations intact
    """
    if not text:
        return []

    protected = _protect(text)
    sentences: List[str] = []

    for paragraph in protected.split("\n"):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        for fragment in _split_paragraph(paragraph):
            sentence = _restore(fragment).strip()
            if len(sentence) >= min_length:
                sentences.append(sentence)

    return sentences


def _split_paragraph(paragraph: str) -> List[str]:
    # Keep closing quotes with the sentence they end
    parts = []
    last = 0
    for match in _SENTENCE_BOUNDARY.finditer(paragraph):
        end = match.start() + len(match.group(0).rstrip())
        parts.append(paragraph[last:end])
        last = match.end()
    parts.append(paragraph[last:])
    return parts


def pause_after(sentence: str) -> float:
    """
    Pause in seconds after speaking a sentence.

    Longer after terminal punctuation, shorter after a clause break.
    """
    stripped = _QUOTES.sub("", sentence).rstrip()
    if not stripped:
        return 0.3
    if stripped[-1] in ".!?":
        return 0.8
    if stripped[-1] in ",;:":
        return 0.4
    return 0.3


def clean_for_speech(sentence: str) -> str:
    """Drop quote characters that synthesizers tend to read aloud."""
    return _QUOTES.sub("", sentence).strip()
