"""
Intent Parser Module

Responsibility: Interpret a normalized transcript for the current turn.
Nothing more.

Does NOT:
- Use LLMs or embeddings (rules only)
- Touch conversation state (the engine decides what to do)
- Call external services (completely local)

Three interpretations:
- is_skip: did the user skip a question?
- parse_selection: article number, "more", or nothing usable
- classify_continuation: yes / no / unclear
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

_TRAILING_PUNCTUATION = re.compile(r"[.。！？!?]+$")
_WORD = re.compile(r"[a-z0-9']+")

SKIP_TOKEN = "skip"

NUMBER_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
}

# Words recognizers commonly produce for spoken numerals
NUMBER_HOMOPHONES = {
    "won": 1,
    "to": 2,
    "too": 2,
    "for": 4,
}

SELECTION_PREFIXES = ("number ", "article ", "option ")

POSITIVE_WORDS = frozenset({
    "yes", "yeah", "yep", "yup", "sure", "continue", "another",
    "okay", "ok", "please", "absolutely", "definitely",
})

NEGATIVE_WORDS = frozenset({
    "no", "nope", "nah", "stop", "done", "quit", "exit",
    "finished", "goodbye", "bye", "enough",
})


def normalize_utterance(text: Optional[str]) -> str:
    """Case-fold, trim and drop trailing sentence punctuation."""
    if not text:
        return ""
    return _TRAILING_PUNCTUATION.sub("", text.strip()).strip().casefold()


# ============================================================================
# SKIP
# ============================================================================

def is_skip(text: Optional[str]) -> bool:
    """True if the normalized answer equals or contains "skip"."""
    normalized = normalize_utterance(text)
    return normalized == SKIP_TOKEN or SKIP_TOKEN in normalized


# ============================================================================
# ARTICLE SELECTION
# ============================================================================

class SelectionKind(Enum):
    MORE = "more"
    NUMBER = "number"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Selection:
    """Parsed article-selection response. number is 1-based."""
    kind: SelectionKind
    number: Optional[int] = None


def parse_selection(text: Optional[str]) -> Selection:
    """
    Parse a spoken article choice.

    Accepts "more", a digit ("3"), a spelled numeral ("three"), optionally
    prefixed ("number three", "article 2"). Bounds are checked by the caller
    against the current page.
    """
    normalized = normalize_utterance(text)
    if not normalized:
        return Selection(SelectionKind.UNKNOWN)

    if normalized == "more":
        return Selection(SelectionKind.MORE)

    for prefix in SELECTION_PREFIXES:
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix):].strip()
            break

    if normalized.isdigit():
        return Selection(SelectionKind.NUMBER, int(normalized))

    number = NUMBER_WORDS.get(normalized) or NUMBER_HOMOPHONES.get(normalized)
    if number is not None:
        return Selection(SelectionKind.NUMBER, number)

    return Selection(SelectionKind.UNKNOWN)


# ============================================================================
# CONTINUATION
# ============================================================================

class ContinuationAnswer(Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    UNKNOWN = "unknown"


def classify_continuation(text: Optional[str]) -> ContinuationAnswer:
    """
    Classify a reply to "would you like another article?".

    A reply containing words from both lists is treated as unclear.
    """
    words = set(_WORD.findall(normalize_utterance(text)))
    positive = bool(words & POSITIVE_WORDS)
    negative = bool(words & NEGATIVE_WORDS)

    if positive and not negative:
        return ContinuationAnswer.POSITIVE
    if negative and not positive:
        return ContinuationAnswer.NEGATIVE
    return ContinuationAnswer.UNKNOWN
