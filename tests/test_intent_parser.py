import pytest

from newsreader.intent_parser import (
    ContinuationAnswer,
    Selection,
    SelectionKind,
    classify_continuation,
    is_skip,
    normalize_utterance,
    parse_selection,
)


def test_normalize_strips_trailing_punctuation_and_case():
    assert normalize_utterance("  Climate Change!?  ") == "climate change"
    assert normalize_utterance("はい。") == "はい"
    assert normalize_utterance(None) == ""


@pytest.mark.parametrize("text", ["skip", "Skip.", "SKIP!", "please skip this", "skip it"])
def test_skip_detected(text):
    assert is_skip(text)


@pytest.mark.parametrize("text", ["climate", "", "sky", None])
def test_not_skip(text):
    assert not is_skip(text)


# ============================================================================
# SELECTION
# ============================================================================

@pytest.mark.parametrize(
    "text, number",
    [
        ("3", 3),
        ("Three.", 3),
        ("one", 1),
        ("five", 5),
        ("number two", 2),
        ("Article 4", 4),
        ("won", 1),
        ("too", 2),
    ],
)
def test_selection_numbers(text, number):
    assert parse_selection(text) == Selection(SelectionKind.NUMBER, number)


def test_selection_more():
    assert parse_selection("More.").kind is SelectionKind.MORE


@pytest.mark.parametrize("text", ["", "banana", "the third one", "more please", None])
def test_selection_unknown(text):
    assert parse_selection(text).kind is SelectionKind.UNKNOWN


def test_digits_unbounded_words_limited():
    # Bounds are checked against the page by the engine
    assert parse_selection("nine") == Selection(SelectionKind.UNKNOWN)
    assert parse_selection("9") == Selection(SelectionKind.NUMBER, 9)


# ============================================================================
# CONTINUATION
# ============================================================================

@pytest.mark.parametrize("text", ["Yes.", "sure", "yeah, another one", "Continue"])
def test_continuation_positive(text):
    assert classify_continuation(text) is ContinuationAnswer.POSITIVE


@pytest.mark.parametrize("text", ["No.", "I'm done", "stop", "nope"])
def test_continuation_negative(text):
    assert classify_continuation(text) is ContinuationAnswer.NEGATIVE


@pytest.mark.parametrize("text", ["", None, "maybe later", "yes no"])
def test_continuation_unknown(text):
    assert classify_continuation(text) is ContinuationAnswer.UNKNOWN
