"""
STATE MACHINE FOR THE NEWS READER CONVERSATION

Single authoritative state of one listening session.

Phases:
- ASKING_QUESTION: Speaking the question for the current step
- RECORDING: Capturing the spoken answer
- TRANSCRIBING: Waiting for the remote transcript
- SELECTING_ARTICLE: Announcing a page of articles and listening for a choice
- READING_ARTICLE: Fetching, extracting and speaking the chosen article
- AWAITING_CONTINUATION: Asking whether to hear another article
- IDLE: Session over (or reset, waiting for a restart)

Allowed Transitions (ONLY THESE):
- IDLE → ASKING_QUESTION                     (session start / restart)
- ASKING_QUESTION → RECORDING                (question spoken)
- RECORDING → TRANSCRIBING                   (capture finished)
- RECORDING → ASKING_QUESTION                (capture failed, re-prompt)
- TRANSCRIBING → ASKING_QUESTION             (next step, or re-prompt)
- TRANSCRIBING → SELECTING_ARTICLE           (articles fetched)
- SELECTING_ARTICLE → READING_ARTICLE        (article chosen)
- READING_ARTICLE → AWAITING_CONTINUATION    (article finished)
- READING_ARTICLE → SELECTING_ARTICLE        (extraction failed, choose again)
- ANY → IDLE                                 (reset)

Core principles:
- One phase at a time
- All phase changes logged
- Invalid transitions raise (no silent failures)
- Only the conversation engine mutates this object
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from newsreader.activity_gate import ActivityGate
from newsreader.models import Article, ExtractedDocument
from newsreader.policy import PAGE_SIZE

logger = logging.getLogger(__name__)


# ============================================================================
# PHASE ENUMERATION
# ============================================================================

class Phase(Enum):
    """Valid phases of a conversation session."""
    ASKING_QUESTION = "AskingQuestion"
    RECORDING = "Recording"
    TRANSCRIBING = "Transcribing"
    SELECTING_ARTICLE = "SelectingArticle"
    READING_ARTICLE = "ReadingArticle"
    AWAITING_CONTINUATION = "AwaitingContinuation"
    IDLE = "Idle"


_VALID_TRANSITIONS = {
    Phase.IDLE: {Phase.ASKING_QUESTION},
    Phase.ASKING_QUESTION: {Phase.RECORDING},
    Phase.RECORDING: {Phase.TRANSCRIBING, Phase.ASKING_QUESTION},
    Phase.TRANSCRIBING: {Phase.ASKING_QUESTION, Phase.SELECTING_ARTICLE},
    Phase.SELECTING_ARTICLE: {Phase.READING_ARTICLE},
    Phase.READING_ARTICLE: {Phase.AWAITING_CONTINUATION, Phase.SELECTING_ARTICLE},
    Phase.AWAITING_CONTINUATION: set(),
}


# ============================================================================
# QUESTION SEQUENCE
# ============================================================================

@dataclass(frozen=True)
class QuestionStep:
    """One entry of the fixed question sequence."""
    key: str
    question: str
    skip_label: str


STEPS: Tuple[QuestionStep, ...] = (
    QuestionStep(
        key="topic",
        question="What would you like to read about today? You can say 'skip' to skip this.",
        skip_label="topic selection",
    ),
    QuestionStep(
        key="outlet",
        question="What specific outlet would you like to choose? You can say 'skip' to skip this.",
        skip_label="outlet selection",
    ),
)

SKIPPED = ""
"""Answer value stored for a skipped step (counts as answered)."""


# ============================================================================
# CONVERSATION STATE
# ============================================================================

class ConversationState:
    """
    Owned state of one session.

    Answers start as None (unanswered) for every step key; the key set never
    changes. Skipped steps hold SKIPPED.
    """

    def __init__(
        self,
        steps: Sequence[QuestionStep] = STEPS,
        page_size: int = PAGE_SIZE,
        on_state_change: Optional[Callable[[Phase, Phase], None]] = None,
    ):
        """
        Initialize state in IDLE.

        Args:
            steps: Fixed question sequence
            page_size: Articles announced per page
            on_state_change: Optional callback on transition (old, new)
        """
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.steps: Tuple[QuestionStep, ...] = tuple(steps)
        self.page_size = page_size
        self.flags = ActivityGate()
        self._on_state_change = on_state_change
        self._phase = Phase.IDLE
        self._clear_session()

    def _clear_session(self) -> None:
        self.step_index = 0
        self.answers: Dict[str, Optional[str]] = {step.key: None for step in self.steps}
        self.candidate_articles: Tuple[Article, ...] = ()
        self.page_index = 0
        self.selected_article: Optional[Article] = None
        self.document: Optional[ExtractedDocument] = None
        self.ready_to_fetch = False
        self.transcript_log: List[str] = []

    # ========================================================================
    # TRANSITIONS
    # ========================================================================

    @property
    def phase(self) -> Phase:
        return self._phase

    @staticmethod
    def is_valid_transition(old: Phase, new: Phase) -> bool:
        """Check if a transition is allowed (ANY → IDLE except IDLE → IDLE)."""
        if new == Phase.IDLE:
            return old != Phase.IDLE
        return new in _VALID_TRANSITIONS.get(old, set())

    def transition(self, new_phase: Phase) -> None:
        """
        Move to a new phase.

        Raises:
            RuntimeError: Transition not in the allowed table
        """
        if not self.is_valid_transition(self._phase, new_phase):
            error_msg = f"Invalid transition: {self._phase.value} → {new_phase.value}"
            logger.error(error_msg)
            raise RuntimeError(error_msg)

        old_phase = self._phase
        self._phase = new_phase
        logger.info(f"Phase transition: {old_phase.value} -> {new_phase.value}")

        if self._on_state_change:
            self._on_state_change(old_phase, new_phase)

    def reset(self) -> None:
        """Full session reset: back to IDLE with fresh answers and no articles."""
        self.flags.clear()
        self._clear_session()
        if self._phase != Phase.IDLE:
            self.transition(Phase.IDLE)

    # ========================================================================
    # QUESTION STEPS
    # ========================================================================

    @property
    def current_step(self) -> Optional[QuestionStep]:
        if self.step_index < len(self.steps):
            return self.steps[self.step_index]
        return None

    def record_answer(self, key: str, text: str, skipped: bool = False) -> None:
        if key not in self.answers:
            raise KeyError(f"Unknown question key: {key}")
        if skipped:
            self.answers[key] = SKIPPED
            self.transcript_log.append(f"{key}: [SKIPPED]")
        else:
            self.answers[key] = text
            self.transcript_log.append(f"{key}: {text}")

    def advance_step(self) -> int:
        """Advance by one step, capped at the sequence length."""
        self.step_index = min(self.step_index + 1, len(self.steps))
        if self.step_index == len(self.steps):
            self.ready_to_fetch = True
        return self.step_index

    def all_answered(self) -> bool:
        return all(value is not None for value in self.answers.values())

    def answer_for(self, key: str) -> str:
        """Answer text for a query parameter ("" when skipped or unanswered)."""
        return (self.answers.get(key) or "").strip()

    # ========================================================================
    # ARTICLE PAGING
    # ========================================================================

    def load_articles(self, articles: Sequence[Article]) -> None:
        self.candidate_articles = tuple(articles)
        self.page_index = 0
        self.selected_article = None
        self.document = None

    @property
    def page_count(self) -> int:
        if not self.candidate_articles:
            return 0
        return (len(self.candidate_articles) + self.page_size - 1) // self.page_size

    def current_page(self) -> Tuple[Article, ...]:
        start = self.page_index * self.page_size
        return self.candidate_articles[start:start + self.page_size]

    def has_next_page(self) -> bool:
        return (self.page_index + 1) * self.page_size < len(self.candidate_articles)

    def next_page(self) -> bool:
        """Advance the page cursor if another page exists."""
        if not self.has_next_page():
            return False
        self.page_index += 1
        return True

    def select(self, article: Article) -> None:
        self.selected_article = article

    def clear_selection(self) -> None:
        self.selected_article = None
        self.document = None
