"""
Content and question models.

Facts and fact sets are immutable content. Questions, submissions and
results are the values exchanged with the caller during one cycle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from src.fluency.stages import LearningStage


class AnswerType(str, Enum):
    """Outcome of one answer."""

    CORRECT = "Correct"
    INCORRECT = "Incorrect"
    SKIPPED = "Skipped"
    TIMED_OUT = "TimedOut"


class LearningMode(str, Enum):
    """How a question is presented to the learner."""

    ASSESSMENT = "Assessment"
    GROUNDING = "Grounding"
    PRACTICE = "Practice"


# ========================================
# CONTENT
# ========================================


@dataclass(frozen=True)
class Fact:
    """A single multiplication fact, e.g. ``3x4``."""

    id: str
    factor_a: int
    factor_b: int
    text: str
    fact_set_id: str

    @property
    def answer(self) -> int:
        return self.factor_a * self.factor_b

    @classmethod
    def create(cls, factor_a: int, factor_b: int, fact_set_id: str) -> Fact:
        return cls(
            id=f"{factor_a}x{factor_b}",
            factor_a=factor_a,
            factor_b=factor_b,
            text=f"{factor_a} × {factor_b} = ?",
            fact_set_id=fact_set_id,
        )


@dataclass(frozen=True)
class FactSet:
    """Ordered group of facts sharing an id (e.g. the 5 times table)."""

    id: str
    facts: tuple[Fact, ...] = ()

    def __len__(self) -> int:
        return len(self.facts)


# ========================================
# QUESTIONS
# ========================================


@dataclass(frozen=True)
class QuestionChoice:
    value: int
    is_correct: bool


@dataclass
class Question:
    """A presented fact with its multiple-choice options."""

    id: str
    text: str
    fact_id: str
    fact_set_id: str
    learning_mode: LearningMode
    learning_stage: LearningStage
    time_to_answer: float | None
    choices: list[QuestionChoice] = field(default_factory=list)
    time_started: int | None = None  # unix ms, set by start_question

    @property
    def correct_choice(self) -> QuestionChoice:
        return next(choice for choice in self.choices if choice.is_correct)


@dataclass(frozen=True)
class UserAnswerSubmission:
    """What the learner did with a question."""

    answer_type: AnswerType
    choice: QuestionChoice | None = None

    @classmethod
    def from_answer(cls, choice: QuestionChoice) -> UserAnswerSubmission:
        answer_type = AnswerType.CORRECT if choice.is_correct else AnswerType.INCORRECT
        return cls(answer_type=answer_type, choice=choice)

    @classmethod
    def from_skipped(cls) -> UserAnswerSubmission:
        return cls(answer_type=AnswerType.SKIPPED)

    @classmethod
    def from_timed_out(cls) -> UserAnswerSubmission:
        return cls(answer_type=AnswerType.TIMED_OUT)


@dataclass(frozen=True)
class SubmitAnswerResult:
    submission: UserAnswerSubmission
    correct_answer: QuestionChoice
    time_to_next_question: float
    should_retry: bool = False

    @property
    def is_correct(self) -> bool:
        return self.submission.answer_type == AnswerType.CORRECT
