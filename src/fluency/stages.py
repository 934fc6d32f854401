"""
Learning stages for the fact mastery ladder.

A stage is a closed tagged union of frozen dataclasses. Each variant carries
its own payload (timer, review delay in minutes, repetition delay in days)
and a ``kind`` tag, and callers dispatch on the variant with ``isinstance``.

Ladder (lowest to highest):
    grounding -> assessment -> practice-slow -> practice-fast
    -> review-1min -> review-2min -> review-4min
    -> repetition-1day -> repetition-2day -> repetition-4day -> repetition-1week
    -> mastered
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union


class LearningStageType(str, Enum):
    """Kind tag shared by every stage variant."""

    GROUNDING = "Grounding"
    ASSESSMENT = "Assessment"
    PRACTICE = "Practice"
    REVIEW = "Review"
    REPETITION = "Repetition"
    MASTERED = "Mastered"


# ========================================
# STAGE VARIANTS
# ========================================


@dataclass(frozen=True)
class GroundingStage:
    """Untimed teaching stage; wrong answers are retried in place."""

    id: str
    order: int
    display_name: str
    icon: str = "🎯"
    progress_weight: float = 0.1

    kind: ClassVar[LearningStageType] = LearningStageType.GROUNDING
    is_known_fact: ClassVar[bool] = False
    is_fully_learned: ClassVar[bool] = False

    @property
    def timer_seconds(self) -> float | None:
        return None


@dataclass(frozen=True)
class AssessmentStage:
    """Timed first look at a fact to find out whether it is already known."""

    id: str
    order: int
    display_name: str
    timer: float
    icon: str = "📊"
    progress_weight: float = 0.2

    kind: ClassVar[LearningStageType] = LearningStageType.ASSESSMENT
    is_known_fact: ClassVar[bool] = False
    is_fully_learned: ClassVar[bool] = False

    @property
    def timer_seconds(self) -> float | None:
        return self.timer


@dataclass(frozen=True)
class PracticeStage:
    """Timed drill tier (slow or fast)."""

    id: str
    order: int
    display_name: str
    timer: float
    icon: str = "⚡"
    progress_weight: float = 0.3

    kind: ClassVar[LearningStageType] = LearningStageType.PRACTICE
    is_known_fact: ClassVar[bool] = False
    is_fully_learned: ClassVar[bool] = False

    @property
    def timer_seconds(self) -> float | None:
        return self.timer


@dataclass(frozen=True)
class ReviewStage:
    """Short-term reinforcement tier, gated by a delay in minutes."""

    id: str
    order: int
    display_name: str
    timer: float
    delay_minutes: float
    icon: str = "🔄"
    progress_weight: float = 0.5

    kind: ClassVar[LearningStageType] = LearningStageType.REVIEW
    is_known_fact: ClassVar[bool] = True
    is_fully_learned: ClassVar[bool] = False

    @property
    def timer_seconds(self) -> float | None:
        return self.timer


@dataclass(frozen=True)
class RepetitionStage:
    """Long-term reinforcement tier, gated by a delay in days."""

    id: str
    order: int
    display_name: str
    timer: float
    delay_days: float
    icon: str = "⏪"
    progress_weight: float = 0.8

    kind: ClassVar[LearningStageType] = LearningStageType.REPETITION
    is_known_fact: ClassVar[bool] = True
    is_fully_learned: ClassVar[bool] = False

    @property
    def timer_seconds(self) -> float | None:
        return self.timer


@dataclass(frozen=True)
class MasteredStage:
    """Terminal stage. Mastered facts are never selected again."""

    id: str
    order: int
    display_name: str
    icon: str = "✅"
    progress_weight: float = 1.0

    kind: ClassVar[LearningStageType] = LearningStageType.MASTERED
    is_known_fact: ClassVar[bool] = True
    is_fully_learned: ClassVar[bool] = True

    @property
    def timer_seconds(self) -> float | None:
        return None


LearningStage = Union[
    GroundingStage,
    AssessmentStage,
    PracticeStage,
    ReviewStage,
    RepetitionStage,
    MasteredStage,
]


# ========================================
# HELPERS
# ========================================


def is_reward_eligible(stage: LearningStage) -> bool:
    """Known stages count towards fact-set rewards."""
    return stage.is_known_fact


def is_reinforcement_stage(stage: LearningStage) -> bool:
    """Review and repetition tiers carry a reinforcement delay."""
    return isinstance(stage, (ReviewStage, RepetitionStage))


def create_default_stages() -> list[LearningStage]:
    """
    Build the default stage ladder.

    Returns:
        Stages ordered by ``order``
    """
    return [
        GroundingStage(id="grounding", order=0, display_name="Grounding"),
        AssessmentStage(id="assessment", order=1, display_name="Assessment", timer=5.0),
        PracticeStage(id="practice-slow", order=2, display_name="Practice (Slow)", timer=4.0),
        PracticeStage(
            id="practice-fast",
            order=3,
            display_name="Practice (Fast)",
            timer=2.0,
            icon="🚀",
            progress_weight=0.4,
        ),
        ReviewStage(id="review-1min", order=4, display_name="Review (1 min)", timer=2.0, delay_minutes=1),
        ReviewStage(
            id="review-2min",
            order=5,
            display_name="Review (2 min)",
            timer=2.0,
            delay_minutes=2,
            progress_weight=0.6,
        ),
        ReviewStage(
            id="review-4min",
            order=6,
            display_name="Review (4 min)",
            timer=2.0,
            delay_minutes=4,
            progress_weight=0.7,
        ),
        RepetitionStage(
            id="repetition-1day", order=7, display_name="Repetition (1 day)", timer=2.0, delay_days=1
        ),
        RepetitionStage(
            id="repetition-2day",
            order=8,
            display_name="Repetition (2 days)",
            timer=2.0,
            delay_days=2,
            progress_weight=0.85,
        ),
        RepetitionStage(
            id="repetition-4day",
            order=9,
            display_name="Repetition (4 days)",
            timer=2.0,
            delay_days=4,
            progress_weight=0.9,
        ),
        RepetitionStage(
            id="repetition-1week",
            order=10,
            display_name="Repetition (1 week)",
            timer=2.0,
            delay_days=7,
            progress_weight=0.95,
        ),
        MasteredStage(id="mastered", order=11, display_name="Mastered"),
    ]
