"""
Algorithm configuration for the fluency scheduler.

Configuration is an explicit value passed through constructors. Two presets
exist: ``create_normal()`` for regular play and ``create_speed_run()`` for
short sessions with few facts and compressed delays. ``from_settings()``
builds either preset from environment-backed Settings and applies overrides.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from src.fluency.distractors import DistractorGenerationConfig
from src.fluency.errors import ConfigurationError
from src.fluency.stages import LearningStage, MasteredStage, create_default_stages

if TYPE_CHECKING:
    from config import Settings

DEFAULT_FACT_SET_ORDER: tuple[str, ...] = ("0-1", "10", "5", "2", "4", "8", "9", "3", "6", "7")
SPEED_RUN_FACT_SET_ORDER: tuple[str, ...] = ("0-1", "5", "2", "4")
FIRST_STAGE_ID = "assessment"


# ========================================
# DIFFICULTY
# ========================================


@dataclass
class BulkPromotionConfig:
    """Promote a whole stage group of a fact set at once."""

    enabled: bool = False
    min_consecutive_correct: int = 5
    min_fact_set_coverage_percent: float = 0.8


@dataclass
class DifficultyConfig:
    """
    One difficulty tier.

    Threshold maps are keyed by stage id. A missing entry or a value of 0
    means the stage is skipped when walking the ladder.
    """

    name: str = "Medium"
    min_accuracy_threshold: float = 0.0
    max_facts_being_learned: int = 5
    promotion_thresholds: dict[str, int] = field(default_factory=dict)
    demotion_thresholds: dict[str, int] = field(default_factory=dict)
    known_fact_min_ratio: float = 0.66
    known_fact_max_ratio: float = 0.90
    bulk_promotion: BulkPromotionConfig = field(default_factory=BulkPromotionConfig)

    def get_promotion_threshold(self, stage_id: str) -> int:
        return self.promotion_thresholds.get(stage_id, 0)

    def get_demotion_threshold(self, stage_id: str) -> int:
        return self.demotion_thresholds.get(stage_id, 0)


@dataclass
class DynamicDifficultyConfig:
    """Accuracy-driven tier selection over a window of recent answers."""

    difficulties: list[DifficultyConfig] = field(default_factory=list)
    recent_answer_window: int = 10
    min_answers_for_difficulty_change: int = 5


def _reinforcement_thresholds(value: int) -> dict[str, int]:
    return {
        "review-1min": value,
        "review-2min": value,
        "review-4min": value,
        "repetition-1day": value,
        "repetition-2day": value,
        "repetition-4day": value,
        "repetition-1week": value,
    }


def create_default_difficulties() -> list[DifficultyConfig]:
    """Hard, Medium and Easy tiers."""
    hard = DifficultyConfig(
        name="Hard",
        min_accuracy_threshold=0.9,
        max_facts_being_learned=100,
        known_fact_min_ratio=0.30,
        known_fact_max_ratio=0.60,
        promotion_thresholds={
            "assessment": 1,
            "grounding": 1,
            "practice-slow": 1,
            "practice-fast": 1,
            **_reinforcement_thresholds(1),
        },
        demotion_thresholds={
            "assessment": 1,
            "grounding": 1,
            "practice-slow": 1,
            "practice-fast": 1,
            **_reinforcement_thresholds(1),
        },
        bulk_promotion=BulkPromotionConfig(
            enabled=True,
            min_consecutive_correct=5,
            min_fact_set_coverage_percent=0.25,
        ),
    )
    medium = DifficultyConfig(
        name="Medium",
        min_accuracy_threshold=0.7,
        max_facts_being_learned=8,
        known_fact_min_ratio=0.60,
        known_fact_max_ratio=0.80,
        promotion_thresholds={
            "assessment": 1,
            "grounding": 2,
            "practice-slow": 1,
            "practice-fast": 2,
            **_reinforcement_thresholds(1),
        },
        demotion_thresholds={
            "assessment": 1,
            "grounding": 1,
            "practice-slow": 1,
            "practice-fast": 1,
            **_reinforcement_thresholds(2),
        },
    )
    easy = DifficultyConfig(
        name="Easy",
        min_accuracy_threshold=0.0,
        max_facts_being_learned=5,
        known_fact_min_ratio=0.70,
        known_fact_max_ratio=0.90,
        promotion_thresholds={
            "assessment": 2,
            "grounding": 2,
            "practice-slow": 2,
            "practice-fast": 2,
            **_reinforcement_thresholds(1),
        },
        demotion_thresholds={
            "assessment": 2,
            "grounding": 2,
            "practice-slow": 2,
            "practice-fast": 2,
            **_reinforcement_thresholds(2),
        },
    )
    return [hard, medium, easy]


def create_speed_run_difficulty() -> DifficultyConfig:
    """Single tier used by speed runs: promote on every correct answer."""
    return DifficultyConfig(
        name="SpeedRun",
        min_accuracy_threshold=0.0,
        max_facts_being_learned=2,
        known_fact_min_ratio=0.60,
        known_fact_max_ratio=0.85,
        promotion_thresholds={
            "assessment": 1,
            "grounding": 1,
            "practice-slow": 1,
            "practice-fast": 1,
            **_reinforcement_thresholds(1),
        },
        # practice-slow and the two short review tiers are skipped on the way down
        demotion_thresholds={
            "assessment": 1,
            "grounding": 1,
            "practice-slow": 0,
            "practice-fast": 1,
            "review-1min": 0,
            "review-2min": 0,
            "review-4min": 1,
            "repetition-1day": 1,
            "repetition-2day": 1,
            "repetition-4day": 1,
            "repetition-1week": 1,
        },
    )


# ========================================
# ALGORITHM
# ========================================


@dataclass
class LearningAlgorithmConfig:
    """Everything the scheduler needs to know, passed explicitly."""

    stages: list[LearningStage] = field(default_factory=create_default_stages)
    fact_set_order: tuple[str, ...] = DEFAULT_FACT_SET_ORDER
    max_multiplication_factor: int = 10
    min_question_interval_seconds: float = 30.0
    recent_question_history_size: int = 5
    time_to_next_question: float = 2.0
    always_start_fresh: bool = False
    disable_randomization: bool = False
    answer_history_limit: int = 1000
    dynamic_difficulty: DynamicDifficultyConfig = field(
        default_factory=lambda: DynamicDifficultyConfig(difficulties=create_default_difficulties())
    )
    distractors: DistractorGenerationConfig = field(default_factory=DistractorGenerationConfig)

    def __post_init__(self) -> None:
        if not self.stages:
            raise ConfigurationError("Learning algorithm requires at least one stage")

    # ----------------------------------------
    # Presets
    # ----------------------------------------

    @classmethod
    def create_normal(cls) -> LearningAlgorithmConfig:
        return cls()

    @classmethod
    def create_speed_run(cls) -> LearningAlgorithmConfig:
        return cls(
            fact_set_order=SPEED_RUN_FACT_SET_ORDER,
            max_multiplication_factor=5,
            min_question_interval_seconds=10.0,
            time_to_next_question=1.0,
            dynamic_difficulty=DynamicDifficultyConfig(
                difficulties=[create_speed_run_difficulty()],
                recent_answer_window=5,
                min_answers_for_difficulty_change=3,
            ),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> LearningAlgorithmConfig:
        """Build a preset from Settings and apply any explicit overrides."""
        base = cls.create_speed_run() if settings.algorithm_mode == "speed_run" else cls.create_normal()

        overrides: dict = {
            "always_start_fresh": settings.always_start_fresh,
            "disable_randomization": settings.disable_randomization,
            "answer_history_limit": settings.answer_history_limit,
        }
        if settings.min_question_interval_seconds is not None:
            overrides["min_question_interval_seconds"] = settings.min_question_interval_seconds
        if settings.recent_question_history_size is not None:
            overrides["recent_question_history_size"] = settings.recent_question_history_size
        if settings.time_to_next_question is not None:
            overrides["time_to_next_question"] = settings.time_to_next_question
        if settings.max_multiplication_factor is not None:
            overrides["max_multiplication_factor"] = settings.max_multiplication_factor

        return replace(base, **overrides)

    # ----------------------------------------
    # Stage lookups
    # ----------------------------------------

    @property
    def ordered_stages(self) -> list[LearningStage]:
        return sorted(self.stages, key=lambda s: s.order)

    def get_stage_by_id(self, stage_id: str) -> LearningStage | None:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        return None

    def get_first_stage(self) -> LearningStage:
        """The stage new facts start in: assessment, else the lowest order."""
        return self.get_stage_by_id(FIRST_STAGE_ID) or self.ordered_stages[0]

    def get_mastered_stage(self) -> LearningStage:
        for stage in self.ordered_stages:
            if isinstance(stage, MasteredStage):
                return stage
        return self.ordered_stages[-1]

    # ----------------------------------------
    # Fact set lookups
    # ----------------------------------------

    def get_fact_set_order_index(self, fact_set_id: str) -> int:
        """Position of a fact set in the play order; unknown sets sort last."""
        try:
            return self.fact_set_order.index(fact_set_id)
        except ValueError:
            return len(self.fact_set_order)

    def get_next_fact_set_id(self, fact_set_id: str) -> str:
        """Fact set that follows ``fact_set_id``, or "" when there is none."""
        if fact_set_id not in self.fact_set_order:
            return ""
        index = self.fact_set_order.index(fact_set_id)
        if index + 1 < len(self.fact_set_order):
            return self.fact_set_order[index + 1]
        return ""
