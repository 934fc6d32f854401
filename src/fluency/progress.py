"""
Learning progress reporting.

Read-only views over the learner record used by the CLI's stats screen:
per fact set progress, per fact accuracy and overall statistics.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from src.fluency.algorithm_config import LearningAlgorithmConfig
from src.fluency.models import AnswerType, FactSet
from src.fluency.stages import LearningStage, is_reward_eligible
from src.fluency.storage import StorageManager
from src.fluency.student_state import FactItem, FactStats, StudentState

ATTENTION_MIN_ATTEMPTS = 5
ATTENTION_MAX_ACCURACY = 0.7
ATTENTION_INCORRECT_STREAK = 3
DOING_WELL_ACCURACY = 0.8


@dataclass
class FactItemProgress:
    """One fact with its statistics."""

    item: FactItem
    stats: FactStats
    stage: LearningStage | None

    @property
    def attempts(self) -> int:
        return self.stats.times_correct + self.stats.times_incorrect

    @property
    def accuracy(self) -> float:
        if self.stats.times_shown == 0:
            return 0.0
        return self.stats.times_correct / self.stats.times_shown

    def needs_attention(self) -> bool:
        if self.stage is not None and self.stage.is_fully_learned:
            return False
        if self.attempts >= ATTENTION_MIN_ATTEMPTS and self.accuracy < ATTENTION_MAX_ACCURACY:
            return True
        return self.item.consecutive_incorrect >= ATTENTION_INCORRECT_STREAK

    @property
    def status(self) -> str:
        if self.stage is not None and self.stage.is_fully_learned:
            return "Mastered"
        if self.needs_attention():
            return "Needs Practice"
        if self.stats.times_shown == 0:
            return "Not Started"
        if self.accuracy >= DOING_WELL_ACCURACY:
            return "Doing Well"
        return "In Progress"


@dataclass
class FactSetProgress:
    """Progress of every fact in one fact set."""

    fact_set: FactSet
    items: list[FactItem]
    config: LearningAlgorithmConfig

    def _stage(self, item: FactItem) -> LearningStage | None:
        return self.config.get_stage_by_id(item.stage_id)

    @property
    def total_facts_count(self) -> int:
        return len(self.items)

    @property
    def completed_facts_count(self) -> int:
        return sum(1 for item in self.items if (stage := self._stage(item)) is not None and stage.is_fully_learned)

    @property
    def progress_percentage(self) -> float:
        """Mean stage progress weight of the set's facts, in percent."""
        if not self.items:
            return 0.0
        total = sum(stage.progress_weight for item in self.items if (stage := self._stage(item)) is not None)
        return total / len(self.items) * 100

    def get_dominant_stage(self) -> LearningStage | None:
        """The least advanced stage any fact is in."""
        return self.get_least_advanced_stage() if self.items else None

    def get_least_advanced_stage(self) -> LearningStage:
        stages = [stage for item in self.items if (stage := self._stage(item)) is not None]
        if not stages:
            return self.config.get_first_stage()
        return min(stages, key=lambda s: s.order)

    def get_most_advanced_stage(self) -> LearningStage:
        stages = [stage for item in self.items if (stage := self._stage(item)) is not None]
        if not stages:
            return self.config.get_first_stage()
        return max(stages, key=lambda s: s.order)

    def can_claim_reward(self) -> bool:
        return bool(self.items) and all(
            (stage := self._stage(item)) is not None and is_reward_eligible(stage) for item in self.items
        )

    def is_completed(self) -> bool:
        return bool(self.items) and self.completed_facts_count == len(self.items)

    def get_stage_distribution(self) -> dict[str, int]:
        """Fact count per stage id, every configured stage included."""
        distribution = {stage.id: 0 for stage in self.config.ordered_stages}
        for item in self.items:
            if item.stage_id in distribution:
                distribution[item.stage_id] += 1
        return distribution

    def get_fact_items_with_stats(self, state: StudentState) -> list[FactItemProgress]:
        return [
            FactItemProgress(item=item, stats=state.stats.get(item.fact_id, FactStats()), stage=self._stage(item))
            for item in self.items
        ]

    def get_facts_needing_attention(self, state: StudentState) -> list[FactItemProgress]:
        return [progress for progress in self.get_fact_items_with_stats(state) if progress.needs_attention()]


@dataclass
class OverallStats:
    total_fact_sets: int = 0
    completed_fact_sets: int = 0
    total_facts: int = 0
    completed_facts: int = 0
    overall_progress_percent: float = 0.0
    stage_distribution: dict[str, int] = field(default_factory=dict)
    current_streak: int = 0
    total_attempts: int = 0
    overall_accuracy: float = 0.0
    struggling_facts_count: int = 0
    mastered_facts_count: int = 0


class LearningProgressService:
    """Builds progress views from the live learner record."""

    def __init__(self, config: LearningAlgorithmConfig, storage_manager: StorageManager):
        self.config = config
        self.storage_manager = storage_manager

    def get_fact_set_progresses(self) -> list[FactSetProgress]:
        fact_sets = sorted(
            self.storage_manager.fact_sets_by_id.values(),
            key=lambda fs: self.config.get_fact_set_order_index(fs.id),
        )
        return [self._create_progress(fact_set) for fact_set in fact_sets]

    def get_fact_set_progress(self, fact_set_id: str) -> FactSetProgress | None:
        fact_set = self.storage_manager.fact_sets_by_id.get(fact_set_id)
        return self._create_progress(fact_set) if fact_set is not None else None

    def _create_progress(self, fact_set: FactSet) -> FactSetProgress:
        state = self.storage_manager.student_state
        by_id = {item.fact_id: item for item in state.get_facts_for_set(fact_set.id)}
        first_stage_id = self.config.get_first_stage().id
        items = [
            by_id.get(fact.id) or FactItem(fact_id=fact.id, fact_set_id=fact_set.id, stage_id=first_stage_id)
            for fact in fact_set.facts
        ]
        return FactSetProgress(fact_set=fact_set, items=items, config=self.config)

    def get_claimable_fact_set_ids(self) -> list[str]:
        return [progress.fact_set.id for progress in self.get_fact_set_progresses() if progress.can_claim_reward()]

    def calculate_overall_statistics(self, data: list[FactSetProgress] | None = None) -> OverallStats:
        data = data if data is not None else self.get_fact_set_progresses()
        state = self.storage_manager.student_state
        stats = OverallStats(
            total_fact_sets=len(data),
            completed_fact_sets=sum(1 for progress in data if progress.is_completed()),
            total_facts=sum(progress.total_facts_count for progress in data),
            completed_facts=sum(progress.completed_facts_count for progress in data),
        )

        if stats.total_facts:
            weighted = sum(progress.progress_percentage * progress.total_facts_count for progress in data)
            stats.overall_progress_percent = weighted / stats.total_facts

        for progress in data:
            for stage_id, count in progress.get_stage_distribution().items():
                stats.stage_distribution[stage_id] = stats.stage_distribution.get(stage_id, 0) + count

        stats.current_streak = self._current_streak(state)
        stats.total_attempts = sum(s.times_shown for s in state.stats.values())
        total_correct = sum(s.times_correct for s in state.stats.values())
        stats.overall_accuracy = total_correct / stats.total_attempts if stats.total_attempts else 0.0
        stats.struggling_facts_count = sum(len(progress.get_facts_needing_attention(state)) for progress in data)
        stats.mastered_facts_count = stats.stage_distribution.get(self.config.get_mastered_stage().id, 0)
        return stats

    @staticmethod
    def _current_streak(state: StudentState) -> int:
        streak = 0
        for record in state.get_recent_answers():
            if record.answer_type != AnswerType.CORRECT:
                break
            streak += 1
        return streak
