"""
Promotion engine: the stage-transition state machine.

A correct answer grows the correct streak and promotes the fact once the
streak reaches the stage's promotion threshold; an incorrect answer does the
same in the other direction. Walking the ladder skips stages whose threshold
in the active difficulty tier is 0 (or missing). After an individual
promotion the engine may promote the rest of the fact set's stage group at
once (bulk promotion).
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger

from src.fluency.algorithm_config import DifficultyConfig, LearningAlgorithmConfig
from src.fluency.difficulty import DifficultyManager
from src.fluency.events import (
    BulkPromotionInfo,
    FactSetCompletionInfo,
    FactSetReviewReadyInfo,
    IndividualFactProgressionInfo,
    LearningEventSink,
    publish_event,
)
from src.fluency.models import AnswerType
from src.fluency.stages import GroundingStage, LearningStage, is_reinforcement_stage
from src.fluency.storage import StorageManager
from src.fluency.student_state import FactItem
from src.fluency.time_provider import TimeProvider


class PromotionEngine:
    """Moves facts up and down the stage ladder."""

    def __init__(
        self,
        config: LearningAlgorithmConfig,
        storage_manager: StorageManager,
        difficulty_manager: DifficultyManager,
        time_provider: TimeProvider,
        event_sink: LearningEventSink | None = None,
    ):
        self.config = config
        self.storage_manager = storage_manager
        self.difficulty_manager = difficulty_manager
        self.time_provider = time_provider
        self.event_sink = event_sink

    def promote_facts(self, item: FactItem, answer_type: AnswerType) -> None:
        """
        Apply one answer to a fact's streaks and stage.

        Args:
            item: The answered fact
            answer_type: Outcome of the answer (skips and timeouts only
                leave the streaks untouched)
        """
        now = self.time_provider.now
        item.update_streak(answer_type)

        stage = self.config.get_stage_by_id(item.stage_id)
        if answer_type == AnswerType.CORRECT and stage is not None and is_reinforcement_stage(stage):
            # the next tier's delay counts from this answer
            item.last_asked_time = now

        difficulty = self.difficulty_manager.get_current_difficulty_config()

        if answer_type == AnswerType.CORRECT and self.should_promote(item, difficulty):
            streak = item.consecutive_correct
            from_stage_id = item.stage_id
            target = self.get_next_stage(item.stage_id, difficulty)
            if self._transition(item, target, answer_type, streak, now):
                self._try_bulk_promotion(item, from_stage_id, streak, difficulty, now)

        elif answer_type == AnswerType.INCORRECT and self.should_demote(item, difficulty):
            target = self.get_previous_stage(item.stage_id, difficulty)
            self._transition(item, target, answer_type, item.consecutive_incorrect, now)

    # ========================================
    # THRESHOLDS
    # ========================================

    def should_promote(self, item: FactItem, difficulty: DifficultyConfig) -> bool:
        threshold = difficulty.get_promotion_threshold(item.stage_id)
        return threshold <= 0 or item.consecutive_correct >= threshold

    def should_demote(self, item: FactItem, difficulty: DifficultyConfig) -> bool:
        threshold = difficulty.get_demotion_threshold(item.stage_id)
        return threshold <= 0 or item.consecutive_incorrect >= threshold

    # ========================================
    # LADDER WALKS
    # ========================================

    def _index_of(self, stage_id: str, ordered: list[LearningStage]) -> int:
        for index, stage in enumerate(ordered):
            if stage.id == stage_id:
                return index
        return -1

    def get_next_stage(self, stage_id: str, difficulty: DifficultyConfig) -> LearningStage:
        """First higher stage that is terminal or has a positive promotion threshold."""
        ordered = self.config.ordered_stages
        index = self._index_of(stage_id, ordered)
        if index < 0:
            return self.config.get_first_stage()

        for stage in ordered[index + 1 :]:
            if stage.is_fully_learned or difficulty.get_promotion_threshold(stage.id) > 0:
                return stage
        return ordered[-1]

    def get_previous_stage(self, stage_id: str, difficulty: DifficultyConfig) -> LearningStage:
        """First lower stage that is Grounding or has a positive demotion threshold."""
        ordered = self.config.ordered_stages
        index = self._index_of(stage_id, ordered)
        if index < 0:
            return self.config.get_first_stage()

        for stage in reversed(ordered[:index]):
            if isinstance(stage, GroundingStage) or difficulty.get_demotion_threshold(stage.id) > 0:
                return stage
        return ordered[0]

    def _transition(
        self,
        item: FactItem,
        target: LearningStage,
        answer_type: AnswerType,
        streak: int,
        now: datetime,
    ) -> bool:
        if target.id == item.stage_id:
            return False

        from_stage_id = item.stage_id
        item.stage_id = target.id
        item.reset_streak()

        logger.debug(f"Fact {item.fact_id}: {from_stage_id} -> {target.id} ({answer_type.value} x{streak})")
        publish_event(
            self.event_sink,
            IndividualFactProgressionInfo(
                fact_id=item.fact_id,
                fact_set_id=item.fact_set_id,
                from_stage_id=from_stage_id,
                to_stage_id=target.id,
                answer_type=answer_type,
                consecutive_count=streak,
                timestamp=now,
            ),
        )
        return True

    # ========================================
    # BULK PROMOTION
    # ========================================

    def _try_bulk_promotion(
        self,
        trigger: FactItem,
        from_stage_id: str,
        trigger_streak: int,
        difficulty: DifficultyConfig,
        now: datetime,
    ) -> int:
        """
        Promote the trigger's former stage group within its fact set.

        Returns:
            Number of additional facts promoted
        """
        bulk = difficulty.bulk_promotion
        if not bulk.enabled:
            return 0

        state = self.storage_manager.student_state
        fact_set_id = trigger.fact_set_id

        # The trigger's streak resets on every promotion, so a run spread across
        # several facts of the set counts as well.
        streak = max(trigger_streak, state.get_consecutive_correct_for_fact_set(fact_set_id))
        if streak < bulk.min_consecutive_correct:
            return 0

        coverage = state.get_fact_set_coverage(fact_set_id)
        if coverage < bulk.min_fact_set_coverage_percent:
            return 0

        others = [
            item
            for item in state.get_facts_for_set_and_stage(fact_set_id, from_stage_id)
            if item.fact_id != trigger.fact_id
        ]
        if not others:
            return 0

        promoted = 0
        for item in others:
            target = self.get_next_stage(item.stage_id, difficulty)
            if self._transition(item, target, AnswerType.CORRECT, streak, now):
                promoted += 1

        logger.info(
            f"Bulk promotion in fact set {fact_set_id}: {promoted + 1} facts left {from_stage_id} "
            f"(streak {streak}, coverage {coverage:.0%})"
        )
        publish_event(
            self.event_sink,
            BulkPromotionInfo(
                fact_set_id=fact_set_id,
                promoted_facts_count=promoted + 1,
                consecutive_correct_count=streak,
                coverage_percentage=coverage,
                timestamp=now,
            ),
        )
        return promoted

    # ========================================
    # FACT SET MILESTONES
    # ========================================

    def create_fact_set_review_ready_event(self, fact_set_id: str) -> FactSetReviewReadyInfo:
        state = self.storage_manager.student_state
        return FactSetReviewReadyInfo(
            fact_set_id=fact_set_id,
            next_fact_set_id=self.config.get_next_fact_set_id(fact_set_id),
            total_answer_count=len(state.get_recent_answers_for_fact_set(fact_set_id)),
            total_facts_count=len(state.get_facts_for_set(fact_set_id)),
            timestamp=self.time_provider.now,
        )

    def create_fact_set_completion_event(self, fact_set_id: str) -> FactSetCompletionInfo:
        state = self.storage_manager.student_state
        return FactSetCompletionInfo(
            completed_fact_set_id=fact_set_id,
            next_fact_set_id=self.config.get_next_fact_set_id(fact_set_id),
            total_answer_count=len(state.get_recent_answers_for_fact_set(fact_set_id)),
            total_facts_count=len(state.get_facts_for_set(fact_set_id)),
            timestamp=self.time_provider.now,
        )
