"""
Fact selection.

Chooses the next fact to present from the live learner record:

1. Mastered facts are never selected.
2. Known facts (review/repetition) must be off the general cooldown and past
   their tier's reinforcement delay.
3. Facts being learned (shown, not yet known) must be off the general cooldown.
4. Never-shown facts are admitted only while the working set has room
   (``max_facts_being_learned``), earliest fact set first.
5. The recent known-fact ratio decides which pool is preferred; when the
   preferred pool is empty the oldest eligible fact overall is used instead.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from loguru import logger

from src.fluency.algorithm_config import DifficultyConfig, LearningAlgorithmConfig
from src.fluency.models import Fact
from src.fluency.stages import LearningStage, RepetitionStage, ReviewStage
from src.fluency.storage import StorageManager
from src.fluency.student_state import FactItem

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

Candidate = tuple[FactItem, LearningStage]


class FactSelectionService:
    """Select the next fact and stamp it when it is presented."""

    def __init__(
        self,
        config: LearningAlgorithmConfig,
        storage_manager: StorageManager,
        rng: random.Random | None = None,
    ):
        self.config = config
        self.storage_manager = storage_manager
        self.rng = rng or random.Random()

    # ========================================
    # SELECTION
    # ========================================

    def select_next_fact(
        self, difficulty: DifficultyConfig, now: datetime
    ) -> tuple[Fact | None, LearningStage | None]:
        """
        Pick the next fact to ask.

        Args:
            difficulty: Active difficulty tier
            now: Current time

        Returns:
            (fact, stage), or (None, None) when nothing is eligible
        """
        state = self.storage_manager.student_state

        known: list[Candidate] = []
        being_learned: list[Candidate] = []
        never_shown: list[Candidate] = []
        being_learned_count = 0

        for item in state.facts:
            stage = self._resolve_stage(item)
            if stage.is_fully_learned:
                continue
            if stage.is_known_fact:
                if not self.is_on_general_cooldown(item, now) and not self.is_on_reinforcement_cooldown(
                    item, stage, now
                ):
                    known.append((item, stage))
            elif item.last_asked_time is not None:
                being_learned_count += 1
                if not self.is_on_general_cooldown(item, now):
                    being_learned.append((item, stage))
            else:
                never_shown.append((item, stage))

        slots = max(0, difficulty.max_facts_being_learned - being_learned_count)
        never_shown.sort(key=lambda candidate: self.config.get_fact_set_order_index(candidate[0].fact_set_id))
        unknown = being_learned + never_shown[:slots]

        if not known and not unknown:
            logger.debug(
                f"No eligible fact (being learned: {being_learned_count}/{difficulty.max_facts_being_learned})"
            )
            return None, None

        prefer_known = self._prefers_known_facts(difficulty)
        if prefer_known and known:
            item, stage = min(known, key=lambda c: self._known_sort_key(c, now))
        elif not prefer_known and unknown:
            item, stage = min(unknown, key=self._unknown_sort_key)
        else:
            # preferred pool is empty: oldest eligible fact regardless of ratio
            item, stage = min(known + unknown, key=self._oldest_sort_key)

        fact = self.storage_manager.get_fact_by_id(item.fact_id)
        if fact is None:
            logger.warning(f"Selected fact {item.fact_id} has no content, skipping selection")
            return None, None

        logger.debug(
            f"Selected {fact.id} at {stage.id} (known pool: {len(known)}, unknown pool: {len(unknown)}, "
            f"prefer known: {prefer_known})"
        )
        return fact, stage

    def _prefers_known_facts(self, difficulty: DifficultyConfig) -> bool:
        state = self.storage_manager.student_state
        ratio = state.get_recent_known_fact_ratio(self.config.recent_question_history_size)
        if ratio is None:
            return self.rng.random() < 0.5
        if ratio < difficulty.known_fact_min_ratio:
            return True
        if ratio > difficulty.known_fact_max_ratio:
            return False
        return self.rng.random() < 0.5

    def _resolve_stage(self, item: FactItem) -> LearningStage:
        return self.config.get_stage_by_id(item.stage_id) or self.config.get_first_stage()

    def _unknown_sort_key(self, candidate: Candidate) -> tuple:
        item, stage = candidate
        return (
            self.config.get_fact_set_order_index(item.fact_set_id),
            stage.order,
            item.last_asked_time or _OLDEST,
            item.random_factor,
        )

    def _known_sort_key(self, candidate: Candidate, now: datetime) -> tuple:
        item, stage = candidate
        return (
            self.config.get_fact_set_order_index(item.fact_set_id),
            stage.order,
            self.get_next_reinforcement_time(item, stage) or _OLDEST,
            item.last_asked_time or _OLDEST,
            item.random_factor,
        )

    @staticmethod
    def _oldest_sort_key(candidate: Candidate) -> tuple:
        item, _ = candidate
        return (item.last_asked_time or _OLDEST, item.random_factor)

    # ========================================
    # COOLDOWNS
    # ========================================

    def get_randomized_interval(self, base: float, item: FactItem) -> float:
        """Jitter ``base`` by up to +/-12.5% using the item's random factor."""
        if self.config.disable_randomization:
            return base
        return base + (base / 4) * item.random_factor

    def is_on_general_cooldown(self, item: FactItem, now: datetime) -> bool:
        if item.last_asked_time is None:
            return False
        base = self.config.min_question_interval_seconds
        # jitter may stretch the general cooldown but never shorten it
        interval = max(base, self.get_randomized_interval(base, item))
        elapsed = (now - item.last_asked_time).total_seconds()
        return elapsed < interval

    def get_next_reinforcement_time(self, item: FactItem, stage: LearningStage) -> datetime | None:
        if item.last_asked_time is None:
            return None
        if isinstance(stage, ReviewStage):
            minutes = self.get_randomized_interval(stage.delay_minutes, item)
            return item.last_asked_time + timedelta(minutes=minutes)
        if isinstance(stage, RepetitionStage):
            days = self.get_randomized_interval(stage.delay_days, item)
            return item.last_asked_time + timedelta(days=days)
        return None

    def is_on_reinforcement_cooldown(self, item: FactItem, stage: LearningStage, now: datetime) -> bool:
        next_time = self.get_next_reinforcement_time(item, stage)
        return next_time is not None and now < next_time

    # ========================================
    # PRESENTATION
    # ========================================

    def update_last_asked_time(self, item: FactItem, now: datetime) -> None:
        """Stamp a presented fact and draw a new tie-break factor in [-0.5, 0.5)."""
        item.last_asked_time = now
        item.random_factor = self.rng.random() - 0.5

    def count_facts_being_learned(self) -> int:
        count = 0
        for item in self.storage_manager.student_state.facts:
            stage = self._resolve_stage(item)
            if item.last_asked_time is not None and not stage.is_known_fact:
                count += 1
        return count
