"""
Dynamic difficulty.

Picks the active DifficultyConfig from the accuracy of the most recent
answers: the highest tier whose ``min_accuracy_threshold`` is reached wins.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from src.fluency.algorithm_config import DifficultyConfig, DynamicDifficultyConfig
from src.fluency.errors import ConfigurationError
from src.fluency.models import AnswerType
from src.fluency.student_state import AnswerRecord


class DifficultyManager:
    """Tracks the active difficulty tier."""

    def __init__(self, config: DynamicDifficultyConfig):
        if not config.difficulties:
            raise ConfigurationError("Dynamic difficulty needs at least one difficulty tier")
        self.config = config
        # Start on the most permissive tier
        lowest = min(config.difficulties, key=lambda d: d.min_accuracy_threshold)
        self.current_difficulty: str = lowest.name

    def update_difficulty(self, recent_answers: Sequence[AnswerRecord] | None) -> str:
        """
        Re-evaluate the tier from recent answers (newest first).

        Args:
            recent_answers: Recent answer records; only the newest
                ``recent_answer_window`` are considered

        Returns:
            Name of the active tier after the update
        """
        if recent_answers is None or len(recent_answers) < self.config.min_answers_for_difficulty_change:
            return self.current_difficulty

        window = list(recent_answers)[: self.config.recent_answer_window]
        correct = sum(1 for answer in window if answer.answer_type == AnswerType.CORRECT)
        accuracy = correct / len(window)

        selected = self._select_for_accuracy(accuracy)
        if selected.name != self.current_difficulty:
            logger.info(
                f"Difficulty changed {self.current_difficulty} -> {selected.name} "
                f"(accuracy {accuracy:.0%} over {len(window)} answers)"
            )
            self.current_difficulty = selected.name
        return self.current_difficulty

    def _select_for_accuracy(self, accuracy: float) -> DifficultyConfig:
        best: DifficultyConfig | None = None
        for difficulty in self.config.difficulties:
            if difficulty.min_accuracy_threshold > accuracy:
                continue
            # strict comparison keeps the first-listed tier on equal thresholds
            if best is None or difficulty.min_accuracy_threshold > best.min_accuracy_threshold:
                best = difficulty
        if best is None:
            return min(self.config.difficulties, key=lambda d: d.min_accuracy_threshold)
        return best

    def get_current_difficulty_config(self) -> DifficultyConfig:
        for difficulty in self.config.difficulties:
            if difficulty.name == self.current_difficulty:
                return difficulty
        return self.config.difficulties[0]
