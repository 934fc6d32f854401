"""
Unit tests for DifficultyManager tier selection.
"""

from datetime import datetime, timedelta, timezone

import pytest

from src.fluency.algorithm_config import DifficultyConfig, DynamicDifficultyConfig
from src.fluency.difficulty import DifficultyManager
from src.fluency.errors import ConfigurationError
from src.fluency.models import AnswerType
from src.fluency.student_state import AnswerRecord

START = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def make_answers(*outcomes: bool) -> list[AnswerRecord]:
    """Answer records newest first, one per outcome."""
    return [
        AnswerRecord(
            fact_id=f"2x{i}",
            answer_type=AnswerType.CORRECT if correct else AnswerType.INCORRECT,
            stage_id="practice-slow",
            fact_set_id="2",
            answer_time=START - timedelta(seconds=i),
        )
        for i, correct in enumerate(outcomes)
    ]


@pytest.fixture
def three_tiers():
    return DynamicDifficultyConfig(
        difficulties=[
            DifficultyConfig(name="Easy", min_accuracy_threshold=0.0),
            DifficultyConfig(name="Medium", min_accuracy_threshold=0.5),
            DifficultyConfig(name="Hard", min_accuracy_threshold=0.8),
        ],
        recent_answer_window=5,
        min_answers_for_difficulty_change=3,
    )


class TestTierSelection:
    def test_starts_on_lowest_threshold(self, three_tiers):
        manager = DifficultyManager(three_tiers)
        assert manager.current_difficulty == "Easy"

    def test_all_correct_selects_hard(self, three_tiers):
        manager = DifficultyManager(three_tiers)
        assert manager.update_difficulty(make_answers(True, True, True, True, True)) == "Hard"

    def test_three_of_five_selects_medium(self, three_tiers):
        manager = DifficultyManager(three_tiers)
        assert manager.update_difficulty(make_answers(True, False, True, False, True)) == "Medium"

    def test_none_correct_selects_easy(self, three_tiers):
        manager = DifficultyManager(three_tiers)
        manager.update_difficulty(make_answers(True, True, True, True, True))
        assert manager.update_difficulty(make_answers(False, False, False, False, False)) == "Easy"

    def test_four_of_five_reaches_hard_boundary(self, three_tiers):
        """Accuracy exactly on a threshold qualifies for that tier."""
        manager = DifficultyManager(three_tiers)
        assert manager.update_difficulty(make_answers(True, True, False, True, True)) == "Hard"

    def test_only_window_is_considered(self, three_tiers):
        manager = DifficultyManager(three_tiers)
        answers = make_answers(True, True, True, True, True, False, False, False, False, False)
        assert manager.update_difficulty(answers) == "Hard"


class TestMinimumAnswers:
    def test_too_few_answers_keep_current_tier(self, three_tiers):
        manager = DifficultyManager(three_tiers)
        assert manager.update_difficulty(make_answers(True, True)) == "Easy"

    def test_none_keeps_current_tier(self, three_tiers):
        manager = DifficultyManager(three_tiers)
        manager.update_difficulty(make_answers(True, True, True))
        assert manager.update_difficulty(None) == "Hard"


class TestConfiguration:
    def test_equal_thresholds_prefer_first_listed(self):
        config = DynamicDifficultyConfig(
            difficulties=[
                DifficultyConfig(name="Low", min_accuracy_threshold=0.0),
                DifficultyConfig(name="First", min_accuracy_threshold=0.5),
                DifficultyConfig(name="Second", min_accuracy_threshold=0.5),
            ],
            recent_answer_window=4,
            min_answers_for_difficulty_change=2,
        )
        manager = DifficultyManager(config)
        assert manager.update_difficulty(make_answers(True, True, True, True)) == "First"

    def test_empty_tier_list_is_rejected(self):
        with pytest.raises(ConfigurationError):
            DifficultyManager(DynamicDifficultyConfig(difficulties=[]))

    def test_current_config_matches_name(self, three_tiers):
        manager = DifficultyManager(three_tiers)
        manager.update_difficulty(make_answers(True, False, True))
        assert manager.get_current_difficulty_config().name == "Medium"
