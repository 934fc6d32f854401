"""
Unit tests for LearningProgressService reporting.
"""

import pytest

from src.fluency.models import AnswerType
from src.fluency.progress import FactItemProgress, LearningProgressService
from src.fluency.student_state import FactItem, FactStats


@pytest.fixture
def progress_factory(storage_factory):
    async def _build(config):
        storage = await storage_factory(config)
        return LearningProgressService(config, storage), storage

    return _build


class TestFactSetProgress:
    @pytest.mark.asyncio
    async def test_fresh_record_has_no_progress(self, progress_factory, speed_run_config):
        service, _ = await progress_factory(speed_run_config)

        progress = service.get_fact_set_progress("5")

        assert progress.total_facts_count == 6
        assert progress.completed_facts_count == 0
        assert progress.progress_percentage == pytest.approx(20.0)
        assert progress.get_dominant_stage().id == "assessment"
        assert progress.can_claim_reward() is False

    @pytest.mark.asyncio
    async def test_known_facts_make_set_claimable(self, progress_factory, speed_run_config):
        service, storage = await progress_factory(speed_run_config)
        for item in storage.student_state.get_facts_for_set("5"):
            item.stage_id = "review-1min"
        storage.student_state.get_fact_item("5x5").stage_id = "mastered"

        progress = service.get_fact_set_progress("5")

        assert progress.can_claim_reward() is True
        assert progress.is_completed() is False
        assert progress.completed_facts_count == 1
        assert progress.get_least_advanced_stage().id == "review-1min"
        assert progress.get_most_advanced_stage().id == "mastered"
        assert service.get_claimable_fact_set_ids() == ["5"]

    @pytest.mark.asyncio
    async def test_stage_distribution_lists_every_stage(self, progress_factory, speed_run_config):
        service, storage = await progress_factory(speed_run_config)
        storage.student_state.get_fact_item("2x2").stage_id = "practice-fast"

        distribution = service.get_fact_set_progress("2").get_stage_distribution()

        assert len(distribution) == 12
        assert distribution["assessment"] == 5
        assert distribution["practice-fast"] == 1
        assert distribution["mastered"] == 0

    @pytest.mark.asyncio
    async def test_unknown_set_has_no_progress(self, progress_factory, speed_run_config):
        service, _ = await progress_factory(speed_run_config)
        assert service.get_fact_set_progress("9") is None

    @pytest.mark.asyncio
    async def test_progresses_follow_play_order(self, progress_factory, speed_run_config):
        service, _ = await progress_factory(speed_run_config)
        assert [p.fact_set.id for p in service.get_fact_set_progresses()] == ["0-1", "5", "2", "4"]


class TestFactItemProgress:
    def test_low_accuracy_needs_attention(self):
        progress = FactItemProgress(
            item=FactItem(fact_id="7x8", fact_set_id="7", stage_id="practice-slow"),
            stats=FactStats(times_shown=6, times_correct=2, times_incorrect=4),
            stage=None,
        )
        assert progress.needs_attention() is True
        assert progress.status == "Needs Practice"

    def test_incorrect_streak_needs_attention(self):
        progress = FactItemProgress(
            item=FactItem(fact_id="7x8", fact_set_id="7", stage_id="grounding", consecutive_incorrect=3),
            stats=FactStats(times_shown=3, times_incorrect=3),
            stage=None,
        )
        assert progress.needs_attention() is True

    def test_unseen_fact_is_not_started(self):
        progress = FactItemProgress(
            item=FactItem(fact_id="7x8", fact_set_id="7", stage_id="assessment"),
            stats=FactStats(),
            stage=None,
        )
        assert progress.accuracy == 0.0
        assert progress.status == "Not Started"


class TestOverallStatistics:
    @pytest.mark.asyncio
    async def test_overall_counts(self, progress_factory, speed_run_config, fake_clock):
        service, storage = await progress_factory(speed_run_config)
        state = storage.student_state
        for item in state.facts:
            if item.fact_set_id == "0-1":
                item.stage_id = "mastered"
        state.update_stats("5x2", AnswerType.CORRECT, fake_clock.now)
        state.update_stats("5x2", AnswerType.INCORRECT, fake_clock.now)

        stats = service.calculate_overall_statistics()

        assert stats.total_fact_sets == 4
        assert stats.completed_fact_sets == 1
        assert stats.total_facts == 30
        assert stats.completed_facts == 12
        assert stats.mastered_facts_count == 12
        assert stats.total_attempts == 2
        assert stats.overall_accuracy == pytest.approx(0.5)
        assert stats.stage_distribution["assessment"] == 18
