"""
Unit tests for the LearningAlgorithm question/answer cycle.

Uses an in-memory store and a fake clock so whole sessions can be replayed
deterministically.
"""

from collections import Counter

import pytest

from src.fluency.algorithm import LearningAlgorithm
from src.fluency.errors import AlgorithmNotInitializedError
from src.fluency.events import (
    CollectingEventSink,
    FactSetCompletionInfo,
    FactSetReviewReadyInfo,
    IndividualFactProgressionInfo,
)
from src.fluency.models import AnswerType, LearningMode, UserAnswerSubmission
from src.fluency.time_provider import to_unix_millis


@pytest.fixture
def sink():
    return CollectingEventSink()


@pytest.fixture
def algorithm(speed_run_config, memory_store, fake_clock, sink, rng):
    return LearningAlgorithm(speed_run_config, memory_store, fake_clock, sink, rng)


def wrong_choice(question):
    return next(choice for choice in question.choices if not choice.is_correct)


def question_for(algorithm, fact_id):
    """Build a question for a specific fact at its current stage."""
    fact = algorithm.storage_manager.get_fact_by_id(fact_id)
    item = algorithm.student_state.get_fact_item(fact_id)
    return algorithm.question_factory.create_question_for_stage_id(fact, item.stage_id)


def set_stages(algorithm, fact_set_id, stage_id):
    for item in algorithm.student_state.get_facts_for_set(fact_set_id):
        item.stage_id = stage_id


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_calls_before_initialize_raise(self, algorithm):
        assert algorithm.is_initialized is False
        with pytest.raises(AlgorithmNotInitializedError):
            await algorithm.get_next_question()

    @pytest.mark.asyncio
    async def test_submit_before_initialize_raises(self, algorithm):
        with pytest.raises(AlgorithmNotInitializedError):
            await algorithm.submit_answer(None, UserAnswerSubmission.from_skipped())

    @pytest.mark.asyncio
    async def test_initialize_loads_record(self, algorithm):
        await algorithm.initialize()

        assert algorithm.is_initialized is True
        assert len(algorithm.student_state.facts) == 30
        assert algorithm.current_difficulty == "SpeedRun"


class TestGetNextQuestion:
    @pytest.mark.asyncio
    async def test_question_stamps_fact_and_saves(self, algorithm, memory_store, fake_clock):
        await algorithm.initialize()

        question = await algorithm.get_next_question()

        item = algorithm.student_state.get_fact_item(question.fact_id)
        assert item.last_asked_time == fake_clock.now
        stored = await memory_store.load("FluencyState")
        stored_item = next(fact for fact in stored["facts"] if fact["factId"] == question.fact_id)
        assert stored_item["lastAskedTime"] is not None

    @pytest.mark.asyncio
    async def test_start_question_records_time(self, algorithm, fake_clock):
        await algorithm.initialize()
        question = await algorithm.get_next_question()

        algorithm.start_question(question)

        assert question.time_started == to_unix_millis(fake_clock.now)

    @pytest.mark.asyncio
    async def test_nothing_left_returns_none(self, algorithm):
        await algorithm.initialize()
        for item in algorithm.student_state.facts:
            item.stage_id = "mastered"

        assert await algorithm.get_next_question() is None


class TestSubmitAnswer:
    @pytest.mark.asyncio
    async def test_correct_answer_is_recorded_and_promotes(self, algorithm, sink, speed_run_config):
        await algorithm.initialize()
        question = question_for(algorithm, "5x2")

        result = await algorithm.submit_answer(question, UserAnswerSubmission.from_answer(question.correct_choice))

        assert result.is_correct
        assert result.should_retry is False
        assert result.correct_answer.value == 10
        assert result.time_to_next_question == speed_run_config.time_to_next_question
        assert algorithm.student_state.get_fact_item("5x2").stage_id == "practice-slow"
        [record] = algorithm.student_state.answer_history
        assert record.fact_id == "5x2"
        assert record.stage_id == "assessment"
        assert algorithm.student_state.stats["5x2"].times_correct == 1
        [event] = sink.of_type(IndividualFactProgressionInfo)
        assert event.to_stage_id == "practice-slow"

    @pytest.mark.asyncio
    async def test_incorrect_answer_demotes(self, algorithm):
        await algorithm.initialize()
        question = question_for(algorithm, "5x2")

        result = await algorithm.submit_answer(question, UserAnswerSubmission.from_answer(wrong_choice(question)))

        assert result.is_correct is False
        assert algorithm.student_state.get_fact_item("5x2").stage_id == "grounding"
        assert algorithm.student_state.stats["5x2"].times_incorrect == 1

    @pytest.mark.asyncio
    async def test_wrong_grounding_answer_is_retried_without_scoring(self, algorithm, sink):
        await algorithm.initialize()
        algorithm.student_state.get_fact_item("5x2").stage_id = "grounding"
        question = question_for(algorithm, "5x2")
        assert question.learning_mode == LearningMode.GROUNDING

        result = await algorithm.submit_answer(question, UserAnswerSubmission.from_answer(wrong_choice(question)))

        assert result.should_retry is True
        assert result.correct_answer.value == 10
        assert algorithm.student_state.answer_history == []
        assert algorithm.student_state.get_fact_item("5x2").consecutive_incorrect == 0
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_correct_grounding_answer_promotes(self, algorithm):
        await algorithm.initialize()
        algorithm.student_state.get_fact_item("5x2").stage_id = "grounding"
        question = question_for(algorithm, "5x2")

        result = await algorithm.submit_answer(question, UserAnswerSubmission.from_answer(question.correct_choice))

        assert result.should_retry is False
        assert algorithm.student_state.get_fact_item("5x2").stage_id == "assessment"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("submission", [UserAnswerSubmission.from_skipped(), UserAnswerSubmission.from_timed_out()])
    async def test_skip_and_timeout_are_not_scored(self, algorithm, sink, submission):
        await algorithm.initialize()
        question = question_for(algorithm, "5x2")

        result = await algorithm.submit_answer(question, submission)

        assert result.should_retry is False
        assert result.is_correct is False
        assert algorithm.student_state.answer_history == []
        assert "5x2" not in algorithm.student_state.stats
        assert algorithm.student_state.get_fact_item("5x2").stage_id == "assessment"
        assert sink.events == []


class TestFactSetMilestones:
    @pytest.mark.asyncio
    async def test_review_ready_when_last_fact_reaches_review(self, algorithm, sink):
        await algorithm.initialize()
        set_stages(algorithm, "0-1", "review-1min")
        algorithm.student_state.get_fact_item("0x0").stage_id = "practice-fast"
        question = question_for(algorithm, "0x0")

        await algorithm.submit_answer(question, UserAnswerSubmission.from_answer(question.correct_choice))

        [event] = sink.of_type(FactSetReviewReadyInfo)
        assert event.fact_set_id == "0-1"
        assert event.next_fact_set_id == "5"
        assert event.total_facts_count == 12
        assert event.total_answer_count == 1

    @pytest.mark.asyncio
    async def test_no_review_ready_while_facts_lag_behind(self, algorithm, sink):
        await algorithm.initialize()
        algorithm.student_state.get_fact_item("0x0").stage_id = "practice-fast"
        question = question_for(algorithm, "0x0")

        await algorithm.submit_answer(question, UserAnswerSubmission.from_answer(question.correct_choice))

        assert sink.of_type(FactSetReviewReadyInfo) == []

    @pytest.mark.asyncio
    async def test_completion_when_last_fact_is_mastered(self, algorithm, sink):
        await algorithm.initialize()
        set_stages(algorithm, "4", "mastered")
        algorithm.student_state.get_fact_item("4x1").stage_id = "repetition-1week"
        question = question_for(algorithm, "4x1")

        await algorithm.submit_answer(question, UserAnswerSubmission.from_answer(question.correct_choice))

        [event] = sink.of_type(FactSetCompletionInfo)
        assert event.completed_fact_set_id == "4"
        assert event.next_fact_set_id == ""
        assert sink.of_type(FactSetReviewReadyInfo) == []


class TestSpeedRunSession:
    @pytest.mark.asyncio
    async def test_all_correct_session_masters_every_fact(self, algorithm, sink, fake_clock):
        """Every correct answer promotes once, so 30 facts x 10 steps (assessment to mastered) ends the run."""
        await algorithm.initialize()
        answered = 0

        for _ in range(500):
            question = await algorithm.get_next_question()
            if question is None:
                break
            algorithm.start_question(question)
            await algorithm.submit_answer(question, UserAnswerSubmission.from_answer(question.correct_choice))
            answered += 1
            fake_clock.advance(days=8)

        assert answered == 30 * 10
        assert all(item.stage_id == "mastered" for item in algorithm.student_state.facts)
        assert len(algorithm.student_state.answer_history) == answered

        completions = Counter(event.completed_fact_set_id for event in sink.of_type(FactSetCompletionInfo))
        assert completions == {"0-1": 1, "5": 1, "2": 1, "4": 1}
        assert {event.fact_set_id for event in sink.of_type(FactSetReviewReadyInfo)} == {"0-1", "5", "2", "4"}
        assert len(sink.of_type(IndividualFactProgressionInfo)) == answered

    @pytest.mark.asyncio
    async def test_working_set_never_exceeds_limit(self, algorithm, fake_clock):
        await algorithm.initialize()

        for _ in range(40):
            question = await algorithm.get_next_question()
            if question is None:
                fake_clock.advance(minutes=1)
                continue
            await algorithm.submit_answer(question, UserAnswerSubmission.from_answer(question.correct_choice))
            assert algorithm.selection_service.count_facts_being_learned() <= 2
            fake_clock.advance(seconds=30)

    @pytest.mark.asyncio
    async def test_session_resumes_from_store(self, speed_run_config, memory_store, fake_clock, rng):
        first = LearningAlgorithm(speed_run_config, memory_store, fake_clock, rng=rng)
        await first.initialize()
        question = await first.get_next_question()
        await first.submit_answer(question, UserAnswerSubmission.from_answer(question.correct_choice))

        second = LearningAlgorithm(speed_run_config, memory_store, fake_clock, rng=rng)
        await second.initialize()

        assert second.student_state.get_fact_item(question.fact_id).stage_id == "practice-slow"
        assert [record.answer_type for record in second.student_state.answer_history] == [AnswerType.CORRECT]
