"""
Unit tests for QuestionFactory and the distractor generator.
"""

import random

import pytest

from src.fluency.algorithm_config import LearningAlgorithmConfig
from src.fluency.distractors import (
    ArithmeticErrorStrategy,
    ContextAwareDistractorGenerator,
    DistractorContext,
    DistractorGenerationConfig,
    FactorVariationStrategy,
    TableConfusionStrategy,
)
from src.fluency.models import Fact, LearningMode
from src.fluency.question_factory import QuestionFactory, learning_mode_for_stage


@pytest.fixture
def factory():
    return QuestionFactory(LearningAlgorithmConfig.create_normal(), random.Random(7))


class TestQuestionFactory:
    @pytest.mark.parametrize(
        "stage_id, mode, timer",
        [
            ("assessment", LearningMode.ASSESSMENT, 5.0),
            ("grounding", LearningMode.GROUNDING, None),
            ("practice-slow", LearningMode.PRACTICE, 4.0),
            ("practice-fast", LearningMode.PRACTICE, 2.0),
            ("review-2min", LearningMode.PRACTICE, 2.0),
            ("repetition-1week", LearningMode.PRACTICE, 2.0),
            ("mastered", LearningMode.PRACTICE, None),
        ],
    )
    def test_stage_maps_to_mode_and_timer(self, factory, stage_id, mode, timer):
        stage = factory.config.get_stage_by_id(stage_id)
        question = factory.create_question_for_stage(Fact.create(7, 8, "7"), stage)

        assert question.learning_mode == mode
        assert learning_mode_for_stage(stage) == mode
        assert question.time_to_answer == timer
        assert question.learning_stage is stage

    def test_question_carries_fact_identity(self, factory):
        fact = Fact.create(3, 4, "3")
        question = factory.create_question_for_stage(fact, factory.config.get_first_stage())

        assert question.fact_id == "3x4"
        assert question.fact_set_id == "3"
        assert question.text == "3 × 4 = ?"
        assert question.time_started is None

    def test_exactly_one_correct_choice(self, factory):
        fact = Fact.create(6, 7, "6")
        question = factory.create_question_for_stage(fact, factory.config.get_first_stage())

        assert len(question.choices) == 4
        assert [choice.is_correct for choice in question.choices].count(True) == 1
        assert question.correct_choice.value == 42
        assert len({choice.value for choice in question.choices}) == 4

    def test_question_ids_are_unique(self, factory):
        fact = Fact.create(2, 2, "2")
        stage = factory.config.get_first_stage()
        ids = {factory.create_question_for_stage(fact, stage).id for _ in range(20)}
        assert len(ids) == 20

    def test_unknown_stage_id_falls_back_to_first_stage(self, factory):
        question = factory.create_question_for_stage_id(Fact.create(2, 3, "2"), "no-such-stage")
        assert question.learning_stage.id == "assessment"


class TestDistractorGenerator:
    @pytest.mark.parametrize("a, b", [(0, 0), (0, 7), (1, 1), (1, 10), (5, 5), (9, 9), (10, 10), (7, 8)])
    def test_options_are_distinct_and_non_negative(self, a, b):
        generator = ContextAwareDistractorGenerator(max_factor=10, rng=random.Random(1))
        options = generator.generate_answer_options(Fact.create(a, b, str(a)))

        values = [option.value for option in options]
        assert len(values) == 4
        assert len(set(values)) == 4
        assert all(value >= 0 for value in values)
        assert [option.value for option in options if option.is_correct] == [a * b]

    def test_all_strategies_disabled_still_fills_options(self):
        config = DistractorGenerationConfig(
            enable_factor_variation=False,
            enable_arithmetic_error=False,
            enable_table_confusion=False,
        )
        generator = ContextAwareDistractorGenerator(config, rng=random.Random(3))
        options = generator.generate_answer_options(Fact.create(0, 0, "0-1"))

        assert len({option.value for option in options}) == 4

    def test_factor_variation_uses_neighbouring_facts(self):
        strategy = FactorVariationStrategy(DistractorGenerationConfig())
        context = DistractorContext(max_factor=10, used_values={42})
        assert strategy.generate_distractors(Fact.create(6, 7, "6"), context) == [48, 36]

    def test_arithmetic_error_starts_with_addition(self):
        strategy = ArithmeticErrorStrategy(DistractorGenerationConfig())
        context = DistractorContext(max_factor=10, used_values={42})
        assert strategy.generate_distractors(Fact.create(6, 7, "6"), context)[0] == 13

    def test_table_confusion_skips_used_values(self):
        strategy = TableConfusionStrategy(DistractorGenerationConfig(max_distractors_per_strategy=10))
        context = DistractorContext(max_factor=10, used_values={42, 40})
        values = strategy.generate_distractors(Fact.create(6, 7, "6"), context)
        assert 40 not in values
        assert 42 not in values

    def test_disabled_strategy_returns_nothing(self):
        strategy = TableConfusionStrategy(DistractorGenerationConfig(enable_table_confusion=False))
        assert strategy.generate_distractors(Fact.create(6, 7, "6"), DistractorContext(max_factor=10)) == []

    def test_weights_are_normalized(self):
        weights = DistractorGenerationConfig().normalized_weights()
        assert sum(weights.values()) == pytest.approx(1.0)
