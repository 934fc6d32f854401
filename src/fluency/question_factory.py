"""
Question factory.

Turns a (fact, stage) pair into a presentable Question: learning mode, timer,
a fresh id and four answer options. Building a question has no side effects
on the learner record.
"""

from __future__ import annotations

import random
import uuid

from src.fluency.algorithm_config import LearningAlgorithmConfig
from src.fluency.distractors import ContextAwareDistractorGenerator
from src.fluency.models import Fact, LearningMode, Question
from src.fluency.stages import AssessmentStage, GroundingStage, LearningStage


def learning_mode_for_stage(stage: LearningStage) -> LearningMode:
    if isinstance(stage, AssessmentStage):
        return LearningMode.ASSESSMENT
    if isinstance(stage, GroundingStage):
        return LearningMode.GROUNDING
    return LearningMode.PRACTICE


class QuestionFactory:
    """Create questions for facts at a given stage."""

    def __init__(self, config: LearningAlgorithmConfig, rng: random.Random | None = None):
        self.config = config
        self.distractor_generator = ContextAwareDistractorGenerator(
            config.distractors,
            max_factor=config.max_multiplication_factor,
            rng=rng,
        )

    def create_question_for_stage(self, fact: Fact, stage: LearningStage) -> Question:
        return Question(
            id=str(uuid.uuid4()),
            text=fact.text,
            fact_id=fact.id,
            fact_set_id=fact.fact_set_id,
            learning_mode=learning_mode_for_stage(stage),
            learning_stage=stage,
            time_to_answer=stage.timer_seconds,
            choices=self.distractor_generator.generate_answer_options(fact),
        )

    def create_question_for_stage_id(self, fact: Fact, stage_id: str) -> Question:
        """Unknown stage ids fall back to the first stage."""
        stage = self.config.get_stage_by_id(stage_id) or self.config.get_first_stage()
        return self.create_question_for_stage(fact, stage)
