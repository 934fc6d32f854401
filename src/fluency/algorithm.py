"""
Learning algorithm: the public question/answer cycle.

    algorithm = LearningAlgorithm(config, store)
    await algorithm.initialize()
    question = await algorithm.get_next_question()
    algorithm.start_question(question)
    result = await algorithm.submit_answer(question, UserAnswerSubmission.from_answer(choice))

Calls are expected strictly one after another from a single controlling
loop. The learner record is saved after every state change.
"""

from __future__ import annotations

import random

from loguru import logger

from src.fluency.algorithm_config import LearningAlgorithmConfig
from src.fluency.difficulty import DifficultyManager
from src.fluency.errors import AlgorithmNotInitializedError
from src.fluency.events import LearningEventSink, publish_event
from src.fluency.models import (
    AnswerType,
    LearningMode,
    Question,
    SubmitAnswerResult,
    UserAnswerSubmission,
)
from src.fluency.promotion import PromotionEngine
from src.fluency.question_factory import QuestionFactory
from src.fluency.selection import FactSelectionService
from src.fluency.stages import ReviewStage
from src.fluency.storage import DEFAULT_STATE_KEY, KeyValueStore, StorageManager
from src.fluency.student_state import AnswerRecord, FactItem, StudentState
from src.fluency.time_provider import SystemTimeProvider, TimeProvider, to_unix_millis


class LearningAlgorithm:
    """Orchestrates selection, questions, answers and persistence."""

    def __init__(
        self,
        config: LearningAlgorithmConfig,
        store: KeyValueStore,
        time_provider: TimeProvider | None = None,
        event_sink: LearningEventSink | None = None,
        rng: random.Random | None = None,
        storage_key: str = DEFAULT_STATE_KEY,
    ):
        self.config = config
        self.time_provider = time_provider or SystemTimeProvider()
        self.event_sink = event_sink
        self.rng = rng or random.Random()

        self.storage_manager = StorageManager(
            config, store, self.time_provider, storage_key=storage_key, rng=self.rng
        )
        self.difficulty_manager = DifficultyManager(config.dynamic_difficulty)
        self.selection_service = FactSelectionService(config, self.storage_manager, self.rng)
        self.promotion_engine = PromotionEngine(
            config, self.storage_manager, self.difficulty_manager, self.time_provider, event_sink
        )
        self.question_factory = QuestionFactory(config, self.rng)
        self._initialized = False

    @property
    def student_state(self) -> StudentState:
        return self.storage_manager.student_state

    @property
    def current_difficulty(self) -> str:
        return self.difficulty_manager.current_difficulty

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        await self.storage_manager.initialize()
        # Resume on the tier the stored history implies
        self.difficulty_manager.update_difficulty(
            self.student_state.get_recent_answers(self.config.dynamic_difficulty.recent_answer_window)
        )
        self._initialized = True
        logger.info(f"Learning algorithm initialized on difficulty {self.current_difficulty}")

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise AlgorithmNotInitializedError("LearningAlgorithm.initialize() must be awaited first")

    # ========================================
    # QUESTIONS
    # ========================================

    async def get_next_question(self) -> Question | None:
        """
        Select the next fact and build its question.

        Returns:
            A Question, or None when every fact is on cooldown or mastered
        """
        self._ensure_initialized()
        now = self.time_provider.now
        difficulty = self.difficulty_manager.get_current_difficulty_config()

        fact, stage = self.selection_service.select_next_fact(difficulty, now)
        if fact is None or stage is None:
            logger.warning("No question available right now")
            return None

        question = self.question_factory.create_question_for_stage(fact, stage)

        item = self.student_state.get_fact_item(fact.id)
        if item is not None:
            self.selection_service.update_last_asked_time(item, now)
        await self.storage_manager.save_state()
        return question

    def start_question(self, question: Question) -> None:
        """Mark the moment the question became visible."""
        question.time_started = to_unix_millis(self.time_provider.now)

    # ========================================
    # ANSWERS
    # ========================================

    async def submit_answer(self, question: Question, submission: UserAnswerSubmission) -> SubmitAnswerResult:
        """
        Apply the learner's answer.

        Grounding questions answered wrongly are retried without touching the
        record; skips and timeouts are not scored.

        Returns:
            SubmitAnswerResult with the correct choice and retry flag
        """
        self._ensure_initialized()
        answer_type = submission.answer_type

        if question.learning_mode == LearningMode.GROUNDING and answer_type != AnswerType.CORRECT:
            return SubmitAnswerResult(
                submission=submission,
                correct_answer=question.correct_choice,
                time_to_next_question=self.config.time_to_next_question,
                should_retry=True,
            )

        if answer_type in (AnswerType.CORRECT, AnswerType.INCORRECT):
            self._process_answer(question, answer_type)
            await self.storage_manager.save_state()

        return SubmitAnswerResult(
            submission=submission,
            correct_answer=question.correct_choice,
            time_to_next_question=self.config.time_to_next_question,
            should_retry=False,
        )

    def _process_answer(self, question: Question, answer_type: AnswerType) -> None:
        state = self.student_state
        item = state.get_fact_item(question.fact_id)
        if item is None:
            logger.warning(f"Answer for unknown fact {question.fact_id} ignored")
            return

        now = self.time_provider.now
        state.add_answer_record(
            AnswerRecord(
                fact_id=question.fact_id,
                answer_type=answer_type,
                stage_id=question.learning_stage.id,
                fact_set_id=question.fact_set_id,
                answer_time=now,
                was_known_fact=question.learning_stage.is_known_fact,
            )
        )
        state.update_stats(question.fact_id, answer_type, now)

        self.difficulty_manager.update_difficulty(
            state.get_recent_answers(self.config.dynamic_difficulty.recent_answer_window)
        )

        stage_before = item.stage_id
        self.promotion_engine.promote_facts(item, answer_type)

        if answer_type == AnswerType.CORRECT and item.stage_id != stage_before:
            self._check_fact_set_milestones(item)

        trimmed = state.trim_answer_history(self.config.answer_history_limit)
        if trimmed:
            logger.debug(f"Trimmed {trimmed} old answer records")

    def _check_fact_set_milestones(self, item: FactItem) -> None:
        stage = self.config.get_stage_by_id(item.stage_id)
        if stage is None:
            return
        state = self.student_state

        if isinstance(stage, ReviewStage):
            first_review_order = min(s.order for s in self.config.stages if isinstance(s, ReviewStage))
            if not state.has_facts_in_lower_stages(item.fact_set_id, first_review_order, self.config):
                logger.info(f"Fact set {item.fact_set_id} is ready for review")
                publish_event(
                    self.event_sink,
                    self.promotion_engine.create_fact_set_review_ready_event(item.fact_set_id),
                )

        if stage.is_fully_learned:
            mastered_order = self.config.get_mastered_stage().order
            if not state.has_facts_in_lower_stages(item.fact_set_id, mastered_order, self.config):
                logger.info(f"Fact set {item.fact_set_id} completed")
                publish_event(
                    self.event_sink,
                    self.promotion_engine.create_fact_set_completion_event(item.fact_set_id),
                )
