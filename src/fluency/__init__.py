"""
Fluency Scheduler.

Adaptive multiplication fact-learning engine: picks the next fact to ask,
moves facts along a mastery ladder from streaks of answers, adapts the
difficulty to recent accuracy and keeps a versioned learner record.

Components:
- LearningAlgorithm: Public question/answer cycle
- FactSelectionService: Cooldowns, working-memory bound, known/unknown mix
- PromotionEngine: Stage transitions and bulk promotion
- DifficultyManager: Accuracy-driven tier selection
- StorageManager: Load, migrate, seed and save the learner record
- LearningProgressService: Read-only progress reporting
"""
from src.fluency.algorithm import LearningAlgorithm
from src.fluency.algorithm_config import (
    BulkPromotionConfig,
    DifficultyConfig,
    DynamicDifficultyConfig,
    LearningAlgorithmConfig,
)
from src.fluency.difficulty import DifficultyManager
from src.fluency.distractors import ContextAwareDistractorGenerator, DistractorGenerationConfig
from src.fluency.errors import (
    AlgorithmNotInitializedError,
    ConfigurationError,
    FluencyError,
    MigrationValidationError,
)
from src.fluency.events import (
    BulkPromotionInfo,
    CollectingEventSink,
    FactSetCompletionInfo,
    FactSetReviewReadyInfo,
    IndividualFactProgressionInfo,
    LearningEvent,
    LearningEventSink,
)
from src.fluency.fact_sets import FactSetBuilder, build_all_fact_sets
from src.fluency.migrations import (
    MigrationsRegistry,
    build_default_registry,
    deserialize_student_state,
    serialize_student_state,
)
from src.fluency.models import (
    AnswerType,
    Fact,
    FactSet,
    LearningMode,
    Question,
    QuestionChoice,
    SubmitAnswerResult,
    UserAnswerSubmission,
)
from src.fluency.progress import FactSetProgress, LearningProgressService, OverallStats
from src.fluency.promotion import PromotionEngine
from src.fluency.question_factory import QuestionFactory
from src.fluency.selection import FactSelectionService
from src.fluency.stages import (
    AssessmentStage,
    GroundingStage,
    LearningStage,
    LearningStageType,
    MasteredStage,
    PracticeStage,
    RepetitionStage,
    ReviewStage,
    create_default_stages,
)
from src.fluency.storage import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    SqlKeyValueStore,
    StorageManager,
)
from src.fluency.student_state import AnswerRecord, FactItem, FactStats, StudentState
from src.fluency.time_provider import FakeTimeProvider, SystemTimeProvider, TimeProvider

__all__ = [
    # Main engine
    "LearningAlgorithm",
    # Component classes
    "DifficultyManager",
    "FactSelectionService",
    "PromotionEngine",
    "QuestionFactory",
    "ContextAwareDistractorGenerator",
    "StorageManager",
    "LearningProgressService",
    "FactSetBuilder",
    "build_all_fact_sets",
    # Configuration
    "LearningAlgorithmConfig",
    "DynamicDifficultyConfig",
    "DifficultyConfig",
    "BulkPromotionConfig",
    "DistractorGenerationConfig",
    # Stages
    "LearningStage",
    "LearningStageType",
    "GroundingStage",
    "AssessmentStage",
    "PracticeStage",
    "ReviewStage",
    "RepetitionStage",
    "MasteredStage",
    "create_default_stages",
    # Content and questions
    "Fact",
    "FactSet",
    "Question",
    "QuestionChoice",
    "AnswerType",
    "LearningMode",
    "UserAnswerSubmission",
    "SubmitAnswerResult",
    # Learner record
    "StudentState",
    "FactItem",
    "FactStats",
    "AnswerRecord",
    "MigrationsRegistry",
    "build_default_registry",
    "deserialize_student_state",
    "serialize_student_state",
    # Persistence
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "SqlKeyValueStore",
    # Events
    "LearningEvent",
    "LearningEventSink",
    "CollectingEventSink",
    "IndividualFactProgressionInfo",
    "BulkPromotionInfo",
    "FactSetReviewReadyInfo",
    "FactSetCompletionInfo",
    # Progress
    "FactSetProgress",
    "OverallStats",
    # Time
    "TimeProvider",
    "SystemTimeProvider",
    "FakeTimeProvider",
    # Errors
    "FluencyError",
    "ConfigurationError",
    "MigrationValidationError",
    "AlgorithmNotInitializedError",
]
