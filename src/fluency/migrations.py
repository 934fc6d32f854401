"""
Learner record migrations.

Each migration upgrades a record by exactly one schema version. The registry
chains them into a forward path and upgrades any stored record to the latest
version before application code sees it. Reading is driven by an explicit
version -> model table; anything that cannot be read or upgraded yields a
fresh record, because losing progress is preferred over crashing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, ClassVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from src.fluency.errors import MigrationValidationError
from src.fluency.models import AnswerType
from src.fluency.state_versions import (
    AnswerRecordV3,
    AnswerTypeV1,
    AnswerTypeV3,
    FactItemV3,
    FactStatsV3,
    LearningStageV1,
    LearningStageV3,
    StudentStateV1,
    StudentStateV2,
    StudentStateV3,
)
from src.fluency.student_state import (
    LATEST_VERSION,
    AnswerRecord,
    FactItem,
    FactStats,
    StudentState,
)

# =============================================================================
# Migration Base
# =============================================================================


class StateMigration(ABC):
    """
    Single-step upgrade from ``from_version`` to ``to_version``.

    Subclasses implement perform_migration(); migrate() guards it with
    can_migrate() and returns None for records it cannot handle.
    """

    from_version: ClassVar[int]
    to_version: ClassVar[int]

    def can_migrate(self, state: BaseModel | None) -> bool:
        return state is not None and getattr(state, "version", None) == self.from_version

    def migrate(self, state: BaseModel | None) -> BaseModel | None:
        if not self.can_migrate(state):
            logger.warning(
                f"Cannot migrate record with version {getattr(state, 'version', None)} "
                f"using v{self.from_version}->v{self.to_version}"
            )
            return None
        migrated = self.perform_migration(state)
        logger.info(f"Migrated learner record v{self.from_version} -> v{self.to_version}")
        return migrated

    @abstractmethod
    def perform_migration(self, state: Any) -> BaseModel:
        """Build the next-version record from ``state``."""
        ...


# =============================================================================
# Migrations
# =============================================================================


class StudentStateV1ToV2(StateMigration):
    """Renames the current fact set field; everything else is copied."""

    from_version = 1
    to_version = 2

    def perform_migration(self, state: StudentStateV1) -> StudentStateV2:
        return StudentStateV2(
            created_at=state.created_at,
            next_fact_set_to_load=state.current_fact_set_id,
            stats={key: value.model_copy() for key, value in state.stats.items()},
            facts=[fact.model_copy() for fact in state.facts],
            stage_answers=[answer.model_copy() for answer in state.stage_answers],
        )


_V2_STAGE_MAP: dict[LearningStageV1, LearningStageV3] = {
    LearningStageV1.ASSESSMENT: LearningStageV3.ASSESSMENT,
    LearningStageV1.MASTERY: LearningStageV3.GROUNDING,
    LearningStageV1.FLUENCY_BIG: LearningStageV3.PRACTICE_SLOW,
    LearningStageV1.FLUENCY_SMALL: LearningStageV3.PRACTICE_FAST,
    LearningStageV1.COMPLETED: LearningStageV3.MASTERED,
}

_V2_ANSWER_MAP: dict[AnswerTypeV1, AnswerTypeV3] = {
    AnswerTypeV1.CORRECT: AnswerTypeV3.CORRECT,
    AnswerTypeV1.INCORRECT: AnswerTypeV3.INCORRECT,
    AnswerTypeV1.SKIPPED: AnswerTypeV3.SKIPPED,
    AnswerTypeV1.TIMEOUT: AnswerTypeV3.TIMED_OUT,
}


class StudentStateV2ToV3(StateMigration):
    """Maps the old stage names onto the new ladder and adds reinforcement fields."""

    from_version = 2
    to_version = 3

    def perform_migration(self, state: StudentStateV2) -> StudentStateV3:
        migrated = StudentStateV3(
            created_at=state.created_at,
            stats={
                key: FactStatsV3(
                    times_shown=value.times_shown,
                    times_correct=value.times_correct,
                    times_incorrect=value.times_incorrect,
                    last_seen_utc_ms=value.last_seen_utc_ms,
                )
                for key, value in state.stats.items()
            },
            facts=[
                FactItemV3(
                    fact_id=fact.fact_id,
                    fact_set_id=fact.fact_set_id,
                    stage=_V2_STAGE_MAP.get(fact.stage, LearningStageV3.ASSESSMENT),
                    last_asked_time=fact.last_asked_time,
                    consecutive_correct=fact.consecutive_correct,
                    consecutive_incorrect=fact.consecutive_incorrect,
                )
                for fact in state.facts
            ],
            answer_history=[
                AnswerRecordV3(
                    fact_id=answer.fact_id,
                    answer_type=_V2_ANSWER_MAP.get(answer.answer_type, AnswerTypeV3.INCORRECT),
                    stage=_V2_STAGE_MAP.get(answer.stage, LearningStageV3.ASSESSMENT),
                    fact_set_id=answer.fact_set_id,
                    answer_time=answer.answer_time,
                    was_known_fact=False,
                )
                for answer in state.stage_answers
            ],
        )
        self._validate(state, migrated)
        return migrated

    def _validate(self, source: StudentStateV2, migrated: StudentStateV3) -> None:
        if migrated.version != 3:
            raise MigrationValidationError(f"Expected version 3, got {migrated.version}")
        if migrated.created_at != source.created_at:
            raise MigrationValidationError("created_at should be preserved")
        if len(migrated.facts) != len(source.facts):
            raise MigrationValidationError(
                f"Facts count mismatch: expected {len(source.facts)}, got {len(migrated.facts)}"
            )
        if len(migrated.answer_history) != len(source.stage_answers):
            raise MigrationValidationError(
                f"Answer history count mismatch: expected {len(source.stage_answers)}, "
                f"got {len(migrated.answer_history)}"
            )
        if len(migrated.stats) != len(source.stats):
            raise MigrationValidationError(
                f"Stats count mismatch: expected {len(source.stats)}, got {len(migrated.stats)}"
            )

        source_stages = {fact.fact_id: fact.stage for fact in source.facts}
        for fact in migrated.facts:
            if fact.fact_id not in source_stages:
                raise MigrationValidationError(f"Fact {fact.fact_id} not found in v2 record")
            expected = _V2_STAGE_MAP.get(source_stages[fact.fact_id], LearningStageV3.ASSESSMENT)
            if fact.stage != expected:
                raise MigrationValidationError(
                    f"Stage migration failed for fact {fact.fact_id}: expected {expected.value}, got {fact.stage.value}"
                )
            if (
                fact.last_review_time is not None
                or fact.review_repetition_count != 0
                or fact.last_repetition_time is not None
                or fact.repetition_count != 0
            ):
                raise MigrationValidationError(f"Reinforcement fields not at defaults for fact {fact.fact_id}")

        if any(answer.was_known_fact for answer in migrated.answer_history):
            raise MigrationValidationError("v2 answers must migrate with was_known_fact = False")


_V3_SIMPLE_STAGE_IDS: dict[LearningStageV3, str] = {
    LearningStageV3.ASSESSMENT: "assessment",
    LearningStageV3.GROUNDING: "grounding",
    LearningStageV3.PRACTICE_SLOW: "practice-slow",
    LearningStageV3.PRACTICE_FAST: "practice-fast",
    LearningStageV3.MASTERED: "mastered",
}
_REVIEW_TIER_IDS = ("review-1min", "review-2min", "review-4min")
_REPETITION_TIER_IDS = ("repetition-1day", "repetition-2day", "repetition-4day", "repetition-1week")

_V3_ANSWER_MAP: dict[AnswerTypeV3, AnswerType] = {
    AnswerTypeV3.CORRECT: AnswerType.CORRECT,
    AnswerTypeV3.INCORRECT: AnswerType.INCORRECT,
    AnswerTypeV3.SKIPPED: AnswerType.SKIPPED,
    AnswerTypeV3.TIMED_OUT: AnswerType.TIMED_OUT,
}


def v3_stage_to_stage_id(stage: LearningStageV3, review_count: int = 0, repetition_count: int = 0) -> str:
    """Map a v3 stage (plus its tier counter) to a v4 stage id."""
    if stage == LearningStageV3.REVIEW:
        if 0 <= review_count < len(_REVIEW_TIER_IDS):
            return _REVIEW_TIER_IDS[review_count]
        return _REVIEW_TIER_IDS[0]
    if stage == LearningStageV3.REPETITION:
        if 0 <= repetition_count < len(_REPETITION_TIER_IDS):
            return _REPETITION_TIER_IDS[repetition_count]
        return _REPETITION_TIER_IDS[0]
    return _V3_SIMPLE_STAGE_IDS.get(stage, "assessment")


class StudentStateV3ToV4(StateMigration):
    """Replaces the stage enum plus tier counters with configurable stage ids."""

    from_version = 3
    to_version = 4

    def perform_migration(self, state: StudentStateV3) -> StudentState:
        return StudentState(
            version=4,
            created_at=state.created_at,
            stats={
                key: FactStats(
                    times_shown=value.times_shown,
                    times_correct=value.times_correct,
                    times_incorrect=value.times_incorrect,
                    last_seen_utc_ms=value.last_seen_utc_ms or None,
                )
                for key, value in state.stats.items()
            },
            facts=[self._migrate_fact(fact) for fact in state.facts],
            answer_history=[
                AnswerRecord(
                    fact_id=answer.fact_id,
                    answer_type=_V3_ANSWER_MAP.get(answer.answer_type, AnswerType.INCORRECT),
                    stage_id=v3_stage_to_stage_id(
                        answer.stage,
                        review_count=answer.review_repetition_count,
                        repetition_count=answer.review_repetition_count,
                    ),
                    fact_set_id=answer.fact_set_id,
                    answer_time=answer.answer_time,
                    was_known_fact=answer.was_known_fact,
                )
                for answer in state.answer_history
            ],
        )

    @staticmethod
    def _migrate_fact(fact: FactItemV3) -> FactItem:
        timestamps = [
            value
            for value in (fact.last_asked_time, fact.last_review_time, fact.last_repetition_time)
            if value is not None
        ]
        return FactItem(
            fact_id=fact.fact_id,
            fact_set_id=fact.fact_set_id,
            stage_id=v3_stage_to_stage_id(fact.stage, fact.review_repetition_count, fact.repetition_count),
            last_asked_time=max(timestamps) if timestamps else None,
            consecutive_correct=fact.consecutive_correct,
            consecutive_incorrect=fact.consecutive_incorrect,
            random_factor=fact.random_factor,
        )


# =============================================================================
# Registry
# =============================================================================


class MigrationsRegistry:
    """Registered migrations and the version -> model lookup table."""

    def __init__(self, latest_version: int = LATEST_VERSION):
        self.latest_version = latest_version
        self._migrations: dict[int, StateMigration] = {}
        self._version_types: dict[int, type[BaseModel]] = {}

    def register_migration(self, migration: StateMigration) -> None:
        if migration.from_version in self._migrations:
            logger.error(f"Migration from version {migration.from_version} is already registered, ignoring")
            return
        self._migrations[migration.from_version] = migration

    def register_version(self, version: int, model: type[BaseModel]) -> None:
        self._version_types[version] = model

    def try_get_version_type(self, version: int) -> type[BaseModel] | None:
        return self._version_types.get(version)

    def get_migration_path(self, from_version: int, to_version: int) -> list[StateMigration] | None:
        """
        Chain single-step migrations from ``from_version`` to ``to_version``.

        Returns:
            Ordered migrations ([] when already there), or None for a downgrade
            or a gap in the chain
        """
        if from_version == to_version:
            return []
        if from_version > to_version:
            logger.error(f"Downgrade from v{from_version} to v{to_version} is not supported")
            return None

        path: list[StateMigration] = []
        current = from_version
        while current < to_version:
            migration = self._migrations.get(current)
            if migration is None:
                logger.error(f"No migration registered from v{current} (target v{to_version})")
                return None
            path.append(migration)
            current = migration.to_version
        return path

    def create_new_state(self, now: datetime | None = None) -> StudentState:
        return StudentState.create_new(now or datetime.now(timezone.utc))

    def migrate_to_latest(self, state: BaseModel | None, now: datetime | None = None) -> StudentState:
        """
        Upgrade ``state`` to the latest version.

        An already-current record is returned as the same instance. Missing
        records, future versions and any failure along the chain yield a
        fresh record.
        """
        if state is None:
            return self.create_new_state(now)

        version = getattr(state, "version", None)
        if version == self.latest_version and isinstance(state, StudentState):
            return state
        if not isinstance(version, int) or version > self.latest_version:
            logger.error(f"Learner record has unsupported version {version}, starting fresh")
            return self.create_new_state(now)

        path = self.get_migration_path(version, self.latest_version)
        if path is None:
            return self.create_new_state(now)

        current: BaseModel | None = state
        try:
            for migration in path:
                current = migration.migrate(current)
                if current is None:
                    logger.error(f"Migration v{migration.from_version}->v{migration.to_version} returned nothing")
                    return self.create_new_state(now)
        except (MigrationValidationError, ValidationError, ValueError, TypeError) as e:
            logger.error(f"Learner record migration failed: {e}")
            return self.create_new_state(now)

        if not isinstance(current, StudentState):
            logger.error(f"Migration chain ended on {type(current).__name__}, starting fresh")
            return self.create_new_state(now)
        return current


def build_default_registry() -> MigrationsRegistry:
    """Registry with every known version and migration."""
    registry = MigrationsRegistry()
    registry.register_version(1, StudentStateV1)
    registry.register_version(2, StudentStateV2)
    registry.register_version(3, StudentStateV3)
    registry.register_version(4, StudentState)
    registry.register_migration(StudentStateV1ToV2())
    registry.register_migration(StudentStateV2ToV3())
    registry.register_migration(StudentStateV3ToV4())
    return registry


# =============================================================================
# Serialization
# =============================================================================


def deserialize_student_state(
    data: Any,
    registry: MigrationsRegistry | None = None,
    now: datetime | None = None,
) -> StudentState:
    """
    Read a stored record of any known version and upgrade it to the latest.

    Args:
        data: Decoded JSON object carrying ``version``
        registry: Migration registry (default registry when omitted)
        now: Creation time used if a fresh record has to be synthesized

    Returns:
        Latest-version StudentState (fresh on any failure)
    """
    registry = registry or build_default_registry()

    if not isinstance(data, dict):
        logger.error(f"Stored learner record is not an object ({type(data).__name__}), starting fresh")
        return registry.create_new_state(now)

    version = data.get("version")
    if isinstance(version, bool) or not isinstance(version, int):
        logger.error(f"Stored learner record has no usable version ({version!r}), starting fresh")
        return registry.create_new_state(now)

    model = registry.try_get_version_type(version)
    if model is None:
        logger.error(f"Unknown learner record version {version}, starting fresh")
        return registry.create_new_state(now)

    try:
        state = model.model_validate(data)
    except ValidationError as e:
        logger.error(f"Stored learner record v{version} failed validation: {e.error_count()} errors")
        return registry.create_new_state(now)

    return registry.migrate_to_latest(state, now)


def serialize_student_state(state: StudentState) -> dict[str, Any]:
    """Dump a record to a JSON-compatible dict with camelCase keys."""
    return state.model_dump(mode="json", by_alias=True)
