"""
Persisted learner record (latest schema).

StudentState is the aggregate root: one FactItem per fact, per-fact
statistics and the answer history. It is stored as a JSON object carrying
``version`` plus the camelCase fields of that version; older versions are
upgraded through the migration chain before application code sees them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.fluency.models import AnswerType
from src.fluency.time_provider import to_unix_millis

if TYPE_CHECKING:
    from src.fluency.algorithm_config import LearningAlgorithmConfig

LATEST_VERSION = 4
DEFAULT_ANSWER_HISTORY_LIMIT = 1000


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC and normalize aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RecordModel(BaseModel):
    """Base for persisted records: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========================================
# RECORDS
# ========================================


class FactItem(RecordModel):
    """Progress of one learner on one fact."""

    fact_id: str
    fact_set_id: str
    stage_id: str
    last_asked_time: datetime | None = None
    consecutive_correct: int = 0
    consecutive_incorrect: int = 0
    random_factor: float = 0.0

    @field_validator("last_asked_time")
    @classmethod
    def coerce_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    def update_streak(self, answer_type: AnswerType) -> None:
        """Correct and incorrect streaks are mutually exclusive."""
        if answer_type == AnswerType.CORRECT:
            self.consecutive_correct += 1
            self.consecutive_incorrect = 0
        elif answer_type == AnswerType.INCORRECT:
            self.consecutive_incorrect += 1
            self.consecutive_correct = 0

    def reset_streak(self) -> None:
        self.consecutive_correct = 0
        self.consecutive_incorrect = 0


class AnswerRecord(RecordModel):
    """Immutable entry in the answer history."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    fact_id: str
    answer_type: AnswerType
    stage_id: str
    fact_set_id: str
    answer_time: datetime
    was_known_fact: bool = False

    @field_validator("answer_time")
    @classmethod
    def coerce_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class FactStats(RecordModel):
    times_shown: int = 0
    times_correct: int = 0
    times_incorrect: int = 0
    last_seen_utc_ms: int | None = None


# ========================================
# AGGREGATE ROOT
# ========================================


class StudentState(RecordModel):
    """Latest learner record."""

    version: int = LATEST_VERSION
    created_at: datetime
    stats: dict[str, FactStats] = Field(default_factory=dict)
    facts: list[FactItem] = Field(default_factory=list)
    answer_history: list[AnswerRecord] = Field(default_factory=list)

    @field_validator("created_at")
    @classmethod
    def coerce_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @classmethod
    def create_new(cls, now: datetime) -> StudentState:
        return cls(version=LATEST_VERSION, created_at=now)

    # ----------------------------------------
    # Fact queries
    # ----------------------------------------

    def get_fact_item(self, fact_id: str) -> FactItem | None:
        for item in self.facts:
            if item.fact_id == fact_id:
                return item
        return None

    def get_facts_for_set(self, fact_set_id: str) -> list[FactItem]:
        return [item for item in self.facts if item.fact_set_id == fact_set_id]

    def get_facts_for_set_and_stage(self, fact_set_id: str, stage_id: str) -> list[FactItem]:
        return [
            item for item in self.facts if item.fact_set_id == fact_set_id and item.stage_id == stage_id
        ]

    def has_facts_in_lower_stages(
        self, fact_set_id: str, stage_order: int, config: LearningAlgorithmConfig
    ) -> bool:
        """True when any fact of the set sits below ``stage_order``."""
        for item in self.get_facts_for_set(fact_set_id):
            stage = config.get_stage_by_id(item.stage_id)
            if stage is None or stage.order < stage_order:
                return True
        return False

    # ----------------------------------------
    # Answer history
    # ----------------------------------------

    def get_recent_answers(self, count: int | None = None) -> list[AnswerRecord]:
        """Newest answers first; later appends win ties on equal timestamps."""
        ordered = [
            record
            for _, record in sorted(
                enumerate(self.answer_history),
                key=lambda pair: (pair[1].answer_time, pair[0]),
                reverse=True,
            )
        ]
        return ordered if count is None else ordered[: max(0, count)]

    def get_recent_known_fact_ratio(self, count: int) -> float | None:
        """Share of the last ``count`` answers that were on known facts (None without history)."""
        recent = self.get_recent_answers(count)
        if not recent:
            return None
        return sum(1 for record in recent if record.was_known_fact) / len(recent)

    def get_recent_answers_for_fact_set(self, fact_set_id: str, count: int | None = None) -> list[AnswerRecord]:
        answers = [record for record in self.get_recent_answers() if record.fact_set_id == fact_set_id]
        return answers if count is None else answers[:count]

    def get_consecutive_correct_for_fact_set(self, fact_set_id: str) -> int:
        """Length of the unbroken run of correct answers at the head of the set's history."""
        run = 0
        for record in self.get_recent_answers_for_fact_set(fact_set_id):
            if record.answer_type != AnswerType.CORRECT:
                break
            run += 1
        return run

    def get_fact_set_coverage(self, fact_set_id: str) -> float:
        """Share of the set's facts that have at least one recorded answer."""
        items = self.get_facts_for_set(fact_set_id)
        if not items:
            return 0.0
        answered = sum(
            1 for item in items if item.fact_id in self.stats and self.stats[item.fact_id].times_shown > 0
        )
        return answered / len(items)

    def add_answer_record(self, record: AnswerRecord) -> None:
        self.answer_history.append(record)

    def trim_answer_history(self, max_records: int = DEFAULT_ANSWER_HISTORY_LIMIT) -> int:
        """
        Keep only the newest ``max_records`` answers.

        Returns:
            Number of records removed
        """
        excess = len(self.answer_history) - max_records
        if excess <= 0:
            return 0
        keep = self.get_recent_answers(max_records)
        keep_ids = {id(record) for record in keep}
        self.answer_history = [record for record in self.answer_history if id(record) in keep_ids]
        return excess

    def update_stats(self, fact_id: str, answer_type: AnswerType, now: datetime) -> FactStats:
        stats = self.stats.setdefault(fact_id, FactStats())
        stats.times_shown += 1
        if answer_type == AnswerType.CORRECT:
            stats.times_correct += 1
        elif answer_type == AnswerType.INCORRECT:
            stats.times_incorrect += 1
        stats.last_seen_utc_ms = to_unix_millis(now)
        return stats

    # ----------------------------------------
    # Diagnostics
    # ----------------------------------------

    def is_valid(self) -> bool:
        if self.version != LATEST_VERSION or self.created_at is None:
            return False
        fact_ids = [item.fact_id for item in self.facts]
        if len(fact_ids) != len(set(fact_ids)):
            return False
        return all(not (item.consecutive_correct and item.consecutive_incorrect) for item in self.facts)

    def get_state_summary(self) -> dict[str, Any]:
        stage_counts: dict[str, int] = {}
        for item in self.facts:
            stage_counts[item.stage_id] = stage_counts.get(item.stage_id, 0) + 1
        return {
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "total_facts": len(self.facts),
            "shown_facts": sum(1 for item in self.facts if item.last_asked_time is not None),
            "answer_count": len(self.answer_history),
            "stage_counts": stage_counts,
        }
