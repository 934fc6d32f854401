"""
Legacy learner record schemas (versions 1 to 3).

These shapes are frozen: they only exist so stored records can be read and
upgraded by the migration chain. V1 and V2 share their nested shapes and
differ only in how they name the fact set to load next.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import Field, field_validator

from src.fluency.student_state import RecordModel, ensure_utc

# ========================================
# VERSIONS 1 AND 2
# ========================================


class LearningStageV1(str, Enum):
    ASSESSMENT = "Assessment"
    MASTERY = "Mastery"
    FLUENCY_BIG = "FluencyBig"
    FLUENCY_SMALL = "FluencySmall"
    COMPLETED = "Completed"


class AnswerTypeV1(str, Enum):
    CORRECT = "Correct"
    INCORRECT = "Incorrect"
    SKIPPED = "Skipped"
    TIMEOUT = "Timeout"


class FactStatsV1(RecordModel):
    times_shown: int = 0
    times_correct: int = 0
    times_incorrect: int = 0
    last_seen_utc_ms: int = 0


class FactItemV1(RecordModel):
    fact_id: str
    fact_set_id: str
    stage: LearningStageV1 = LearningStageV1.ASSESSMENT
    last_asked_time: datetime | None = None
    consecutive_correct: int = 0
    consecutive_incorrect: int = 0

    @field_validator("last_asked_time")
    @classmethod
    def coerce_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class StageAnswerRecordV1(RecordModel):
    fact_id: str
    answer_type: AnswerTypeV1
    stage: LearningStageV1
    answer_time: datetime
    fact_set_id: str

    @field_validator("answer_time")
    @classmethod
    def coerce_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class StudentStateV1(RecordModel):
    version: Literal[1] = 1
    created_at: datetime
    current_fact_set_id: str | None = None
    stats: dict[str, FactStatsV1] = Field(default_factory=dict)
    facts: list[FactItemV1] = Field(default_factory=list)
    stage_answers: list[StageAnswerRecordV1] = Field(default_factory=list)

    @field_validator("created_at")
    @classmethod
    def coerce_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


# V2 keeps the V1 nested shapes unchanged
LearningStageV2 = LearningStageV1
AnswerTypeV2 = AnswerTypeV1
FactStatsV2 = FactStatsV1
FactItemV2 = FactItemV1
StageAnswerRecordV2 = StageAnswerRecordV1


class StudentStateV2(RecordModel):
    version: Literal[2] = 2
    created_at: datetime
    next_fact_set_to_load: str | None = None
    stats: dict[str, FactStatsV2] = Field(default_factory=dict)
    facts: list[FactItemV2] = Field(default_factory=list)
    stage_answers: list[StageAnswerRecordV2] = Field(default_factory=list)

    @field_validator("created_at")
    @classmethod
    def coerce_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


# ========================================
# VERSION 3
# ========================================


class LearningStageV3(str, Enum):
    ASSESSMENT = "Assessment"
    GROUNDING = "Grounding"
    PRACTICE_SLOW = "PracticeSlow"
    PRACTICE_FAST = "PracticeFast"
    REVIEW = "Review"
    REPETITION = "Repetition"
    MASTERED = "Mastered"


class AnswerTypeV3(str, Enum):
    CORRECT = "Correct"
    INCORRECT = "Incorrect"
    SKIPPED = "Skipped"
    TIMED_OUT = "TimedOut"


class FactStatsV3(RecordModel):
    times_shown: int = 0
    times_correct: int = 0
    times_incorrect: int = 0
    last_seen_utc_ms: int = 0


class FactItemV3(RecordModel):
    fact_id: str
    fact_set_id: str
    stage: LearningStageV3 = LearningStageV3.ASSESSMENT
    last_asked_time: datetime | None = None
    consecutive_correct: int = 0
    consecutive_incorrect: int = 0
    last_review_time: datetime | None = None
    review_repetition_count: int = 0
    last_repetition_time: datetime | None = None
    repetition_count: int = 0
    random_factor: float = 0.0

    @field_validator("last_asked_time", "last_review_time", "last_repetition_time")
    @classmethod
    def coerce_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class AnswerRecordV3(RecordModel):
    fact_id: str
    answer_type: AnswerTypeV3
    stage: LearningStageV3
    fact_set_id: str
    answer_time: datetime
    was_known_fact: bool = False
    review_repetition_count: int = 0

    @field_validator("answer_time")
    @classmethod
    def coerce_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class StudentStateV3(RecordModel):
    version: Literal[3] = 3
    created_at: datetime
    stats: dict[str, FactStatsV3] = Field(default_factory=dict)
    facts: list[FactItemV3] = Field(default_factory=list)
    answer_history: list[AnswerRecordV3] = Field(default_factory=list)

    @field_validator("created_at")
    @classmethod
    def coerce_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)
