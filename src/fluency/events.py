"""
Learning events.

Events are plain records handed to an injected LearningEventSink. The
scheduler publishes and forgets: a missing sink is not an error, and a sink
that raises is logged without breaking the answer cycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Protocol, Union

from loguru import logger

from src.fluency.models import AnswerType
from src.fluency.time_provider import to_unix_seconds


@dataclass(frozen=True)
class IndividualFactProgressionInfo:
    """A single fact moved from one stage to another."""

    fact_id: str
    fact_set_id: str
    from_stage_id: str | None
    to_stage_id: str | None
    answer_type: AnswerType
    consecutive_count: int
    timestamp: datetime

    event_name: ClassVar[str] = "individual_fact_progression"

    def to_analytics_data(self) -> dict[str, Any]:
        return {
            "fact_id": self.fact_id,
            "fact_set_id": self.fact_set_id,
            "from_stage": self.from_stage_id or "unknown",
            "to_stage": self.to_stage_id or "completed",
            "answer_type": self.answer_type.value,
            "consecutive_count": self.consecutive_count,
            "timestamp": to_unix_seconds(self.timestamp),
        }


@dataclass(frozen=True)
class BulkPromotionInfo:
    """Several facts of one fact set were promoted together."""

    fact_set_id: str
    promoted_facts_count: int
    consecutive_correct_count: int
    coverage_percentage: float
    timestamp: datetime

    event_name: ClassVar[str] = "bulk_promotion"

    def to_analytics_data(self) -> dict[str, Any]:
        return {
            "fact_set_id": self.fact_set_id,
            "promoted_facts_count": self.promoted_facts_count,
            "consecutive_correct_count": self.consecutive_correct_count,
            "coverage_percentage": round(self.coverage_percentage, 4),
            "timestamp": to_unix_seconds(self.timestamp),
        }


@dataclass(frozen=True)
class FactSetReviewReadyInfo:
    """Every fact of a set has reached at least the first review tier."""

    fact_set_id: str
    next_fact_set_id: str
    total_answer_count: int
    total_facts_count: int
    timestamp: datetime

    event_name: ClassVar[str] = "fact_set_review_ready"

    def to_analytics_data(self) -> dict[str, Any]:
        return {
            "fact_set_id": self.fact_set_id,
            "next_fact_set_id": self.next_fact_set_id,
            "total_answer_count": self.total_answer_count,
            "total_facts_count": self.total_facts_count,
            "timestamp": to_unix_seconds(self.timestamp),
        }


@dataclass(frozen=True)
class FactSetCompletionInfo:
    """Every fact of a set is mastered."""

    completed_fact_set_id: str
    next_fact_set_id: str
    total_answer_count: int
    total_facts_count: int
    timestamp: datetime

    event_name: ClassVar[str] = "fact_set_completion"

    def to_analytics_data(self) -> dict[str, Any]:
        return {
            "completed_fact_set_id": self.completed_fact_set_id,
            "next_fact_set_id": self.next_fact_set_id,
            "total_answer_count": self.total_answer_count,
            "total_facts_count": self.total_facts_count,
            "timestamp": to_unix_seconds(self.timestamp),
        }


LearningEvent = Union[
    IndividualFactProgressionInfo,
    BulkPromotionInfo,
    FactSetReviewReadyInfo,
    FactSetCompletionInfo,
]


class LearningEventSink(Protocol):
    """Consumer of learning events (UI, analytics)."""

    def publish(self, event: LearningEvent) -> None: ...


class CollectingEventSink:
    """Sink that keeps every event it receives, in order."""

    def __init__(self) -> None:
        self.events: list[LearningEvent] = []

    def publish(self, event: LearningEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [event for event in self.events if isinstance(event, event_type)]

    def clear(self) -> None:
        self.events.clear()


def publish_event(sink: LearningEventSink | None, event: LearningEvent) -> None:
    """Hand an event to the sink; sink failures are logged, never raised."""
    if sink is None:
        return
    try:
        sink.publish(event)
    except Exception as e:
        logger.error(f"Event sink failed on {event.event_name}: {e}")
