"""
Unit tests for learning event records and publishing.
"""

from datetime import datetime, timezone

from src.fluency.events import (
    BulkPromotionInfo,
    CollectingEventSink,
    IndividualFactProgressionInfo,
    publish_event,
)
from src.fluency.models import AnswerType

NOW = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def progression(**overrides):
    values = dict(
        fact_id="3x4",
        fact_set_id="3",
        from_stage_id="practice-fast",
        to_stage_id="review-1min",
        answer_type=AnswerType.CORRECT,
        consecutive_count=2,
        timestamp=NOW,
    )
    values.update(overrides)
    return IndividualFactProgressionInfo(**values)


class RaisingSink:
    def publish(self, event):
        raise RuntimeError("analytics offline")


class TestAnalyticsData:
    def test_progression_payload(self):
        data = progression().to_analytics_data()

        assert data["from_stage"] == "practice-fast"
        assert data["to_stage"] == "review-1min"
        assert data["answer_type"] == "Correct"
        assert data["timestamp"] == int(NOW.timestamp())

    def test_missing_stages_get_placeholders(self):
        data = progression(from_stage_id=None, to_stage_id=None).to_analytics_data()
        assert (data["from_stage"], data["to_stage"]) == ("unknown", "completed")

    def test_bulk_payload_rounds_coverage(self):
        event = BulkPromotionInfo(
            fact_set_id="5",
            promoted_facts_count=4,
            consecutive_correct_count=6,
            coverage_percentage=2 / 3,
            timestamp=NOW,
        )
        assert event.to_analytics_data()["coverage_percentage"] == 0.6667
        assert event.event_name == "bulk_promotion"


class TestPublishing:
    def test_collecting_sink_keeps_order(self):
        sink = CollectingEventSink()
        publish_event(sink, progression(fact_id="a"))
        publish_event(sink, progression(fact_id="b"))

        assert [event.fact_id for event in sink.events] == ["a", "b"]
        sink.clear()
        assert sink.events == []

    def test_missing_sink_is_fine(self):
        publish_event(None, progression())

    def test_failing_sink_does_not_raise(self):
        publish_event(RaisingSink(), progression())
