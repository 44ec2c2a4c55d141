"""Routing decision storage and aggregation."""
import pytest

from protocol_telemetry.config import TrackerConfig
from protocol_telemetry.logger import ValidationError
from protocol_telemetry.tracking import (
    ProtocolTracker,
    RoutingDecision,
    TrackerObserver,
    aggregate_routing,
)

pytestmark = pytest.mark.unit


def _decision(request_id, strategy="semantic", server="a", score=None):
    return RoutingDecision(
        request_id=request_id,
        strategy=strategy,
        available_servers=["a", "b", "c"],
        selected_server=server,
        selection_reason="test",
        load_factors={"a": 0.2, "b": 0.9},
        semantic_score=score,
    )


@pytest.fixture
def tracker(scheduler):
    t = ProtocolTracker(TrackerConfig(), scheduler=scheduler)
    yield t
    t.shutdown()


def test_distribution_and_mean_score(tracker):
    tracker.record_routing_decision(_decision("r1", "semantic", "a", 0.8))
    tracker.record_routing_decision(_decision("r2", "semantic", "b", 0.6))
    tracker.record_routing_decision(_decision("r3", "round-robin", "a"))

    analytics = tracker.get_routing_analytics()
    assert analytics.total_decisions == 3
    assert analytics.strategy_distribution == {
        "semantic": 2, "round-robin": 1, "least-loaded": 0, "sticky": 0,
    }
    assert analytics.server_utilization == {"a": 2, "b": 1}
    assert analytics.average_semantic_score == pytest.approx(0.7)


def test_mean_score_zero_without_scores(tracker):
    tracker.record_routing_decision(_decision("r1", "sticky"))
    assert tracker.get_routing_analytics().average_semantic_score == 0.0


def test_same_request_id_overwrites(tracker):
    tracker.record_routing_decision(_decision("r1", "semantic", "a"))
    tracker.record_routing_decision(_decision("r1", "least-loaded", "b"))
    analytics = tracker.get_routing_analytics()
    assert analytics.total_decisions == 1
    assert analytics.server_utilization == {"b": 1}


def test_unknown_strategy_rejected(tracker):
    with pytest.raises(ValidationError):
        tracker.record_routing_decision(_decision("r1", strategy="random"))
    assert tracker.get_stats().total_routing_decisions == 0


def test_notification_carries_stamped_decision(tracker, scheduler):
    seen = []

    class Obs(TrackerObserver):
        def on_routing_decision(self, decision):
            seen.append(decision)

    tracker.subscribe(Obs())
    tracker.record_routing_decision(_decision("r1"))
    assert seen[0].request_id == "r1"
    assert seen[0].timestamp == scheduler.now()


def test_window_excludes_old_decisions(tracker, scheduler):
    tracker.record_routing_decision(_decision("r1"))
    scheduler.advance(2 * 3600)
    tracker.record_routing_decision(_decision("r2"))
    assert tracker.get_routing_analytics(time_window_hours=1).total_decisions == 1


def test_aggregate_routing_empty(scheduler):
    analytics = aggregate_routing([], 24, scheduler.now())
    assert analytics.total_decisions == 0
    assert analytics.server_utilization == {}
    assert analytics.to_dict()["average_semantic_score"] == 0.0
