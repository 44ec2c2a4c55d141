import json

import pytest
import requests

from protocol_telemetry.config import TelemetryConfig
from protocol_telemetry.logger import ValidationError
from protocol_telemetry.telemetry_client import (
    JourneyContext,
    JourneyEvent,
    JourneyEventData,
    JourneyMilestone,
    TelemetryClient,
    TelemetryObserver,
)

pytestmark = pytest.mark.unit

ENDPOINT = "https://collector.example.com/api/analytics/journey"


class _Response:
    def __init__(self, status_code=200, reason="OK"):
        self.status_code = status_code
        self.reason = reason


class FakeSession:
    """Stands in for requests.Session; records every POST."""

    def __init__(self, responses=None):
        self.calls = []
        self.responses = list(responses or [])
        self.closed = False

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "payload": json.loads(data), "headers": headers, "timeout": timeout})
        result = self.responses.pop(0) if self.responses else _Response()
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.closed = True


class Recorder(TelemetryObserver):
    def __init__(self):
        self.events = []
        self.milestones = []
        self.flushes = []
        self.errors = []

    def on_event(self, event):
        self.events.append(event)

    def on_milestone(self, milestone):
        self.milestones.append(milestone)

    def on_flush(self, payload):
        self.flushes.append(payload)

    def on_error(self, error, payload):
        self.errors.append((error, payload))


def _event(i=0, result="success", event_type="query"):
    return JourneyEvent(
        event_type=event_type,
        event_data=JourneyEventData(tool="sql", action=f"run-{i}", duration_ms=5, result=result),
        context=JourneyContext(session_id="sess", server_id="srv", environment="test",
                               timestamp="1999-01-01T00:00:00.000Z"),
    )


def _client(scheduler, session, **overrides):
    config = TelemetryConfig(analytics_endpoint=ENDPOINT, **overrides)
    return TelemetryClient(config, session=session, scheduler=scheduler)


# ============================================================================
# Tracking
# ============================================================================
def test_track_overwrites_timestamp(scheduler):
    client = _client(scheduler, FakeSession())
    stamped = client.track(_event())
    assert stamped.context.timestamp == "2024-01-01T00:00:00.000Z"
    assert client.get_pending_event_count() == 1


def test_flush_after_exactly_batch_size(scheduler):
    session = FakeSession()
    client = _client(scheduler, session, batch_size=3)

    client.track(_event(1))
    client.track(_event(2))
    assert session.calls == []

    client.track(_event(3))
    assert len(session.calls) == 1
    assert len(session.calls[0]["payload"]["events"]) == 3
    assert client.get_pending_event_count() == 0


def test_prod_milestone_flushes_immediately(scheduler):
    session = FakeSession()
    client = _client(scheduler, session)
    client.track(_event())

    milestone = client.track_milestone("prod", {"plan": "team"})

    assert len(session.calls) == 1
    payload = session.calls[0]["payload"]
    assert payload["milestones"] == [{
        "milestoneType": "prod",
        "metadata": {"plan": "team", "timestamp": "2024-01-01T00:00:00.000Z"},
    }]
    assert len(payload["events"]) == 1
    assert milestone.flush_immediately


def test_regular_milestone_waits_for_timer(scheduler):
    session = FakeSession()
    client = _client(scheduler, session, flush_interval=30)
    client.track_milestone("explore")
    assert session.calls == []

    scheduler.advance(30)
    assert len(session.calls) == 1
    assert session.calls[0]["payload"]["milestones"][0]["milestoneType"] == "explore"


def test_unknown_milestone_rejected(scheduler):
    client = _client(scheduler, FakeSession())
    with pytest.raises(ValidationError):
        client.track_milestone("retire")
    assert client.get_pending_event_count() == 0


def test_event_result_validated():
    with pytest.raises(ValidationError):
        _event(result="maybe")


def test_event_type_validated(scheduler):
    with pytest.raises(ValidationError, match="deploy"):
        _event(event_type="deploy")
    client = _client(scheduler, FakeSession())
    client.track(_event(event_type="llms_txt_evaluator"))
    assert client.get_pending_event_count() == 1


def test_journey_progression(scheduler):
    client = _client(scheduler, FakeSession(), environment="staging")
    event = client.track_journey_progression("explore", "adopt", {"session_id": "s-9", "source": "docs"})

    assert event.event_type == "query"
    assert event.event_data.tool == "journey_tracker"
    assert event.event_data.action == "progression"
    assert event.event_data.metadata == {
        "from_stage": "explore", "to_stage": "adopt", "session_id": "s-9", "source": "docs",
    }
    assert event.context.session_id == "s-9"
    assert event.context.server_id == "journey_tracker"
    assert event.context.environment == "staging"


def test_journey_progression_generates_session(scheduler):
    client = _client(scheduler, FakeSession())
    event = client.track_journey_progression("dev", "prod")
    assert event.context.session_id.startswith("session_")


# ============================================================================
# Delivery
# ============================================================================
def test_empty_flush_makes_no_call(scheduler):
    session = FakeSession()
    client = _client(scheduler, session)
    assert client.flush() is False
    scheduler.advance(120)
    assert session.calls == []


def test_wire_format_and_headers(scheduler):
    session = FakeSession()
    client = _client(scheduler, session, api_key="secret", request_timeout=2.5)
    client.track(_event(7))
    assert client.flush() is True

    call = session.calls[0]
    assert call["url"] == ENDPOINT
    assert call["timeout"] == 2.5
    assert call["headers"]["Authorization"] == "Bearer secret"
    assert call["headers"]["Content-Type"] == "application/json"
    event = call["payload"]["events"][0]
    assert event["eventType"] == "query"
    assert event["eventData"]["action"] == "run-7"
    assert event["context"]["sessionId"] == "sess"
    assert event["context"]["serverId"] == "srv"
    assert call["payload"]["timestamp"] == "2024-01-01T00:00:00.000Z"


def test_no_auth_header_without_api_key(scheduler):
    session = FakeSession()
    client = _client(scheduler, session)
    client.track(_event())
    client.flush()
    assert "Authorization" not in session.calls[0]["headers"]


def test_http_error_requeues_and_notifies(scheduler):
    session = FakeSession([_Response(503, "Service Unavailable")])
    client = _client(scheduler, session)
    rec = Recorder()
    client.subscribe(rec)

    client.track(_event())
    assert client.flush() is False

    assert client.get_pending_event_count() == 1
    error, payload = rec.errors[0]
    assert error.status_code == 503
    assert len(payload["events"]) == 1
    assert rec.flushes == []


def test_network_error_requeues(scheduler):
    session = FakeSession([requests.exceptions.ConnectionError("refused")])
    client = _client(scheduler, session)
    rec = Recorder()
    client.subscribe(rec)

    client.track(_event())
    assert client.flush() is False
    assert client.get_pending_event_count() == 1
    assert rec.errors[0][0].status_code is None

    assert client.flush() is True
    assert client.get_pending_event_count() == 0
    assert len(rec.flushes) == 1


def test_repeated_failures_keep_requeue_bounded(scheduler):
    session = FakeSession([_Response(500, "err"), _Response(500, "err")])
    client = _client(scheduler, session, batch_size=10)
    # 25 events already buffered, bypassing the size trigger
    client._events.extend(_event(i) for i in range(25))

    assert client.flush() is False
    assert client.get_pending_event_count() == 10
    assert len(session.calls[0]["payload"]["events"]) == 25

    assert client.flush() is False
    assert client.get_pending_event_count() == 10
    assert len(session.calls[1]["payload"]["events"]) == 10

    # The newest events of the failed batch survive
    assert [e.event_data.action for e in client._events] == [f"run-{i}" for i in range(15, 25)]


def test_requeued_events_go_before_newer_ones(scheduler):
    session = FakeSession([_Response(500, "err")])
    client = _client(scheduler, session, batch_size=10)
    client.track(_event(1))
    client.flush()
    client.track(_event(2))
    assert [e.event_data.action for e in client._events] == ["run-1", "run-2"]


def test_observer_notifications(scheduler):
    client = _client(scheduler, FakeSession())
    rec = Recorder()
    client.subscribe(rec)

    client.track(_event())
    client.track_milestone("adopt")
    client.flush()

    assert len(rec.events) == 1
    assert [m.milestone_type for m in rec.milestones] == ["adopt"]
    assert len(rec.flushes) == 1
    assert client.unsubscribe(rec) is True


# ============================================================================
# Shutdown
# ============================================================================
def test_shutdown_flushes_and_stops_timer(scheduler):
    session = FakeSession()
    client = _client(scheduler, session)
    client.track(_event())
    assert scheduler.pending_tasks() == 1

    assert client.shutdown() is True
    assert scheduler.pending_tasks() == 0
    assert len(session.calls) == 1
    # Injected session belongs to the caller
    assert session.closed is False


def test_shutdown_closes_owned_session(scheduler, monkeypatch):
    session = FakeSession()
    monkeypatch.setattr(requests, "Session", lambda: session)
    client = TelemetryClient(TelemetryConfig(analytics_endpoint=ENDPOINT), scheduler=scheduler)
    client.shutdown()
    assert session.closed is True


def test_milestone_model():
    assert JourneyMilestone("high_value_lead_captured").flush_immediately
    assert not JourneyMilestone("dev").flush_immediately
