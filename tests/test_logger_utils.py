"""Unit tests for protocol_telemetry.logger helper functions."""

import json
import logging
import sys

import pytest

import protocol_telemetry.logger as logger_mod

pytestmark = pytest.mark.unit


def test_safe_converters_default_on_invalid_input():
    log = logging.getLogger("test.logger")

    assert logger_mod.safe_int("", 42, logger=log, context="int_field") == 42
    assert logger_mod.safe_int("17", 0) == 17
    assert logger_mod.safe_int(None, 5) == 5

    assert logger_mod.safe_float("abc", 3.14, logger=log, context="float_field") == 3.14
    assert logger_mod.safe_float("2.5", 0.0) == 2.5


def test_safe_int_warns_with_field_name(caplog):
    log = logging.getLogger("test.logger.warn")
    with caplog.at_level(logging.WARNING, logger="test.logger.warn"):
        assert logger_mod.safe_int("ten", 10, logger=log, context="MAX_EVENTS") == 10
    assert "MAX_EVENTS" in caplog.text
    assert "'ten'" in caplog.text


def test_context_logger_injects_extra_fields(caplog):
    base_logger = logger_mod.get_logger("protocol-telemetry-test", json_format=False)
    contextual = logger_mod.ContextLogger(base_logger, stage="test", request_id="abc123")

    with caplog.at_level(logging.INFO, logger="protocol-telemetry-test"):
        contextual.info("hello", answer="ok")

    assert any("hello" in message for message in caplog.messages)
    # Ensure contextual fields are preserved
    record = caplog.records[-1]
    assert getattr(record, "extra_fields", {}).get("stage") == "test"
    assert getattr(record, "extra_fields", {}).get("request_id") == "abc123"
    assert getattr(record, "extra_fields", {}).get("answer") == "ok"


def test_context_logger_is_a_standard_adapter(caplog):
    base_logger = logger_mod.get_logger("protocol-telemetry-adapter", json_format=False)
    contextual = logger_mod.ContextLogger(base_logger, component="tracker")
    assert isinstance(contextual, logging.LoggerAdapter)

    with caplog.at_level(logging.INFO, logger="protocol-telemetry-adapter"):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            contextual.exception("cleanup_failed", group_id="g1")
        contextual.debug("hidden", group_id="g2")

    assert len(caplog.records) == 1
    record = caplog.records[0]
    assert record.levelno == logging.ERROR
    assert record.exc_info[0] is RuntimeError
    assert record.extra_fields == {"component": "tracker", "group_id": "g1"}
    # per-call fields do not leak into the adapter's own context
    assert contextual.extra == {"component": "tracker"}


def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("x", logging.WARNING, __file__, 1, "msg %s", ("one",), None)
    record.extra_fields = {"event_id": "http_1"}
    data = json.loads(logger_mod.JSONFormatter().format(record))
    assert data["level"] == "WARNING"
    assert data["message"] == "msg one"
    assert data["event_id"] == "http_1"


def test_json_formatter_keeps_standard_keys_and_error():
    try:
        raise ValueError("bad payload")
    except ValueError:
        exc_info = sys.exc_info()
    record = logging.LogRecord("x", logging.ERROR, __file__, 1, "flush_failed", (), exc_info)
    record.created = 1704067200.0
    record.extra_fields = {"message": "from field", "events": 2}

    data = json.loads(logger_mod.JSONFormatter().format(record))
    assert data["ts"] == "2024-01-01T00:00:00.000+00:00"
    assert data["message"] == "flush_failed"
    assert data["field_message"] == "from field"
    assert data["events"] == 2
    assert data["error"]["type"] == "ValueError"
    assert data["error"]["detail"] == "bad payload"
    assert "Traceback" in data["error"]["stack"]


def test_exception_hierarchy():
    assert issubclass(logger_mod.VectorDimensionError, logger_mod.ValidationError)
    assert issubclass(logger_mod.ValidationError, ValueError)
    assert issubclass(logger_mod.UnknownEventError, KeyError)
    err = logger_mod.TransportError("HTTP 502", status_code=502)
    assert isinstance(err, logger_mod.ProtocolTelemetryError)
    assert err.status_code == 502
