import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure repository root is on sys.path so `import protocol_telemetry...` works locally
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from protocol_telemetry.scheduling import ManualScheduler  # noqa: E402

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def scheduler():
    """Virtual-time scheduler starting at a fixed instant."""
    return ManualScheduler(start=T0)


@pytest.fixture(autouse=True)
def _clean_telemetry_env(monkeypatch):
    """Keep developer shells from leaking settings into config-driven tests."""
    for name in (
        "PATTERN_VECTOR_DIMENSIONS",
        "PATTERN_SIMILARITY_THRESHOLD",
        "TRACKER_MAX_EVENTS",
        "TRACKER_CLEANUP_INTERVAL_SEC",
        "TRACKER_RETENTION_HOURS",
        "TELEMETRY_ENDPOINT",
        "TELEMETRY_API_KEY",
        "TELEMETRY_BATCH_SIZE",
        "TELEMETRY_FLUSH_INTERVAL_SEC",
        "TELEMETRY_ENVIRONMENT",
        "TELEMETRY_REQUEST_TIMEOUT_SEC",
        "APP_ENV",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
