from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from conftest import make_device, make_system_device
from device_repository import RepositoryError
from health_engine.alerts import (
    CRITICAL_THRESHOLD,
    HEALTH_ALERT_TYPE,
    WARNING_THRESHOLD,
    build_alert,
    classify,
    maybe_emit_alert,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def health_alert(minutes_ago, acknowledged=False, alert_type=HEALTH_ALERT_TYPE):
    return {
        "type": alert_type,
        "severity": "warning",
        "message": "older alert",
        "timestamp": (NOW - timedelta(minutes=minutes_ago)).isoformat(),
        "acknowledged": acknowledged,
        "value": 50,
        "threshold": 60,
    }


def system_alerts(repository):
    return repository.find_system_device()["alerts"]


class TestClassify:

    @pytest.mark.parametrize("score,expected", [
        (0, ("critical", CRITICAL_THRESHOLD)),
        (30, ("critical", CRITICAL_THRESHOLD)),
        (31, ("warning", WARNING_THRESHOLD)),
        (60, ("warning", WARNING_THRESHOLD)),
        (61, None),
        (100, None),
    ])
    def test_thresholds(self, score, expected):
        assert classify(score) == expected

    def test_alert_record_shape(self):
        record = build_alert(25, NOW).to_record()
        assert record == {
            "type": "Network Health Alert",
            "severity": "critical",
            "message": "Network health is critically low: 25%. Immediate attention required.",
            "timestamp": NOW.isoformat(),
            "acknowledged": False,
            "value": 25,
            "threshold": 30,
        }

    def test_warning_message(self):
        alert = build_alert(45, NOW)
        assert alert.severity == "warning"
        assert alert.threshold == 60
        assert alert.message == "Network health is degraded: 45%. Investigation recommended."


class TestMaybeEmitAlert:

    def test_creates_critical_alert_on_system_device(self, write_store, repository):
        write_store([make_system_device(), make_device("r1", "router")])

        outcome = maybe_emit_alert(20, repository, now=NOW)

        assert outcome.emitted is True
        alerts = system_alerts(repository)
        assert len(alerts) == 1
        assert alerts[0]["severity"] == "critical"
        assert alerts[0]["value"] == 20
        assert alerts[0]["threshold"] == 30

    def test_healthy_score_creates_nothing(self, write_store, repository):
        write_store([make_system_device()])
        outcome = maybe_emit_alert(61, repository, now=NOW)
        assert outcome.emitted is False
        assert outcome.reason == "healthy"
        assert system_alerts(repository) == []

    def test_no_devices_is_a_no_op(self, store_path, repository):
        outcome = maybe_emit_alert(0, repository, now=NOW)
        assert outcome.reason == "no_devices"
        assert not store_path.exists()

    def test_missing_system_device_is_skipped(self, write_store, repository):
        write_store([make_device("r1", "router")])
        outcome = maybe_emit_alert(10, repository, now=NOW)
        assert outcome.emitted is False
        assert outcome.reason == "no_system_device"
        assert outcome.error is None

    def test_system_device_found_by_name(self, write_store, repository):
        write_store([make_device("nms", "server", name="NMS Server", ip="10.0.0.99")])
        assert maybe_emit_alert(50, repository, now=NOW).emitted is True
        assert len(repository.find_system_device()["alerts"]) == 1

    def test_repeated_evaluations_produce_one_alert(self, write_store, repository):
        write_store([make_system_device()])

        first = maybe_emit_alert(40, repository, now=NOW)
        second = maybe_emit_alert(25, repository, now=NOW + timedelta(minutes=10))

        assert first.emitted is True
        assert second.reason == "duplicate"
        assert len([a for a in system_alerts(repository) if not a["acknowledged"]]) == 1

    @pytest.mark.parametrize("minutes_ago,blocked", [(1, True), (29, True), (30, False), (45, False)])
    def test_dedup_window(self, write_store, repository, minutes_ago, blocked):
        write_store([make_system_device(alerts=[health_alert(minutes_ago)])])
        outcome = maybe_emit_alert(40, repository, now=NOW)
        assert outcome.emitted is not blocked

    def test_acknowledged_alert_does_not_block(self, write_store, repository):
        write_store([make_system_device(alerts=[health_alert(5, acknowledged=True)])])
        assert maybe_emit_alert(40, repository, now=NOW).emitted is True

    def test_other_alert_types_do_not_block(self, write_store, repository):
        write_store([make_system_device(alerts=[health_alert(5, alert_type="Device Unreachable")])])
        assert maybe_emit_alert(40, repository, now=NOW).emitted is True

    def test_repository_failure_is_reported_not_raised(self):
        repository = MagicMock()
        repository.count_devices.side_effect = RepositoryError("store offline")

        outcome = maybe_emit_alert(10, repository, now=NOW)

        assert outcome.emitted is False
        assert outcome.reason == "error"
        assert "store offline" in outcome.error

    def test_failed_write_is_reported(self):
        repository = MagicMock()
        repository.count_devices.return_value = 3
        repository.find_system_device.return_value = {"id": "sys", "alerts": []}
        repository.append_alert.return_value = False

        outcome = maybe_emit_alert(10, repository, now=NOW)

        assert outcome.reason == "error"
        assert "sys" in outcome.error
