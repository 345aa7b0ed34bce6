import json
from datetime import datetime, timedelta, timezone

import pytest

from device_repository import DeviceRepository
from health_engine.dashboard import DashboardAggregator
from health_engine.smoothing import HealthHistory


def make_device(device_id, device_type="switch", status="online", response_time=None,
                congestion=None, created_at=None, name=None, ip=None, alerts=None):
    metrics = {}
    if response_time is not None:
        metrics["responseTime"] = response_time
    if congestion is not None:
        metrics["networkCongestion"] = congestion
    return {
        "id": device_id,
        "name": name or device_id,
        "ipAddress": ip or f"10.0.0.{device_id}",
        "deviceType": device_type,
        "status": status,
        "createdAt": (created_at or datetime.now(timezone.utc) - timedelta(days=3)).isoformat(),
        "metrics": metrics,
        "alerts": alerts or [],
    }


def make_system_device(alerts=None, created_at=None):
    return make_device(
        "sys",
        device_type="server",
        name="NMS Server",
        ip="system",
        alerts=alerts,
        created_at=created_at,
    )


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "devices.json"


@pytest.fixture
def write_store(store_path):
    def _write(devices):
        store_path.write_text(json.dumps(devices))
        return store_path
    return _write


@pytest.fixture
def repository(store_path):
    return DeviceRepository(store_path, timeout=1.0)


@pytest.fixture
def history():
    h = HealthHistory()
    yield h
    h.reset()


@pytest.fixture
def aggregator(repository, history):
    return DashboardAggregator(repository, history=history)
