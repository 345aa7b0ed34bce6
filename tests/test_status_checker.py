from unittest.mock import MagicMock, patch

import pytest

from conftest import make_device, make_system_device
from status_checker import ping_device, refresh_device_status

PING_OK = """PING 10.0.0.1 (10.0.0.1) 56(84) bytes of data.
64 bytes from 10.0.0.1: icmp_seq=1 ttl=64 time=4.21 ms
64 bytes from 10.0.0.1: icmp_seq=2 ttl=64 time=5.79 ms
"""


def completed(returncode, stdout=""):
    return MagicMock(returncode=returncode, stdout=stdout, stderr="")


class TestPingDevice:

    @patch("status_checker.subprocess.run")
    def test_average_rtt(self, run):
        run.return_value = completed(0, PING_OK)
        assert ping_device("10.0.0.1", count=2) == pytest.approx(5.0)
        assert run.call_args[0][0] == ["ping", "-c", "2", "-W", "1", "10.0.0.1"]

    @patch("status_checker.subprocess.run")
    def test_unreachable(self, run):
        run.return_value = completed(1)
        assert ping_device("10.0.0.1") is None

    @patch("status_checker.subprocess.run", side_effect=FileNotFoundError("ping"))
    def test_missing_ping_binary(self, run):
        assert ping_device("10.0.0.1") is None


class TestRefreshDeviceStatus:

    @patch("status_checker.ping_device")
    def test_updates_status_and_skips_system_device(self, ping, write_store, repository):
        write_store([
            make_system_device(),
            make_device("r1", "router", status="unknown", ip="10.0.0.1"),
            make_device("s1", "switch", status="online", ip="10.0.0.2", response_time=3),
        ])
        ping.side_effect = lambda ip, count, timeout: 1.5 if ip == "10.0.0.1" else None

        result = refresh_device_status(repository)

        assert result == {"r1": "online", "s1": "offline"}
        assert ping.call_count == 2
        devices = {d["id"]: d for d in repository.load_devices()}
        assert devices["r1"]["status"] == "online"
        assert devices["r1"]["metrics"]["responseTime"] == 1.5
        assert devices["s1"]["status"] == "offline"
        assert "responseTime" not in devices["s1"]["metrics"]
