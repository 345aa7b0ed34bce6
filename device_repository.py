import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

ONLINE_STATUSES = ("online", "up")

# Fields returned by find_devices() when no projection is given
DEFAULT_PROJECTION = ("id", "name", "ipAddress", "deviceType", "status", "metrics")


class RepositoryError(Exception):
    """Raised when the device store cannot be read or written."""


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from a device record.
    Naive values are taken as local time. Returns None when unparseable.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.astimezone()
    return dt


class DeviceRepository:
    """
    Device records kept in a single JSON file.

    Every record may embed an ``alerts`` list; health alerts are appended
    to the record of the system device (looked up by address sentinel,
    then by name).
    """

    def __init__(
        self,
        path,
        timeout: float = 5.0,
        system_address: str = "system",
        system_name: str = "NMS Server",
    ):
        self.path = Path(path)
        self.timeout = timeout
        self.system_address = system_address
        self.system_name = system_name
        self._lock = threading.RLock()

    @contextmanager
    def _locked(self):
        if not self._lock.acquire(timeout=self.timeout):
            raise RepositoryError(f"Timed out after {self.timeout}s waiting for {self.path}")
        try:
            yield
        finally:
            self._lock.release()

    # ---------------------------------
    # Raw file access
    # ---------------------------------

    def load_devices(self) -> List[Dict]:
        with self._locked():
            return self._read()

    def save_devices(self, devices: List[Dict]):
        with self._locked():
            self._write(devices)

    def _read(self) -> List[Dict]:
        try:
            with open(self.path, "r") as f:
                data = f.read().strip()
        except FileNotFoundError:
            # Nothing discovered yet
            return []
        except OSError as e:
            raise RepositoryError(f"Cannot read {self.path}: {e}") from e

        if not data:
            return []

        try:
            devices = json.loads(data)
        except json.JSONDecodeError as e:
            raise RepositoryError(f"Corrupted device store {self.path}: {e}") from e

        if not isinstance(devices, list):
            raise RepositoryError(f"Device store {self.path} must hold a JSON list")
        return devices

    def _write(self, devices: List[Dict]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(devices, f, indent=4)
            os.replace(tmp, self.path)
        except OSError as e:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise RepositoryError(f"Cannot write {self.path}: {e}") from e

    # ---------------------------------
    # Queries
    # ---------------------------------

    def count_devices(self, predicate: Optional[Callable[[Dict], bool]] = None) -> int:
        devices = self.load_devices()
        if predicate is None:
            return len(devices)
        return sum(1 for d in devices if predicate(d))

    def count_online(self) -> int:
        return self.count_devices(lambda d: d.get("status") in ONLINE_STATUSES)

    def count_created_since(self, since: datetime) -> int:
        def created_after(d):
            created = parse_timestamp(d.get("createdAt"))
            return created is not None and created >= since

        return self.count_devices(created_after)

    def find_devices(self, fields: Optional[Iterable[str]] = None) -> List[Dict]:
        fields = tuple(fields or DEFAULT_PROJECTION)
        return [{k: d[k] for k in fields if k in d} for d in self.load_devices()]

    def count_unacknowledged_alerts(self) -> int:
        total = 0
        for d in self.load_devices():
            for alert in d.get("alerts") or []:
                if alert and not alert.get("acknowledged"):
                    total += 1
        return total

    def find_system_device(self) -> Optional[Dict]:
        devices = self.load_devices()
        dev = next((d for d in devices if d.get("ipAddress") == self.system_address), None)
        if dev is None:
            dev = next((d for d in devices if d.get("name") == self.system_name), None)
        return dev

    # ---------------------------------
    # Writes
    # ---------------------------------

    def append_alert(self, device_id, alert: Dict) -> bool:
        with self._locked():
            devices = self._read()
            dev = next((d for d in devices if d.get("id") == device_id), None)
            if dev is None:
                return False
            dev.setdefault("alerts", []).append(alert)
            self._write(devices)

        logger.info("[REPO] Alert %r appended to device %s", alert.get("type"), device_id)
        return True

    def update_device_status(self, device_id, status: str, response_time_ms: Optional[float] = None) -> bool:
        with self._locked():
            devices = self._read()
            dev = next((d for d in devices if d.get("id") == device_id), None)
            if dev is None:
                return False
            dev["status"] = status
            metrics = dev.setdefault("metrics", {})
            if response_time_ms is not None:
                metrics["responseTime"] = response_time_ms
                metrics["lastSeen"] = datetime.now(timezone.utc).isoformat()
            else:
                metrics.pop("responseTime", None)
            self._write(devices)
        return True
