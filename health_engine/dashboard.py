import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from .alerts import DEDUP_WINDOW, AlertOutcome, maybe_emit_alert
from .overrides import apply_overrides
from .scoring import DeviceMetric, HealthInput, ScoreDiagnostics, compute_raw_score
from .smoothing import HealthHistory

logger = logging.getLogger(__name__)

DEVICE_PROJECTION = ("id", "deviceType", "type", "status", "metrics", "ipAddress", "name")


@dataclass
class DashboardSummary:
    total_devices: int
    online_devices: int
    offline_devices: int
    discovered_today: int
    alert_count: int
    network_health: int

    def to_dict(self) -> Dict:
        return {
            "totalDevices": self.total_devices,
            "onlineDevices": self.online_devices,
            "offlineDevices": self.offline_devices,
            "discoveredToday": self.discovered_today,
            "alertCount": self.alert_count,
            "networkHealth": self.network_health,
        }


@dataclass
class HealthEvaluation:
    summary: DashboardSummary
    diagnostics: ScoreDiagnostics
    raw_score: int
    capped_score: int
    dampened_score: int
    history: List[int]
    caps: List[str] = field(default_factory=list)
    alert: Optional[AlertOutcome] = None

    def to_dict(self) -> Dict:
        return {
            "summary": self.summary.to_dict(),
            "diagnostics": self.diagnostics.to_dict(),
            "rawScore": self.raw_score,
            "cappedScore": self.capped_score,
            "dampenedScore": self.dampened_score,
            "history": self.history,
            "caps": self.caps,
            "alert": self.alert.to_dict() if self.alert else None,
        }


def start_of_today(now: Optional[datetime] = None) -> datetime:
    """Local midnight for the day containing `now`."""
    now = (now or datetime.now()).astimezone()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def congestion_level(max_utilization: float) -> str:
    if max_utilization > 90:
        return "critical"
    if max_utilization > 75:
        return "high"
    if max_utilization > 50:
        return "moderate"
    if max_utilization > 25:
        return "low"
    return "none"


class DashboardAggregator:
    """
    Reads device state from the repository and runs
    score -> overrides -> smoothing -> alert for every evaluation.
    """

    def __init__(
        self,
        repository,
        history: Optional[HealthHistory] = None,
        dedup_window: timedelta = DEDUP_WINDOW,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.repository = repository
        self.history = history or HealthHistory()
        self.dedup_window = dedup_window
        self.clock = clock
        # one evaluation at a time: history update and alert dedup are read-modify-write
        self._lock = threading.Lock()

    def get_dashboard_summary(self, system_metrics: Optional[Dict] = None) -> DashboardSummary:
        return self.evaluate(system_metrics).summary

    def evaluate(self, system_metrics: Optional[Dict] = None) -> HealthEvaluation:
        if system_metrics:
            logger.debug("[HEALTH] System metrics: %s", system_metrics)

        with self._lock:
            now = self.clock()

            # RepositoryError propagates from here; nothing is returned half-filled
            total = self.repository.count_devices()
            online = self.repository.count_online()
            records = self.repository.find_devices(DEVICE_PROJECTION)
            alert_count = self.repository.count_unacknowledged_alerts()
            discovered_today = self.repository.count_created_since(start_of_today(now))

            # counts come from separate reads; keep them consistent for HealthInput
            online = min(online, total)
            health_input = HealthInput(
                total_devices=total,
                online_devices=online,
                alert_count=alert_count,
                devices=[DeviceMetric.from_record(r) for r in records],
            )

            raw, diagnostics = compute_raw_score(health_input)
            capped, caps = apply_overrides(raw, health_input, diagnostics.avg_response_time_ms)
            smoothed = self.history.apply(capped)

            outcome = maybe_emit_alert(smoothed.final_score, self.repository, now=now, window=self.dedup_window)

        summary = DashboardSummary(
            total_devices=total,
            online_devices=online,
            offline_devices=total - online,
            discovered_today=discovered_today,
            alert_count=alert_count,
            network_health=smoothed.final_score,
        )
        logger.info(
            "[HEALTH] raw=%d capped=%d final=%d history=%s alert=%s",
            raw,
            capped,
            smoothed.final_score,
            smoothed.history,
            outcome.reason,
        )
        return HealthEvaluation(
            summary=summary,
            diagnostics=diagnostics,
            raw_score=raw,
            capped_score=capped,
            dampened_score=smoothed.dampened_score,
            history=smoothed.history,
            caps=caps,
            alert=outcome,
        )

    def network_performance(self) -> Dict:
        """Traffic, utilization and latency aggregated over online devices."""
        perf = {
            "totalTrafficRate": 0,
            "avgUtilization": 0,
            "maxUtilization": 0,
            "avgResponseTime": 0,
            "errorRate": 0,
            "congestionLevel": "none",
            "activeInterfaces": 0,
        }

        devices = [
            d for d in self.repository.find_devices(DEVICE_PROJECTION)
            if d.get("status") == "online"
        ]

        congested = [
            d["metrics"]["networkCongestion"] for d in devices
            if (d.get("metrics") or {}).get("networkCongestion")
        ]
        if congested:
            n = len(congested)
            perf["totalTrafficRate"] = sum(c.get("totalTrafficRate") or 0 for c in congested)
            perf["avgUtilization"] = sum(c.get("avgUtilization") or 0 for c in congested) / n
            perf["maxUtilization"] = max(c.get("maxUtilization") or 0 for c in congested)
            perf["errorRate"] = sum(c.get("errorRate") or 0 for c in congested) / n
            perf["activeInterfaces"] = sum(c.get("activeInterfaces") or 0 for c in congested)
            perf["congestionLevel"] = congestion_level(perf["maxUtilization"])

        times = [
            d["metrics"]["responseTime"] for d in devices
            if ((d.get("metrics") or {}).get("responseTime") or 0) > 0
        ]
        if times:
            perf["avgResponseTime"] = sum(times) / len(times)

        return perf
