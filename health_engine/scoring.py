# health_engine/scoring.py
import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

ONLINE_STATUSES = ("online", "up")
CRITICAL_INFRA_TYPES = ("router", "switch", "gateway")
CORE_INFRA_TYPES = ("router", "gateway")

WEIGHTS = {
    "availability": 0.50,
    "performance": 0.30,
    "infrastructure": 0.15,
    "alert_impact": 0.05,
}

# (upper bound in ms, score); anything slower scores 10
LATENCY_STEPS = [(10, 100), (25, 95), (50, 85), (100, 70), (200, 50), (500, 25)]
# (exclusive upper bound in %, score); anything higher scores 10
UTILIZATION_STEPS = [(25, 100), (50, 85), (75, 60), (90, 30)]

NO_METRICS_PERFORMANCE = 30
INFRA_BASE = 40
INFRA_BONUS = {"router": 25, "switch": 20, "gateway": 15, "server": 10}
ALERT_PENALTY = 20


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp_score(value: float, low: int = 0, high: int = 100):
    return max(low, min(high, value))


@dataclass
class Congestion:
    total_traffic_rate: float = 0.0
    avg_utilization: float = 0.0
    max_utilization: float = 0.0
    error_rate_percent: float = 0.0

    @classmethod
    def from_record(cls, data: Optional[Dict]) -> Optional["Congestion"]:
        if not data:
            return None
        return cls(
            total_traffic_rate=float(data.get("totalTrafficRate") or 0),
            avg_utilization=float(data.get("avgUtilization") or 0),
            max_utilization=float(data.get("maxUtilization") or 0),
            error_rate_percent=float(data.get("errorRate") or 0),
        )


@dataclass
class DeviceMetric:
    device_type: str = "unknown"
    status: str = "unknown"
    response_time_ms: Optional[float] = None
    congestion: Optional[Congestion] = None
    name: Optional[str] = None
    ip_address: Optional[str] = None

    def __post_init__(self):
        self.device_type = (self.device_type or "unknown").lower()

    @property
    def is_online(self) -> bool:
        return self.status in ONLINE_STATUSES

    @property
    def is_live(self) -> bool:
        """Online and reporting a measured response time."""
        return self.status == "online" and bool(self.response_time_ms) and self.response_time_ms > 0

    @classmethod
    def from_record(cls, record: Dict) -> "DeviceMetric":
        metrics = record.get("metrics") or {}
        return cls(
            device_type=record.get("deviceType") or record.get("type") or "unknown",
            status=record.get("status", "unknown"),
            response_time_ms=metrics.get("responseTime"),
            congestion=Congestion.from_record(metrics.get("networkCongestion")),
            name=record.get("name"),
            ip_address=record.get("ipAddress"),
        )


@dataclass
class HealthInput:
    total_devices: int
    online_devices: int
    alert_count: int = 0
    devices: List[DeviceMetric] = field(default_factory=list)

    def __post_init__(self):
        if self.total_devices < 0:
            raise ValueError(f"total_devices must be >= 0, got {self.total_devices}")
        if not 0 <= self.online_devices <= self.total_devices:
            raise ValueError(
                f"online_devices must be within [0, {self.total_devices}], got {self.online_devices}"
            )
        if self.alert_count < 0:
            raise ValueError(f"alert_count must be >= 0, got {self.alert_count}")


@dataclass
class ScoreDiagnostics:
    availability: float = 0.0
    performance: float = 0.0
    infrastructure: float = 0.0
    alert_impact: float = 0.0
    latency_score: Optional[int] = None
    congestion_score: Optional[float] = None
    avg_response_time_ms: Optional[float] = None
    congestion: Optional[Congestion] = None
    device_types: Dict[str, int] = field(default_factory=dict)
    raw_score: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


def latency_score(avg_response_time_ms: float) -> int:
    for bound, score in LATENCY_STEPS:
        if avg_response_time_ms <= bound:
            return score
    return 10


def aggregate_congestion(devices: List[DeviceMetric]) -> Optional[Congestion]:
    reporting = [d.congestion for d in devices if d.congestion is not None]
    if not reporting:
        return None
    n = len(reporting)
    return Congestion(
        total_traffic_rate=sum(c.total_traffic_rate for c in reporting),
        avg_utilization=sum(c.avg_utilization for c in reporting) / n,
        max_utilization=max(c.max_utilization for c in reporting),
        error_rate_percent=sum(c.error_rate_percent for c in reporting) / n,
    )


def congestion_score(congestion: Optional[Congestion]) -> float:
    """
    Utilization step score with a multiplicative error-rate penalty.
    No congestion data counts as uncongested.
    """
    if congestion is None:
        return 100

    score = 10
    for bound, value in UTILIZATION_STEPS:
        if congestion.max_utilization < bound:
            score = value
            break

    if congestion.error_rate_percent > 5:
        score *= 0.5
    elif congestion.error_rate_percent > 1:
        score *= 0.8
    return score


def average_response_time(devices: List[DeviceMetric]) -> Optional[float]:
    live = [d for d in devices if d.is_live]
    if not live:
        return None
    return sum(d.response_time_ms for d in live) / len(live)


def availability_score(total_devices: int, online_devices: int) -> float:
    return online_devices / total_devices * 100


def performance_score(devices: List[DeviceMetric], diag: ScoreDiagnostics) -> float:
    live = [d for d in devices if d.is_live]
    if not live:
        logger.debug("[HEALTH] No live response-time metrics, performance defaults to %s", NO_METRICS_PERFORMANCE)
        return NO_METRICS_PERFORMANCE

    diag.avg_response_time_ms = average_response_time(live)
    diag.congestion = aggregate_congestion(live)
    diag.latency_score = latency_score(diag.avg_response_time_ms)
    diag.congestion_score = congestion_score(diag.congestion)
    return diag.latency_score * 0.7 + diag.congestion_score * 0.3


def infrastructure_score(devices: List[DeviceMetric], diag: ScoreDiagnostics) -> float:
    if not devices:
        return 0

    critical_total = 0
    critical_online = 0
    for d in devices:
        diag.device_types[d.device_type] = diag.device_types.get(d.device_type, 0) + 1
        if d.device_type in CRITICAL_INFRA_TYPES:
            critical_total += 1
            if d.is_online:
                critical_online += 1

    base = INFRA_BASE
    for device_type, bonus in INFRA_BONUS.items():
        if diag.device_types.get(device_type):
            base += bonus

    if critical_total > 0:
        base = base * (critical_online / critical_total)

    return clamp_score(base)


def alert_impact_score(alert_count: int) -> int:
    return max(0, 100 - alert_count * ALERT_PENALTY)


def compute_raw_score(health_input: HealthInput) -> Tuple[int, ScoreDiagnostics]:
    """
    Weighted network health from availability, performance,
    infrastructure and alert impact. Returns integer 0-100 and
    the per-factor breakdown.
    """
    diag = ScoreDiagnostics()

    if health_input.total_devices == 0:
        logger.info("[HEALTH] No devices discovered, health = 0")
        return 0, diag

    diag.availability = availability_score(health_input.total_devices, health_input.online_devices)
    diag.performance = performance_score(health_input.devices, diag)
    diag.infrastructure = infrastructure_score(health_input.devices, diag)
    diag.alert_impact = alert_impact_score(health_input.alert_count)

    weighted = (
        diag.availability * WEIGHTS["availability"]
        + diag.performance * WEIGHTS["performance"]
        + diag.infrastructure * WEIGHTS["infrastructure"]
        + diag.alert_impact * WEIGHTS["alert_impact"]
    )
    diag.raw_score = clamp_score(round_half_up(weighted))

    logger.info(
        "[HEALTH] availability=%.1f performance=%.1f infrastructure=%.1f alert_impact=%.1f raw=%d",
        diag.availability,
        diag.performance,
        diag.infrastructure,
        diag.alert_impact,
        diag.raw_score,
    )
    return diag.raw_score, diag
