import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional, Tuple

from device_repository import RepositoryError, parse_timestamp

logger = logging.getLogger(__name__)

HEALTH_ALERT_TYPE = "Network Health Alert"
CRITICAL_THRESHOLD = 30
WARNING_THRESHOLD = 60
DEDUP_WINDOW = timedelta(minutes=30)


class AlertEmissionError(Exception):
    """The health alert could not be resolved or written."""


@dataclass
class HealthAlert:
    severity: str
    message: str
    timestamp: str
    value: int
    threshold: int
    acknowledged: bool = False
    type: str = HEALTH_ALERT_TYPE

    def to_record(self) -> Dict:
        return asdict(self)


@dataclass
class AlertOutcome:
    emitted: bool
    reason: str
    alert: Optional[HealthAlert] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "emitted": self.emitted,
            "reason": self.reason,
            "alert": self.alert.to_record() if self.alert else None,
            "error": self.error,
        }


def classify(score: int) -> Optional[Tuple[str, int]]:
    """Return (severity, threshold) for a score that warrants an alert."""
    if score <= CRITICAL_THRESHOLD:
        return "critical", CRITICAL_THRESHOLD
    if score <= WARNING_THRESHOLD:
        return "warning", WARNING_THRESHOLD
    return None


def build_alert(score: int, now: datetime) -> Optional[HealthAlert]:
    level = classify(score)
    if level is None:
        return None
    severity, threshold = level
    if severity == "critical":
        message = f"Network health is critically low: {score}%. Immediate attention required."
    else:
        message = f"Network health is degraded: {score}%. Investigation recommended."
    return HealthAlert(
        severity=severity,
        message=message,
        timestamp=now.isoformat(),
        value=score,
        threshold=threshold,
    )


def has_recent_alert(alerts: Iterable[Dict], now: datetime, window: timedelta = DEDUP_WINDOW) -> bool:
    for a in alerts or []:
        if not a or a.get("type") != HEALTH_ALERT_TYPE or a.get("acknowledged"):
            continue
        ts = parse_timestamp(a.get("timestamp"))
        if ts is not None and now - ts < window:
            return True
    return False


def maybe_emit_alert(score: int, repository, now: Optional[datetime] = None, window: timedelta = DEDUP_WINDOW) -> AlertOutcome:
    """
    Append a health alert to the system device when the score is at or
    below a threshold. Failures are logged and returned, never raised.
    """
    now = now or datetime.now(timezone.utc)

    if classify(score) is None:
        return AlertOutcome(False, "healthy")

    try:
        if repository.count_devices() == 0:
            logger.info("[ALERT] No devices found, skipping health alerting")
            return AlertOutcome(False, "no_devices")

        system_device = repository.find_system_device()
        if system_device is None:
            logger.debug("[ALERT] No system device record, skipping health alerting")
            return AlertOutcome(False, "no_system_device")

        if has_recent_alert(system_device.get("alerts"), now, window):
            logger.info("[ALERT] Recent health alert exists, skipping duplicate")
            return AlertOutcome(False, "duplicate")

        alert = build_alert(score, now)
        if not repository.append_alert(system_device.get("id"), alert.to_record()):
            raise AlertEmissionError(f"System device {system_device.get('id')} disappeared before write")

    except (RepositoryError, AlertEmissionError) as e:
        logger.error("[ALERT] Failed to emit health alert: %s", e)
        return AlertOutcome(False, "error", error=str(e))

    logger.warning("[ALERT] Created %s health alert: %s", alert.severity, alert.message)
    return AlertOutcome(True, "created", alert=alert)
