import logging
from typing import List, Optional, Tuple

from .scoring import CORE_INFRA_TYPES, HealthInput, average_response_time, clamp_score

logger = logging.getLogger(__name__)

CORE_INFRA_DOWN_CAP = 20
SEVERE_LATENCY_MS = 1000
SEVERE_LATENCY_CAP = 40


def apply_overrides(
    raw_score: int,
    health_input: HealthInput,
    avg_response_time_ms: Optional[float] = None,
) -> Tuple[int, List[str]]:
    """
    Cap the raw score when core routing is down or latency is severe.
    Returns the capped score and the names of the caps that applied.
    """
    score = raw_score
    caps = []

    core_down = [
        d for d in health_input.devices
        if d.device_type in CORE_INFRA_TYPES and not d.is_online
    ]
    if core_down:
        score = min(score, CORE_INFRA_DOWN_CAP)
        caps.append("core_infrastructure_down")
        logger.warning(
            "[HEALTH] %d core infrastructure device(s) down, health capped at %d",
            len(core_down),
            CORE_INFRA_DOWN_CAP,
        )

    if avg_response_time_ms is None:
        avg_response_time_ms = average_response_time(health_input.devices)
    if avg_response_time_ms is not None and avg_response_time_ms > SEVERE_LATENCY_MS:
        score = min(score, SEVERE_LATENCY_CAP)
        caps.append("severe_latency")
        logger.warning(
            "[HEALTH] Average response %.1fms, health capped at %d",
            avg_response_time_ms,
            SEVERE_LATENCY_CAP,
        )

    return clamp_score(score), caps
