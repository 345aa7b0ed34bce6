import logging
import re
import subprocess
from typing import Dict, Optional

logger = logging.getLogger(__name__)

RTT_PATTERN = re.compile(r"time[=<]\s*([\d.]+)\s*ms")


def ping_device(ip, count=1, timeout=1) -> Optional[float]:
    """Ping single IP from host system, return average RTT in ms or None if unreachable"""
    try:
        result = subprocess.run(
            ["ping", "-c", str(count), "-W", str(timeout), ip],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as e:
        logger.error("[PING] Cannot run ping for %s: %s", ip, e)
        return None

    if result.returncode != 0:
        return None

    times = [float(t) for t in RTT_PATTERN.findall(result.stdout)]
    if not times:
        # Reachable but no parseable RTT; report the smallest measurable time
        return 0.1
    return sum(times) / len(times)


def refresh_device_status(repository, count=1, timeout=1) -> Dict[str, str]:
    """Ping every inventoried device and record its status and response time."""
    status_result = {}

    for device in repository.load_devices():
        ip = device.get("ipAddress")
        if not ip or ip == repository.system_address:
            continue

        rtt = ping_device(ip, count=count, timeout=timeout)
        status = "online" if rtt is not None else "offline"
        repository.update_device_status(device.get("id"), status, rtt)
        status_result[device.get("name") or ip] = status

    logger.info(
        "[PING] Refreshed %d devices, %d online",
        len(status_result),
        sum(1 for s in status_result.values() if s == "online"),
    )
    return status_result
