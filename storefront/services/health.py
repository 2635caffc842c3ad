"""
Storefront - Health Snapshot
Store round-trip plus host load for the monitoring bot.
"""
import logging
import os
import platform
import resource
import time
from datetime import datetime, timezone
from typing import Any, Dict

from storefront.core.database import DocumentStore

logger = logging.getLogger(__name__)

STARTED_AT = time.time()


def cpu_usage_percent() -> float:
    """1-minute load average relative to the core count"""
    try:
        load = os.getloadavg()[0]
    except OSError:
        return 0.0
    return round(load / (os.cpu_count() or 1) * 100, 2)


def memory_usage_percent() -> float:
    try:
        total = os.sysconf("SC_PHYS_PAGES")
        free = os.sysconf("SC_AVPHYS_PAGES")
    except (ValueError, OSError):
        return 0.0
    if total <= 0:
        return 0.0
    return round((total - free) / total * 100, 2)


def process_rss_mb() -> int:
    # ru_maxrss is KiB on Linux
    return int(resource.getrusage(resource.RUSAGE_SELF).ru_maxrss / 1024)


async def health_snapshot(store: DocumentStore) -> Dict[str, Any]:
    start = time.perf_counter()

    try:
        store_latency = round(await store.ping())
        store_status = "ok"
    except Exception as e:
        logger.error(f"Store health check failed: {e}")
        store_latency = 0
        store_status = "error"

    return {
        "status": "ok" if store_status == "ok" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "latency": round((time.perf_counter() - start) * 1000),
        "system": {
            "cpuUsage": cpu_usage_percent(),
            "memoryUsage": memory_usage_percent(),
            "uptime": int(time.time() - STARTED_AT),
            "platform": platform.system().lower(),
        },
        "process": {
            "rss": f"{process_rss_mb()} MB",
        },
        "store": {
            "status": store_status,
            "latency": store_latency,
        },
    }
