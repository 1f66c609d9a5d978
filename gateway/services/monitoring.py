"""Operational metrics: request counters, device liveness, auth events.

In-memory only; counters reset on restart.
"""

import logging
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Auth events kept for the admin metrics view
_MAX_AUTH_EVENTS = 100


class Metrics:
    """Aggregates request and device telemetry for the admin endpoints."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self._started = time.time()
        self._requests_total = 0
        self._errors_total = 0
        self._by_status: dict[int, int] = {}
        self._by_device: dict[str, int] = {}
        self._online: set[str] = set()
        self._offline: set[str] = set()
        self._last_seen: dict[str, str] = {}
        self._response_time: dict[str, float] = {}
        self._auth_events: deque[dict[str, Any]] = deque(maxlen=_MAX_AUTH_EVENTS)

    # --- Recording ---

    def record_request(self, method: str, path: str, status_code: int, duration_ms: float) -> None:
        self._requests_total += 1
        self._by_status[status_code] = self._by_status.get(status_code, 0) + 1
        if status_code >= 500:
            self._errors_total += 1
        logger.info("%s %s %d %.1fms", method, path, status_code, duration_ms)

    def record_forward(self, device_id: str, success: bool, latency_ms: float) -> None:
        self._by_device[device_id] = self._by_device.get(device_id, 0) + 1
        self.record_device_status(device_id, "online" if success else "offline", latency_ms if success else None)

    def record_device_status(self, device_id: str, status: str, response_time_ms: Optional[float] = None) -> None:
        if status == "online":
            self._online.add(device_id)
            self._offline.discard(device_id)
        else:
            self._offline.add(device_id)
            self._online.discard(device_id)
        self._last_seen[device_id] = datetime.now(timezone.utc).isoformat()
        if response_time_ms is not None:
            self._response_time[device_id] = round(response_time_ms, 1)

    def forget_device(self, device_id: str) -> None:
        for tracked in (self._online, self._offline):
            tracked.discard(device_id)
        for mapping in (self._by_device, self._last_seen, self._response_time):
            mapping.pop(device_id, None)

    def record_auth_event(self, event: str, **data: Any) -> None:
        entry = {"event": event, "at": datetime.now(timezone.utc).isoformat(), **data}
        self._auth_events.append(entry)
        logger.info("Auth event %s %s", event, data)

    # --- Reporting ---

    @property
    def uptime_seconds(self) -> float:
        return round(time.time() - self._started, 1)

    def snapshot(self) -> dict[str, Any]:
        return {
            "uptime_seconds": self.uptime_seconds,
            "requests": {
                "total": self._requests_total,
                "errors": self._errors_total,
                "by_status": {str(k): v for k, v in sorted(self._by_status.items())},
                "by_device": dict(self._by_device),
            },
            "devices": {
                "online": sorted(self._online),
                "offline": sorted(self._offline),
                "last_seen": dict(self._last_seen),
                "response_time_ms": dict(self._response_time),
            },
            "auth_events": list(self._auth_events),
        }

    def health(self) -> dict[str, Any]:
        error_rate = self._errors_total / self._requests_total if self._requests_total else 0.0
        return {
            "status": "degraded" if error_rate > 0.1 else "healthy",
            "uptime_seconds": self.uptime_seconds,
            "requests_total": self._requests_total,
            "error_rate": round(error_rate, 3),
        }


# Singleton metrics instance
metrics = Metrics()
