"""Request forwarding to devices.

Resolves a device id through the registry, relays the call with a fixed
timeout and keeps the device's status in line with live traffic. The
device's payload is passed through untouched; an HTTP error status from the
device still counts as a successful call.
"""

import asyncio
import logging
import time
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from gateway.models.device import DeviceStatus, utcnow
from gateway.services.device_client import DeviceClient, describe_error, parse_body
from gateway.services.monitoring import Metrics
from gateway.services.registry import DeviceRegistry

logger = logging.getLogger(__name__)

STATUS_PATH = "/api/status"
USER_AGENT = "DeviceGateway/1.0"


class ForwardResult(BaseModel):
    success: bool
    device_id: str
    device_name: Optional[str] = None
    latency_ms: Optional[float] = None
    data: Any = None
    device_status_code: Optional[int] = None
    error: Optional[str] = None
    details: Any = None
    not_found: bool = False


class Forwarder:
    def __init__(
        self,
        registry: DeviceRegistry,
        client: DeviceClient,
        timeout: float = 5.0,
        telemetry: Optional[Metrics] = None,
    ):
        self._registry = registry
        self._client = client
        self._timeout = timeout
        self._telemetry = telemetry

    async def forward(
        self,
        device_id: str,
        path: str,
        method: str = "GET",
        body: Any = None,
    ) -> ForwardResult:
        """Relay one request to a device and report the outcome."""
        device = self._registry.get(device_id)
        if device is None:
            return ForwardResult(
                success=False,
                device_id=device_id,
                error="Device not found",
                not_found=True,
            )

        if not path.startswith("/"):
            path = "/" + path
        start = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                device.base_url + path,
                timeout=self._timeout,
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": f"{USER_AGENT} ({device_id})",
                },
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            latency = round((time.perf_counter() - start) * 1000, 1)
            if await self._registry.set_status(device_id, DeviceStatus.OFFLINE, utcnow()) is not None:
                self._report(device_id, False, latency)
            logger.error("Error connecting to %s (%s): %s", device.name, device_id, e)
            return ForwardResult(
                success=False,
                device_id=device_id,
                device_name=device.name,
                latency_ms=latency,
                error=describe_error(e),
                details="Connection failed",
            )

        latency = round((time.perf_counter() - start) * 1000, 1)
        # Skip telemetry for a device removed while the call was in flight
        if await self._registry.set_status(device_id, DeviceStatus.ONLINE, utcnow(), latency) is not None:
            self._report(device_id, True, latency)
        if response.is_error:
            logger.warning("Device %s answered %s %s with HTTP %d", device_id, method, path, response.status_code)

        return ForwardResult(
            success=True,
            device_id=device_id,
            device_name=device.name,
            latency_ms=latency,
            data=parse_body(response),
            device_status_code=response.status_code,
        )

    async def forward_all(self, path: str = STATUS_PATH, method: str = "GET") -> list[ForwardResult]:
        """Forward the same request to every known device concurrently."""
        devices = self._registry.all()
        return list(await asyncio.gather(*(self.forward(d.id, path, method) for d in devices)))

    def _report(self, device_id: str, success: bool, latency_ms: float) -> None:
        if self._telemetry is not None:
            self._telemetry.record_forward(device_id, success, latency_ms)

