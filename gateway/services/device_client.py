"""Outbound HTTP to devices on the overlay network.

Thin wrapper over httpx.AsyncClient. Every call carries an explicit timeout;
the transport is injectable so tests can substitute httpx.MockTransport.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/health"
DISCOVERY_USER_AGENT = "Device-Discovery/1.0"


@dataclass
class ProbeOutcome:
    """Result of a single health probe."""
    ok: bool
    latency_ms: float
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


def parse_body(response: httpx.Response) -> Any:
    """Device payload as JSON when possible, raw text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text


def describe_error(exc: Exception) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return f"Timeout: {exc}" if str(exc) else "Timeout"
    return str(exc) or exc.__class__.__name__


class DeviceClient:
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._client = httpx.AsyncClient(transport=transport)

    async def request(
        self,
        method: str,
        url: str,
        timeout: float,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """Issue one request. Raises httpx.HTTPError on transport failure."""
        return await self._client.request(
            method.upper(),
            url,
            json=json,
            headers=headers,
            timeout=timeout,
        )

    async def probe(self, base_url: str, timeout: float, user_agent: str = DISCOVERY_USER_AGENT) -> ProbeOutcome:
        """Probe a device's health endpoint. Never raises on network failure."""
        start = time.perf_counter()
        try:
            response = await self.request(
                "GET",
                base_url + HEALTH_PATH,
                timeout=timeout,
                headers={"User-Agent": user_agent},
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            latency = (time.perf_counter() - start) * 1000
            logger.debug("Probe of %s failed: %s", base_url, e)
            return ProbeOutcome(ok=False, latency_ms=latency, error=describe_error(e))

        latency = (time.perf_counter() - start) * 1000
        if not response.is_success:
            return ProbeOutcome(ok=False, latency_ms=latency, error=f"HTTP {response.status_code}")

        data = parse_body(response)
        if not isinstance(data, dict) or not data.get("success"):
            return ProbeOutcome(
                ok=False,
                latency_ms=latency,
                data=data if isinstance(data, dict) else {},
                error="Health endpoint did not report success",
            )
        return ProbeOutcome(ok=True, latency_ms=latency, data=data)

    async def aclose(self) -> None:
        await self._client.aclose()
