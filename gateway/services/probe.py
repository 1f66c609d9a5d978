"""Background device probing: discovery and health-check sweeps.

Discovery probes a fixed list of candidate overlay addresses and registers
whatever answers. Health checks probe every known device. Both run as
supervised asyncio tasks and can also be triggered on demand by an admin.
An unreachable device is an expected outcome, recorded as a status change.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from gateway.models.device import Device, DeviceStatus, base_url_for, device_id_for, utcnow
from gateway.services.device_client import DeviceClient, ProbeOutcome
from gateway.services.monitoring import Metrics
from gateway.services.registry import DeviceRegistry

logger = logging.getLogger(__name__)

# Keys copied from a health response into Device.capabilities
CAPABILITY_KEYS = ("hostname", "storage", "uptime")


@dataclass
class HealthResult:
    device_id: str
    address: str
    name: str
    status: DeviceStatus
    check_time: datetime
    latency_ms: float
    response: Optional[dict[str, Any]] = None
    error: Optional[str] = None


def _reported_name(data: dict[str, Any]) -> Optional[str]:
    hostname = data.get("hostname")
    if isinstance(hostname, str) and hostname.strip():
        return hostname.strip()
    return None


def _metadata_from(data: dict[str, Any]) -> dict[str, Any]:
    """Record fields taken from a health response. Devices report free-form JSON."""
    version = data.get("version")
    if isinstance(version, bool) or not isinstance(version, (str, int, float)) or version == "":
        version = "unknown"
    return {
        "version": str(version),
        "capabilities": {key: data[key] for key in CAPABILITY_KEYS if key in data},
    }


class ProbeEngine:
    """Runs discovery and health-check sweeps against the device registry."""

    def __init__(
        self,
        registry: DeviceRegistry,
        client: DeviceClient,
        candidate_addresses: list[str],
        device_port: int = 5000,
        discovery_interval: float = 30.0,
        health_check_multiplier: int = 2,
        probe_timeout: float = 3.0,
        health_check_timeout: float = 5.0,
        telemetry: Optional[Metrics] = None,
    ):
        self._registry = registry
        self._client = client
        self._candidates = list(candidate_addresses)
        self._device_port = device_port
        self._discovery_interval = discovery_interval
        self._health_interval = discovery_interval * health_check_multiplier
        self._probe_timeout = probe_timeout
        self._health_timeout = health_check_timeout
        self._telemetry = telemetry
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    # --- Sweeps ---

    async def discover(self) -> list[Device]:
        """Probe every candidate address. Returns the devices that answered."""
        logger.info("Scanning %d candidate address(es) for devices", len(self._candidates))
        outcomes = await asyncio.gather(*(self._probe_candidate(a) for a in self._candidates))

        discovered = []
        for address, outcome in zip(self._candidates, outcomes):
            existing = self._registry.get_by_address(address)
            if outcome.ok:
                device = await self._record_discovery(address, existing, outcome)
                if device is not None:
                    discovered.append(device)
            elif existing is not None and existing.status == DeviceStatus.ONLINE:
                if await self._registry.set_status(existing.id, DeviceStatus.OFFLINE) is None:
                    continue
                self._report(existing.id, DeviceStatus.OFFLINE)
                logger.warning("Device went offline: %s at %s (%s)", existing.name, address, outcome.error)

        logger.info("Discovery complete: %d device(s) answered", len(discovered))
        return discovered

    async def _probe_candidate(self, address: str) -> ProbeOutcome:
        existing = self._registry.get_by_address(address)
        base_url = existing.base_url if existing else base_url_for(address, self._device_port)
        return await self._client.probe(base_url, timeout=self._probe_timeout)

    async def _record_discovery(
        self, address: str, existing: Optional[Device], outcome: ProbeOutcome
    ) -> Optional[Device]:
        data = outcome.data
        metadata = _metadata_from(data)
        now = utcnow()
        latency = round(outcome.latency_ms, 1)

        if existing is not None:
            metadata["name"] = _reported_name(data) or existing.name
            device = await self._registry.set_status(
                existing.id, DeviceStatus.ONLINE, now, latency, metadata=metadata
            )
        else:
            device = await self._registry.upsert(Device(
                id=device_id_for(address),
                address=address,
                port=self._device_port,
                name=_reported_name(data) or self._registry.next_default_name(),
                status=DeviceStatus.ONLINE,
                added_at=now,
                last_seen=now,
                response_time_ms=latency,
                **metadata,
            ))
            logger.info("Discovered device %s at %s", device.name, address)

        if device is not None:
            self._report(device.id, DeviceStatus.ONLINE, latency)
        return device

    async def health_check(self) -> list[HealthResult]:
        """Probe every known device and record the outcome for each."""
        devices = self._registry.all()
        results = await asyncio.gather(*(self._check_device(d) for d in devices))
        online = sum(1 for r in results if r.status == DeviceStatus.ONLINE)
        logger.info("Health check complete: %d/%d device(s) online", online, len(results))
        return list(results)

    async def _check_device(self, device: Device) -> HealthResult:
        outcome = await self._client.probe(device.base_url, timeout=self._health_timeout)
        now = utcnow()
        latency = round(outcome.latency_ms, 1)

        if outcome.ok:
            status = DeviceStatus.ONLINE
            updated = await self._registry.set_status(
                device.id, status, now, latency, metadata=_metadata_from(outcome.data)
            )
        else:
            status = DeviceStatus.OFFLINE
            updated = await self._registry.set_status(device.id, status, now)
        # Removed while the probe was in flight
        if updated is not None:
            self._report(device.id, status, latency if outcome.ok else None)

        return HealthResult(
            device_id=device.id,
            address=device.address,
            name=device.name,
            status=status,
            check_time=now,
            latency_ms=latency,
            response=outcome.data if outcome.ok else None,
            error=outcome.error,
        )

    def _report(self, device_id: str, status: DeviceStatus, latency_ms: Optional[float] = None) -> None:
        if self._telemetry is not None:
            self._telemetry.record_device_status(device_id, status.value, latency_ms)

    # --- Lifecycle ---

    def start(self) -> bool:
        """Start the periodic sweeps. Returns False if already running."""
        if self.running:
            return False
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(
                self._run_periodic("discovery", self._discovery_interval, self.discover, immediate=True),
                name="device-discovery",
            ),
            loop.create_task(
                self._run_periodic("health-check", self._health_interval, self.health_check),
                name="device-health-check",
            ),
        ]
        logger.info(
            "Automatic device discovery started (every %.0fs, health check every %.0fs)",
            self._discovery_interval,
            self._health_interval,
        )
        return True

    async def stop(self) -> None:
        """Stop the periodic sweeps. Safe to call more than once."""
        tasks, self._tasks = self._tasks, []
        if not tasks:
            return
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Automatic device discovery stopped")

    async def _run_periodic(
        self,
        name: str,
        interval: float,
        sweep: Callable[[], Awaitable[Any]],
        immediate: bool = False,
    ) -> None:
        if not immediate:
            await asyncio.sleep(interval)
        while True:
            try:
                await sweep()
            except Exception as e:
                logger.error("Periodic %s sweep failed: %s", name, e)
            await asyncio.sleep(interval)
