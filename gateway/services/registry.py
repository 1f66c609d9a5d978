"""Device registry: the in-memory table of known devices, persisted as JSON.

One registry instance owns all device state. Membership changes go through
a single lock, each record has its own lock so writes to different devices
never wait on each other, and snapshots are written by a single writer.
Readers always receive copies.
"""

import asyncio
import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from gateway.models.device import Device, DeviceStatus, device_id_for, utcnow

logger = logging.getLogger(__name__)

# Fields an admin edit may change on an existing record
_MUTABLE_FIELDS = {
    "address",
    "port",
    "name",
    "location",
    "description",
    "status",
    "last_seen",
    "response_time_ms",
    "version",
    "capabilities",
}

_METADATA_FIELDS = {"name", "version", "capabilities"}


class DeviceRegistry:
    """Keyed, insertion-ordered store of Device records."""

    def __init__(self, path: Path, default_port: int = 5000):
        self._path = Path(path)
        self._default_port = default_port
        self._devices: dict[str, Device] = {}
        self._members_lock = asyncio.Lock()
        self._record_locks: dict[str, asyncio.Lock] = {}
        self._save_lock = asyncio.Lock()
        # Serializes file writes across worker threads
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._devices

    # --- Persistence ---

    def load(self) -> int:
        """Load the last snapshot. A missing or corrupt file yields an empty registry."""
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            devices = {}
            for value in raw.get("devices", {}).values():
                device = Device.model_validate(value)
                devices[device.id] = device
        except FileNotFoundError:
            logger.info("No device registry at %s, starting fresh", self._path)
            devices = {}
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Device registry at %s is unreadable, starting fresh: %s", self._path, e)
            devices = {}

        self._devices = devices
        self._record_locks = {device_id: asyncio.Lock() for device_id in devices}
        logger.info("Loaded %d device(s) from registry", len(devices))
        return len(devices)

    def snapshot(self) -> dict[str, Any]:
        """Serializable document of the current state."""
        return {
            "devices": {
                device_id: device.model_dump(mode="json")
                for device_id, device in self._devices.items()
            },
            "lastUpdated": utcnow().isoformat(),
        }

    async def save(self) -> bool:
        """Persist the current state. Failures are logged, never raised."""
        async with self._save_lock:
            document = self.snapshot()
            try:
                await asyncio.to_thread(self._write, document)
            except (OSError, TypeError, ValueError) as e:
                logger.error("Failed to persist device registry to %s: %s", self._path, e)
                return False
        return True

    def _write(self, document: dict[str, Any]) -> None:
        with self._write_lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_name(self._path.name + ".tmp")
            tmp_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._path)

    # --- Reads ---

    def get(self, device_id: str) -> Optional[Device]:
        device = self._devices.get(device_id)
        return device.model_copy(deep=True) if device else None

    def get_by_address(self, address: str) -> Optional[Device]:
        for device in self._devices.values():
            if device.address == address:
                return device.model_copy(deep=True)
        return None

    def all(self) -> list[Device]:
        return [device.model_copy(deep=True) for device in self._devices.values()]

    def list_online(self) -> list[Device]:
        return [d for d in self.all() if d.status == DeviceStatus.ONLINE]

    def summary(self) -> dict[str, int]:
        counts = {status.value: 0 for status in DeviceStatus}
        for device in self._devices.values():
            counts[device.status.value] += 1
        return {"total": len(self._devices), **counts}

    # --- Writes ---

    def _lock_for(self, device_id: str) -> asyncio.Lock:
        return self._record_locks.setdefault(device_id, asyncio.Lock())

    def next_default_name(self) -> str:
        return f"Device {len(self._devices) + 1}"

    async def upsert(self, device: Device) -> Device:
        """Insert or replace a record, then persist."""
        async with self._members_lock:
            async with self._lock_for(device.id):
                self._devices[device.id] = device.model_copy(deep=True)
        await self.save()
        return device.model_copy(deep=True)

    async def register(
        self,
        address: str,
        name: Optional[str] = None,
        location: Optional[str] = None,
        description: Optional[str] = None,
        device_id: Optional[str] = None,
        port: Optional[int] = None,
    ) -> Device:
        """Admin registration. The device stays pending until its first probe."""
        now = utcnow()
        device = Device(
            id=device_id or device_id_for(address),
            address=address,
            port=port or self._default_port,
            name=name or self.next_default_name(),
            location=location or "Unknown",
            description=description or "",
            status=DeviceStatus.PENDING,
            added_at=now,
            last_seen=now,
        )
        device = await self.upsert(device)
        logger.info("Registered device %s (%s)", device.name, device.id)
        return device

    async def update(self, device_id: str, **fields: Any) -> Optional[Device]:
        """Change selected fields of an existing record, then persist."""
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update device fields: {', '.join(sorted(unknown))}")
        if device_id not in self._devices:
            return None

        async with self._lock_for(device_id):
            current = self._devices.get(device_id)
            if current is None:
                return None
            updated = Device.model_validate({**current.model_dump(), **fields})
            self._devices[device_id] = updated
        await self.save()
        return updated.model_copy(deep=True)

    async def remove(self, device_id: str) -> bool:
        async with self._members_lock:
            async with self._lock_for(device_id):
                device = self._devices.pop(device_id, None)
            self._record_locks.pop(device_id, None)
        if device is None:
            return False
        await self.save()
        logger.info("Removed device %s (%s)", device.name, device_id)
        return True

    async def set_status(
        self,
        device_id: str,
        status: DeviceStatus,
        observed_at: Optional[datetime] = None,
        response_time_ms: Optional[float] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[Device]:
        """Record a probe or forward observation for one device.

        `metadata` carries what the device reported about itself
        (version, capabilities, name) and is merged into the record.
        The merged record is validated before it replaces the stored one,
        so a bad value raises and leaves the record untouched.
        """
        status = DeviceStatus(status)
        metadata = metadata or {}
        unknown = set(metadata) - _METADATA_FIELDS
        if unknown:
            raise ValueError(f"Not device metadata fields: {', '.join(sorted(unknown))}")
        if device_id not in self._devices:
            return None

        changes: dict[str, Any] = {"status": status, "last_seen": observed_at or utcnow(), **metadata}
        if response_time_ms is not None:
            changes["response_time_ms"] = response_time_ms

        async with self._lock_for(device_id):
            device = self._devices.get(device_id)
            if device is None:
                return None
            previous = device.status
            updated = Device.model_validate({**device.model_dump(), **changes})
            self._devices[device_id] = updated
            result = updated.model_copy(deep=True)

        if previous != status:
            logger.info("Device %s (%s): %s -> %s", result.name, device_id, previous.value, status.value)
        await self.save()
        return result
