"""Device model: one controllable endpoint on the overlay network."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class DeviceStatus(str, Enum):
    PENDING = "pending"  # registered, not probed yet
    ONLINE = "online"
    OFFLINE = "offline"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def device_id_for(address: str) -> str:
    """Derive a stable device id from its network address."""
    return "pi-" + address.replace(".", "-").replace(":", "-")


def base_url_for(address: str, port: int) -> str:
    host = f"[{address}]" if ":" in address else address
    return f"http://{host}:{port}"


class Device(BaseModel):
    id: str
    address: str
    port: int = 5000
    name: str
    location: str = "Unknown"
    description: str = ""
    status: DeviceStatus = DeviceStatus.PENDING
    added_at: datetime = Field(default_factory=utcnow)
    last_seen: Optional[datetime] = None
    response_time_ms: Optional[float] = None
    version: str = "unknown"
    capabilities: dict[str, Any] = Field(default_factory=dict)

    @property
    def base_url(self) -> str:
        return base_url_for(self.address, self.port)

    @property
    def available(self) -> bool:
        return self.status == DeviceStatus.ONLINE
