"""Device registry and forwarding schemas."""

from typing import Any, Optional

from pydantic import BaseModel

from gateway.models.device import Device


class PlayerResponse(BaseModel):
    """Device as shown to regular users. The address is never exposed."""
    id: str
    name: str
    location: str
    status: str
    last_seen: Optional[str]
    available: bool


class PlayerListResponse(BaseModel):
    success: bool = True
    players: list[PlayerResponse]


class DeviceCreateRequest(BaseModel):
    address: str = ""
    name: str = ""
    location: Optional[str] = None
    description: Optional[str] = None
    port: Optional[int] = None
    id: Optional[str] = None


class DeviceUpdateRequest(BaseModel):
    address: Optional[str] = None
    name: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    port: Optional[int] = None


class DeviceListResponse(BaseModel):
    success: bool = True
    devices: list[Device]


class DeviceDetailResponse(BaseModel):
    success: bool = True
    device: Device


class DeviceCreateResponse(BaseModel):
    success: bool = True
    device_id: str
    message: str
    device: Device


class DiscoveryResponse(BaseModel):
    success: bool = True
    discovered: int
    devices: list[Device]


class HealthCheckEntry(BaseModel):
    device_id: str
    address: str
    name: str
    status: str
    check_time: str
    latency_ms: float
    response: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class HealthCheckResponse(BaseModel):
    success: bool = True
    results: list[HealthCheckEntry]
