"""Device Gateway Models."""

from gateway.models.device import Device, DeviceStatus
from gateway.models.user import AccessRequest, User

__all__ = [
    "Device",
    "DeviceStatus",
    "User",
    "AccessRequest",
]
