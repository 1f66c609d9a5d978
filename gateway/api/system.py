"""Gateway health endpoint."""

from fastapi import APIRouter, Depends

from gateway.api.deps import get_registry
from gateway.config import settings
from gateway.services.monitoring import metrics
from gateway.services.registry import DeviceRegistry

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(registry: DeviceRegistry = Depends(get_registry)):
    """Lightweight health check (no auth required)."""
    summary = registry.summary()
    return {
        "name": settings.server_name,
        **metrics.health(),
        "devices": {
            **summary,
            "details": [
                {"id": d.id, "name": d.name, "status": d.status.value}
                for d in registry.all()
            ],
        },
    }
