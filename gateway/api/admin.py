"""Admin API endpoints: access requests, device registry, sweeps, metrics."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from gateway.api.deps import get_probe_engine, get_registry, require_admin
from gateway.database import get_session
from gateway.schemas.auth import (
    AccessRequestListResponse,
    AccessRequestSummary,
    ApproveRequest,
    ApproveResponse,
    Identity,
    RejectRequest,
)
from gateway.schemas.device import (
    DeviceCreateRequest,
    DeviceCreateResponse,
    DeviceDetailResponse,
    DeviceListResponse,
    DeviceUpdateRequest,
    DiscoveryResponse,
    HealthCheckEntry,
    HealthCheckResponse,
)
from gateway.services import auth_service
from gateway.services.auth_service import AuthError
from gateway.services.monitoring import metrics
from gateway.services.probe import ProbeEngine
from gateway.services.registry import DeviceRegistry

router = APIRouter(prefix="/admin", tags=["admin"])


# --- Access requests ---

@router.get("/requests", response_model=AccessRequestListResponse)
def list_access_requests(
    admin: Identity = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """List all access requests."""
    return AccessRequestListResponse(
        requests=[
            AccessRequestSummary(
                id=r.id,
                name=r.name,
                email=r.email,
                reason=r.reason,
                organization=r.organization,
                status=r.status,
                created_at=r.created_at.isoformat(),
                ip_address=r.ip_address,
            )
            for r in auth_service.list_requests(session)
        ]
    )


@router.post("/requests/{request_id}/approve", response_model=ApproveResponse)
def approve_access_request(
    request_id: str,
    request: ApproveRequest | None = None,
    admin: Identity = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Approve a pending request and create the user account."""
    role = request.role if request else "operator"
    try:
        result = auth_service.approve_request(request_id, role, session)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    metrics.record_auth_event("access_approved", email=result["user"]["email"], role=role, by=admin.email)
    return ApproveResponse(message="Access request approved", **result)


@router.post("/requests/{request_id}/reject")
def reject_access_request(
    request_id: str,
    request: RejectRequest | None = None,
    admin: Identity = Depends(require_admin),
    session: Session = Depends(get_session),
):
    """Reject a pending request."""
    reason = request.reason if request else None
    try:
        rejected = auth_service.reject_request(request_id, reason, session)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    metrics.record_auth_event("access_rejected", email=rejected.email, reason=rejected.rejection_reason)
    return {"success": True, "message": "Access request rejected"}


# --- Device registry ---

@router.get("/pis", response_model=DeviceListResponse)
async def list_devices(
    admin: Identity = Depends(require_admin),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Full device records, including addresses."""
    return DeviceListResponse(devices=registry.all())


@router.get("/pis/{device_id}", response_model=DeviceDetailResponse)
async def get_device(
    device_id: str,
    admin: Identity = Depends(require_admin),
    registry: DeviceRegistry = Depends(get_registry),
):
    device = registry.get(device_id)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return DeviceDetailResponse(device=device)


@router.post("/pis", response_model=DeviceCreateResponse)
async def add_device(
    request: DeviceCreateRequest,
    admin: Identity = Depends(require_admin),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Register a device by address. It stays pending until probed."""
    if not request.address.strip() or not request.name.strip():
        raise HTTPException(status_code=400, detail="Address and name are required")

    device = await registry.register(
        address=request.address,
        name=request.name,
        location=request.location,
        description=request.description,
        device_id=request.id,
        port=request.port,
    )
    return DeviceCreateResponse(
        device_id=device.id,
        message="Device added successfully",
        device=device,
    )


@router.patch("/pis/{device_id}", response_model=DeviceDetailResponse)
async def update_device(
    device_id: str,
    request: DeviceUpdateRequest,
    admin: Identity = Depends(require_admin),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Edit a device's address or metadata."""
    fields = request.model_dump(exclude_none=True)
    if any(not fields[key].strip() for key in ("address", "name") if key in fields):
        raise HTTPException(status_code=400, detail="Address and name cannot be empty")
    device = await registry.update(device_id, **fields)
    if not device:
        raise HTTPException(status_code=404, detail="Device not found")
    return DeviceDetailResponse(device=device)


@router.delete("/pis/{device_id}")
async def remove_device(
    device_id: str,
    admin: Identity = Depends(require_admin),
    registry: DeviceRegistry = Depends(get_registry),
):
    if not await registry.remove(device_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    metrics.forget_device(device_id)
    return {"success": True, "message": "Device removed successfully"}


# --- Sweeps ---

@router.post("/discover", response_model=DiscoveryResponse)
async def discover_devices(
    admin: Identity = Depends(require_admin),
    engine: ProbeEngine = Depends(get_probe_engine),
):
    """Run a discovery sweep over the candidate addresses now."""
    discovered = await engine.discover()
    return DiscoveryResponse(discovered=len(discovered), devices=discovered)


@router.post("/health-check", response_model=HealthCheckResponse)
async def health_check_devices(
    admin: Identity = Depends(require_admin),
    engine: ProbeEngine = Depends(get_probe_engine),
):
    """Probe every known device now."""
    results = await engine.health_check()
    return HealthCheckResponse(
        results=[
            HealthCheckEntry(
                device_id=r.device_id,
                address=r.address,
                name=r.name,
                status=r.status.value,
                check_time=r.check_time.isoformat(),
                latency_ms=r.latency_ms,
                response=r.response,
                error=r.error,
            )
            for r in results
        ]
    )


@router.get("/metrics")
async def get_metrics(
    admin: Identity = Depends(require_admin),
    registry: DeviceRegistry = Depends(get_registry),
):
    return {"success": True, "registry": registry.summary(), **metrics.snapshot()}
