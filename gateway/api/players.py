"""Player (device) endpoints for authenticated users: listing and forwarding."""

import json

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from gateway.api.deps import get_current_user, get_forwarder, get_registry
from gateway.schemas.auth import Identity
from gateway.schemas.device import PlayerListResponse, PlayerResponse
from gateway.services.forwarder import Forwarder, ForwardResult
from gateway.services.registry import DeviceRegistry

router = APIRouter(tags=["players"])

FORWARD_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def _forward_response(result: ForwardResult):
    """404 for unknown devices, 502 for unreachable ones, pass-through otherwise."""
    if result.not_found:
        raise HTTPException(status_code=404, detail="Device not found")
    if not result.success:
        return JSONResponse(status_code=502, content=result.model_dump(mode="json"))
    return result


@router.get("/players", response_model=PlayerListResponse)
async def list_players(
    user: Identity = Depends(get_current_user),
    registry: DeviceRegistry = Depends(get_registry),
):
    """List available players. Internal addresses are not exposed."""
    return PlayerListResponse(
        players=[
            PlayerResponse(
                id=d.id,
                name=d.name,
                location=d.location,
                status=d.status.value,
                last_seen=d.last_seen.isoformat() if d.last_seen else None,
                available=d.available,
            )
            for d in registry.all()
        ]
    )


@router.get("/all/status")
async def all_status(
    user: Identity = Depends(get_current_user),
    forwarder: Forwarder = Depends(get_forwarder),
):
    """Status of every player, queried concurrently."""
    results = await forwarder.forward_all()
    return {"success": True, "players": [r.model_dump(mode="json") for r in results]}


@router.api_route("/players/{device_id}/{path:path}", methods=FORWARD_METHODS, response_model=ForwardResult)
async def forward_to_player(
    device_id: str,
    path: str,
    request_obj: Request,
    user: Identity = Depends(get_current_user),
    forwarder: Forwarder = Depends(get_forwarder),
):
    """Forward a request to one player's API (`/api/<path>` on the device)."""
    raw = await request_obj.body()
    body = None
    if raw:
        try:
            body = json.loads(raw)
        except ValueError:
            raise HTTPException(status_code=400, detail="Request body must be JSON")

    target = "/api/" + path.lstrip("/")
    if request_obj.url.query:
        target += "?" + request_obj.url.query

    result = await forwarder.forward(device_id, target, request_obj.method, body)
    return _forward_response(result)
