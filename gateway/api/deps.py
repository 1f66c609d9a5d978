"""Common API dependencies: caller identity, role checks, request guards, gateway services."""

import logging
from urllib.parse import unquote

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gateway.config import settings
from gateway.schemas.auth import Identity
from gateway.services.forwarder import Forwarder
from gateway.services.monitoring import metrics
from gateway.services.probe import ProbeEngine
from gateway.services.registry import DeviceRegistry
from gateway.services.request_guard import RateLimiter, find_suspicious
from gateway.utils.security import decode_token

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

api_limiter = RateLimiter(settings.rate_limit_requests, settings.rate_limit_window_seconds)
auth_limiter = RateLimiter(settings.auth_max_attempts, settings.auth_window_seconds)


def client_address(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _enforce(limiter: RateLimiter, request: Request, message: str) -> None:
    ip = client_address(request)
    result = limiter.hit(ip)
    if result.allowed:
        return
    logger.warning("Rate limit hit by %s on %s", ip, request.url.path)
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=message,
        headers={"Retry-After": str(result.retry_after)},
    )


async def limit_api(request: Request) -> None:
    _enforce(api_limiter, request, "Too many requests from this IP, please try again later.")


async def limit_auth(request: Request) -> None:
    try:
        _enforce(auth_limiter, request, "Too many authentication attempts, please try again later.")
    except HTTPException:
        metrics.record_auth_event("rate_limited", ip=client_address(request), path=request.url.path)
        raise


async def screen_request(request: Request) -> None:
    """Block requests whose URL or body matches a known attack pattern."""
    if not settings.block_suspicious_requests:
        return
    url = unquote(request.url.path + ("?" + request.url.query if request.url.query else ""))
    body = (await request.body()).decode("utf-8", errors="replace")
    matched = find_suspicious(url, body)
    if matched:
        logger.warning(
            "Suspicious request blocked: %s %s from %s (pattern %s)",
            request.method,
            url,
            client_address(request),
            matched,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Request blocked for security reasons",
        )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    """Extract the caller identity from a JWT access token.

    The token's claims are trusted as-is; nothing is looked up again.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
        )

    try:
        payload = decode_token(credentials.credentials)
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or expired token",
        )

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid token type",
        )

    return Identity(
        id=payload["sub"],
        email=payload.get("email", ""),
        name=payload.get("name", ""),
        role=payload.get("role", ""),
    )


def require_admin(user: Identity = Depends(get_current_user)) -> Identity:
    """Require the current user to be an admin."""
    if user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def get_registry(request: Request) -> DeviceRegistry:
    return request.app.state.registry


def get_forwarder(request: Request) -> Forwarder:
    return request.app.state.forwarder


def get_probe_engine(request: Request) -> ProbeEngine:
    return request.app.state.probe_engine
