"""Shared test setup: isolated data dirs and a fake device network."""

import json
import os
import tempfile

# Setup environment for testing (before any gateway import)
_DATA_DIR = tempfile.mkdtemp()
os.environ["GATEWAY_DATA_DIR"] = _DATA_DIR
os.environ["GATEWAY_DB_PATH"] = os.path.join(_DATA_DIR, "test.db")
os.environ["GATEWAY_REGISTRY_PATH"] = os.path.join(_DATA_DIR, "devices.json")
os.environ["GATEWAY_AUTO_DISCOVERY"] = "false"
os.environ["GATEWAY_ADMIN_EMAIL"] = "admin@test.local"
os.environ["GATEWAY_ADMIN_PASSWORD"] = "admin-pass"
os.environ["GATEWAY_CANDIDATE_ADDRESSES"] = json.dumps(["100.64.0.1", "100.64.0.2"])
os.environ["GATEWAY_RATE_LIMIT_REQUESTS"] = "100000"
os.environ["GATEWAY_AUTH_MAX_ATTEMPTS"] = "1000"

import httpx
import pytest
import pytest_asyncio

from gateway.services.device_client import DeviceClient
from gateway.services.registry import DeviceRegistry


class FakeNetwork:
    """httpx handler standing in for devices on the overlay network.

    Each host is either up (answers with its health/status payloads), down
    (connection refused) or slow (read timeout). Unknown hosts are down.
    Every request is recorded in `calls`.
    """

    def __init__(self):
        self.hosts: dict[str, dict] = {}
        self.calls: list[httpx.Request] = []

    def up(self, host: str, hostname: str | None = None, status_code: int = 200, **health):
        self.hosts[host] = {
            "mode": "up",
            "health": {"success": True, **({"hostname": hostname} if hostname else {}), **health},
            "status_code": status_code,
        }

    def down(self, host: str):
        self.hosts[host] = {"mode": "down"}

    def slow(self, host: str):
        self.hosts[host] = {"mode": "slow"}

    def calls_to(self, host: str) -> list[httpx.Request]:
        return [r for r in self.calls if r.url.host == host]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        host = self.hosts.get(request.url.host, {"mode": "down"})
        if host["mode"] == "down":
            raise httpx.ConnectError("Connection refused", request=request)
        if host["mode"] == "slow":
            raise httpx.ReadTimeout("timed out", request=request)

        if request.url.path == "/api/health":
            return httpx.Response(200, json=host["health"])
        if host["status_code"] >= 400:
            return httpx.Response(host["status_code"], json={"error": "device failure"})
        payload = {"path": request.url.path, "method": request.method, "host": request.url.host}
        if request.content:
            payload["body"] = json.loads(request.content)
        return httpx.Response(host["status_code"], json=payload)


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def registry(tmp_path):
    return DeviceRegistry(tmp_path / "devices.json", default_port=5000)


@pytest_asyncio.fixture
async def client(network):
    device_client = DeviceClient(transport=httpx.MockTransport(network))
    yield device_client
    await device_client.aclose()
