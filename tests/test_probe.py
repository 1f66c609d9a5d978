"""Probe engine: discovery sweeps, health checks, background lifecycle."""

import asyncio

import httpx
import pytest

from gateway.models.device import DeviceStatus
from gateway.services.device_client import DeviceClient
from gateway.services.monitoring import Metrics
from gateway.services.probe import ProbeEngine
from gateway.services.registry import DeviceRegistry


def _engine(registry, client, candidates=("100.64.0.1", "100.64.0.2"), **kwargs):
    return ProbeEngine(registry, client, candidate_addresses=list(candidates), **kwargs)


@pytest.mark.asyncio
async def test_discovery_creates_online_device(registry, client, network):
    network.up("100.64.0.1", hostname="lobby-pi", version="2.1.0", uptime=120, storage={"free": 10})
    engine = _engine(registry, client)

    discovered = await engine.discover()

    assert [d.id for d in discovered] == ["pi-100-64-0-1"]
    device = registry.get("pi-100-64-0-1")
    assert device.status == DeviceStatus.ONLINE
    assert device.name == "lobby-pi"
    assert device.version == "2.1.0"
    assert device.capabilities == {"hostname": "lobby-pi", "uptime": 120, "storage": {"free": 10}}
    assert device.response_time_ms is not None
    assert len(registry) == 1


@pytest.mark.asyncio
async def test_discovery_uses_placeholder_name_without_hostname(registry, client, network):
    network.up("100.64.0.2")
    await _engine(registry, client).discover()
    assert registry.get("pi-100-64-0-2").name == "Device 1"


@pytest.mark.asyncio
async def test_discovery_probe_request(registry, client, network):
    network.up("100.64.0.1")
    await _engine(registry, client, candidates=["100.64.0.1"]).discover()

    (request,) = network.calls_to("100.64.0.1")
    assert str(request.url) == "http://100.64.0.1:5000/api/health"
    assert request.headers["User-Agent"] == "Device-Discovery/1.0"


@pytest.mark.asyncio
async def test_unreachable_candidate_creates_no_device(registry, client, network):
    network.slow("100.64.0.1")
    network.down("100.64.0.2")

    discovered = await _engine(registry, client).discover()

    assert discovered == []
    assert len(registry) == 0
    assert not registry.path.exists()


@pytest.mark.asyncio
async def test_repeated_discovery_does_not_duplicate(registry, client, network):
    network.up("100.64.0.1", hostname="bar")
    engine = _engine(registry, client)

    await engine.discover()
    await engine.discover()

    assert [d.id for d in registry.all()] == ["pi-100-64-0-1"]
    assert registry.get("pi-100-64-0-1").status == DeviceStatus.ONLINE


@pytest.mark.asyncio
async def test_rediscovery_keeps_admin_metadata(registry, client, network):
    await registry.register("100.64.0.1", name="Pool Bar", location="Pool", description="by the pool")
    network.up("100.64.0.1", version="3.0")

    await _engine(registry, client).discover()

    device = registry.get("pi-100-64-0-1")
    assert device.status == DeviceStatus.ONLINE
    assert device.name == "Pool Bar"
    assert device.location == "Pool"
    assert device.description == "by the pool"
    assert device.version == "3.0"


@pytest.mark.asyncio
async def test_discovery_marks_known_online_device_offline(registry, client, network):
    network.up("100.64.0.1")
    engine = _engine(registry, client)
    await engine.discover()

    network.down("100.64.0.1")
    assert await engine.discover() == []
    assert registry.get("pi-100-64-0-1").status == DeviceStatus.OFFLINE


@pytest.mark.asyncio
async def test_discovery_leaves_pending_device_pending(registry, client, network):
    await registry.register("100.64.0.1")
    network.down("100.64.0.1")

    await _engine(registry, client).discover()

    assert registry.get("pi-100-64-0-1").status == DeviceStatus.PENDING


@pytest.mark.asyncio
async def test_health_endpoint_without_success_flag_is_a_failure(registry, client, network):
    network.up("100.64.0.1", success=False)
    assert await _engine(registry, client).discover() == []
    assert len(registry) == 0


@pytest.mark.asyncio
async def test_health_check_covers_all_known_devices(registry, client, network):
    await registry.register("100.64.0.1", name="A")
    await registry.register("10.0.0.9", name="B")  # not a discovery candidate
    await registry.register("100.64.0.3", name="C")
    network.up("100.64.0.1", version="1.0")
    network.up("10.0.0.9")
    network.slow("100.64.0.3")
    telemetry = Metrics()

    results = await _engine(registry, client, telemetry=telemetry).health_check()

    by_id = {r.device_id: r for r in results}
    assert len(results) == 3
    assert by_id["pi-100-64-0-1"].status == DeviceStatus.ONLINE
    assert by_id["pi-100-64-0-1"].response["success"] is True
    assert by_id["pi-10-0-0-9"].status == DeviceStatus.ONLINE
    assert by_id["pi-100-64-0-3"].status == DeviceStatus.OFFLINE
    assert by_id["pi-100-64-0-3"].error.startswith("Timeout")
    assert by_id["pi-100-64-0-3"].response is None

    assert registry.get("pi-100-64-0-1").version == "1.0"
    assert registry.get("pi-100-64-0-3").status == DeviceStatus.OFFLINE
    snapshot = telemetry.snapshot()
    assert snapshot["devices"]["offline"] == ["pi-100-64-0-3"]
    assert sorted(snapshot["devices"]["online"]) == ["pi-10-0-0-9", "pi-100-64-0-1"]


@pytest.mark.asyncio
async def test_health_check_with_no_devices(registry, client):
    assert await _engine(registry, client).health_check() == []


@pytest.mark.asyncio
async def test_start_runs_initial_discovery_and_stop_is_idempotent(registry, client, network):
    network.up("100.64.0.1")
    engine = _engine(registry, client, discovery_interval=60)

    assert engine.start() is True
    assert engine.start() is False
    assert engine.running

    for _ in range(100):
        if "pi-100-64-0-1" in registry:
            break
        await asyncio.sleep(0.01)
    assert registry.get("pi-100-64-0-1").status == DeviceStatus.ONLINE

    await asyncio.wait_for(engine.stop(), timeout=1)
    assert not engine.running
    await engine.stop()


@pytest.mark.asyncio
async def test_periodic_sweeps_repeat(registry, client, network):
    network.up("100.64.0.1")
    engine = _engine(registry, client, candidates=["100.64.0.1"], discovery_interval=0.01)

    engine.start()
    await asyncio.sleep(0.2)
    await engine.stop()

    # Discovery and health checks each hit the device repeatedly
    assert len(network.calls_to("100.64.0.1")) >= 4
    calls = len(network.calls)
    await asyncio.sleep(0.05)
    assert len(network.calls) == calls


@pytest.mark.asyncio
async def test_stop_does_not_wait_for_a_stuck_sweep(registry, client):
    engine = _engine(registry, client, discovery_interval=60)
    release = asyncio.Event()

    async def stuck_sweep():
        await release.wait()
        return []

    engine.discover = stuck_sweep
    engine.start()
    await asyncio.sleep(0.01)

    await asyncio.wait_for(engine.stop(), timeout=1)
    assert not engine.running


@pytest.mark.asyncio
async def test_failing_sweep_does_not_kill_the_loop(registry, client):
    engine = _engine(registry, client, discovery_interval=0.01)
    calls = 0

    async def broken_sweep():
        nonlocal calls
        calls += 1
        raise RuntimeError("boom")

    engine.discover = broken_sweep
    engine.start()
    await asyncio.sleep(0.1)
    assert engine.running
    await engine.stop()
    assert calls >= 2


# --- Malformed health metadata ---

@pytest.mark.asyncio
async def test_discovery_survives_non_string_hostname(registry, client, network):
    network.up("100.64.0.1", hostname=1234)
    network.up("100.64.0.2", hostname="ok-pi")

    discovered = await _engine(registry, client).discover()

    assert sorted(d.id for d in discovered) == ["pi-100-64-0-1", "pi-100-64-0-2"]
    assert registry.get("pi-100-64-0-1").name == "Device 1"
    assert registry.get("pi-100-64-0-1").capabilities["hostname"] == 1234
    assert registry.get("pi-100-64-0-2").name == "ok-pi"


@pytest.mark.asyncio
async def test_rediscovery_with_non_string_hostname_keeps_existing_name(registry, client, network):
    await registry.register("100.64.0.1", name="A")
    await registry.register("100.64.0.2", name="B")
    network.up("100.64.0.1", hostname=1234)
    network.up("100.64.0.2", hostname=["not", "a", "name"])

    await _engine(registry, client).discover()

    assert registry.get("pi-100-64-0-1").name == "A"
    assert registry.get("pi-100-64-0-2").name == "B"
    reloaded = DeviceRegistry(registry.path)
    assert reloaded.load() == 2
    assert reloaded.get("pi-100-64-0-1").name == "A"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "health, expected_version",
    [
        ({"version": {"major": 2}}, "unknown"),
        ({"version": ["1", "2"]}, "unknown"),
        ({"version": True}, "unknown"),
        ({"version": ""}, "unknown"),
        ({"version": 3}, "3"),
        ({"version": 2.5}, "2.5"),
        ({"storage": "full"}, "unknown"),
        ({"storage": None, "uptime": "a while", "hostname": ""}, "unknown"),
    ],
)
async def test_discovery_with_malformed_metadata_registers_and_persists(
    registry, client, network, health, expected_version
):
    network.up("100.64.0.1", **health)
    network.up("100.64.0.2", hostname="neighbour")

    discovered = await _engine(registry, client).discover()

    assert len(discovered) == 2
    device = registry.get("pi-100-64-0-1")
    assert device.status == DeviceStatus.ONLINE
    assert device.version == expected_version
    assert isinstance(device.name, str) and device.name

    reloaded = DeviceRegistry(registry.path)
    assert reloaded.load() == 2
    assert reloaded.get("pi-100-64-0-1").version == expected_version
    assert reloaded.get("pi-100-64-0-2").name == "neighbour"


@pytest.mark.asyncio
async def test_health_check_with_malformed_metadata(registry, client, network):
    await registry.register("100.64.0.1", name="A")
    await registry.register("100.64.0.2", name="B")
    network.up("100.64.0.1", hostname=99, version={"nested": True}, storage="n/a")
    network.up("100.64.0.2", version="1.4")

    results = await _engine(registry, client).health_check()

    assert [r.status for r in results] == [DeviceStatus.ONLINE, DeviceStatus.ONLINE]
    assert registry.get("pi-100-64-0-1").version == "unknown"
    assert registry.get("pi-100-64-0-1").capabilities == {"hostname": 99, "storage": "n/a"}
    assert registry.get("pi-100-64-0-2").version == "1.4"

    reloaded = DeviceRegistry(registry.path)
    assert reloaded.load() == 2
    assert reloaded.get("pi-100-64-0-1").name == "A"


# --- Removal during a sweep ---

@pytest.mark.asyncio
async def test_device_removed_during_health_check_is_not_reported(registry):
    await registry.register("100.64.0.1")
    telemetry = Metrics()

    async def remove_then_answer(request):
        await registry.remove("pi-100-64-0-1")
        return httpx.Response(200, json={"success": True})

    device_client = DeviceClient(transport=httpx.MockTransport(remove_then_answer))
    try:
        results = await _engine(registry, device_client, telemetry=telemetry).health_check()
    finally:
        await device_client.aclose()

    assert len(results) == 1
    assert "pi-100-64-0-1" not in registry
    assert telemetry.snapshot()["devices"]["online"] == []
    assert telemetry.snapshot()["devices"]["last_seen"] == {}
