"""Tests for FastAPI endpoints using FakePortRegistry (no hardware).

Tests verify:
- Status and current weight (live and simulated)
- Port listing and manual detection
- Manual capture
- Raw capture and speed test, including 409 on conflict
- Weight stream over WebSocket
"""

import threading
import time

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from fakes.fake_serial import FakePortRegistry
from pallet_store import PalletStore
from scale_reader.models import ScaleSettings, SerialSettings
from scale_reader.service import ScaleReaderService
from scale_reader.transport import PortConnection


@pytest.fixture
def registry() -> FakePortRegistry:
    registry = FakePortRegistry()
    registry.add("/dev/ttyFAKE0")
    return registry


@pytest.fixture
def store() -> PalletStore:
    return PalletStore(ScaleSettings(auto_capture_enabled=False))


@pytest.fixture
def service(registry, store):
    connection = PortConnection(
        SerialSettings(port="/dev/ttyFAKE0", detect_timeout_s=0.3),
        serial_factory=registry.open,
        port_lister=registry.list_ports,
    )
    svc = ScaleReaderService(store, connection=connection, poll_interval_s=0.02, reconnect_delay_s=0.2)
    yield svc
    svc.stop()


@pytest.fixture
def client(service, store):
    """Test client with the scale enabled; startup connects to the fake."""
    app = create_app(service=service, store=store, scale_enabled=True)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def disabled_client(service, store):
    """Test client with the scale disabled (simulation mode)."""
    app = create_app(service=service, store=store, scale_enabled=False)
    with TestClient(app) as client:
        yield client


def _wait_for_weight(client: TestClient, weight: float, timeout_s: float = 5.0) -> None:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if client.get("/scale/status").json()["current_weight"] == pytest.approx(weight):
            return
        time.sleep(0.02)
    raise AssertionError(f"weight never reached {weight}")


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_status_connected(client, registry) -> None:
    """Test GET /scale/status reflects a live connection."""
    registry.opened[-1].feed_lines(["WGT:1 2.50 0.00"])
    _wait_for_weight(client, 5.0)

    data = client.get("/scale/status").json()

    assert data["connected"] is True
    assert data["enabled"] is True
    assert data["running"] is True
    assert data["port_name"] == "/dev/ttyFAKE0"
    assert data["lock_state"] == "locked"


def test_current_weight_live(client, registry) -> None:
    """Test GET /scale/current serves the live weight when connected."""
    registry.opened[-1].feed_lines(["WGT:1 2.50 0.00"])
    _wait_for_weight(client, 5.0)

    data = client.get("/scale/current").json()

    assert data["weight"] == pytest.approx(5.0)
    assert data["simulated"] is False


def test_current_weight_simulated_when_disabled(disabled_client) -> None:
    """Test GET /scale/current falls back to a simulated weight."""
    data = disabled_client.get("/scale/current").json()

    assert data["simulated"] is True
    assert 44.25 <= data["weight"] <= 45.75


def test_ports(client) -> None:
    """Test GET /scale/ports lists candidate devices."""
    assert client.get("/scale/ports").json() == ["/dev/ttyFAKE0"]


def test_manual_capture(client, registry, store) -> None:
    """Test POST /scale/capture commits the live weight."""
    registry.opened[-1].feed_lines(["WGT:1 3.00 0.00"])
    _wait_for_weight(client, 6.0)

    response = client.post("/scale/capture")

    assert response.status_code == 200
    data = response.json()
    assert data["weight"] == pytest.approx(6.0)
    assert data["pallet_id"] == "P001"
    assert store.reading_count() == 1


def test_manual_capture_simulated(disabled_client, store) -> None:
    """Test manual capture in simulation mode still commits a reading."""
    response = disabled_client.post("/scale/capture")

    assert response.status_code == 200
    assert store.reading_count() == 1


def test_raw_capture(client, registry) -> None:
    """Test POST /scale/raw returns raw lines in order."""
    fake = registry.opened[-1]
    threading.Timer(0.2, fake.feed_lines, args=(["A", "WGT:1 1.00 0.00", "B"],)).start()

    response = client.post("/scale/raw", params={"count": 3, "timeout_seconds": 3})

    assert response.status_code == 200
    assert response.json() == {"requested": 3, "lines": ["A", "WGT:1 1.00 0.00", "B"]}


def test_raw_capture_conflict(client, service) -> None:
    """Test a second raw capture returns 409."""
    service._raw_capture.begin(5)

    response = client.post("/scale/raw", params={"count": 1, "timeout_seconds": 1})

    assert response.status_code == 409


def test_raw_capture_validation(client) -> None:
    """Test out-of-range parameters are rejected."""
    response = client.post("/scale/raw", params={"count": 0})

    assert response.status_code == 422


def test_speed_test(client, registry) -> None:
    """Test POST /scale/speed-test reports timing statistics."""
    fake = registry.opened[-1]

    def emit() -> None:
        for _ in range(4):
            time.sleep(0.1)
            fake.feed_lines(["WGT:1 1.00 0.00"])

    threading.Thread(target=emit, daemon=True).start()
    response = client.post("/scale/speed-test", params={"samples": 4, "timeout_seconds": 5})

    assert response.status_code == 200
    data = response.json()
    assert data["lines_received"] == 4
    assert data["mean_interval_ms"] > 0


def test_detect(client, registry, store) -> None:
    """Test POST /scale/detect returns and stores the port."""
    response = client.post("/scale/detect")

    assert response.status_code == 200
    assert response.json() == {"port_name": "/dev/ttyFAKE0"}
    assert store.get_settings().configured_port_name == "/dev/ttyFAKE0"


def test_weight_stream(client, registry) -> None:
    """Test the WebSocket pushes weight changes."""
    with client.websocket_connect("/scale/stream") as ws:
        registry.opened[-1].feed_lines(["WGT:1 4.00 0.00"])
        message = ws.receive_json()

        while message["weight"] != pytest.approx(8.0):
            message = ws.receive_json()

        assert "timestamp" in message
