"""Shared fixtures for relay tests."""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from ledrelay.bridge.broker import BrokerClient
from ledrelay.bridge.config import BridgeConfig
from ledrelay.bridge.gateway import DeviceGateway

sys.path.insert(0, str(Path(__file__).parent))
from mocks.mock_iot_client import MockMqttConnection  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def bridge_config():
    """Bridge configuration using username/password credentials."""
    return BridgeConfig(
        endpoint="broker.example.com",
        device_id="dev-1",
        gateway_host="192.168.1.50",
        username="bridge",
        password="secret",
        bridge_name="test-bridge",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_connection():
    """Create a mock MQTT connection."""
    return MockMqttConnection()


@pytest.fixture
def broker(bridge_config, mock_connection):
    """BrokerClient whose connections are the mock connection."""
    client = BrokerClient(bridge_config)
    mock_connection._on_interrupted = client._on_connection_interrupted
    mock_connection._on_resumed = client._on_connection_resumed
    with patch.object(client, "_create_connection", return_value=mock_connection):
        yield client


@pytest.fixture
def gateway():
    """Device gateway double answering every request with a small state body."""
    gw = MagicMock(spec=DeviceGateway)
    gw.request.return_value = b'{"on":true,"bri":128}'
    gw.get_state.return_value = b'{"on":true,"bri":128}'
    return gw
