"""Tests for bridge configuration loading and validation."""

import json

import pytest

from ledrelay.bridge.config import BridgeConfig, load_config


@pytest.fixture
def config_file(tmp_path):
    """Write a username/password config file and return its path."""
    path = tmp_path / "bridge.json"
    path.write_text(
        json.dumps(
            {
                "endpoint": "broker.example.com",
                "device_id": "dev-1",
                "gateway_host": "192.168.1.50",
                "username": "bridge",
                "password": "secret",
                "status_interval": 15,
            }
        )
    )
    return path


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for name in [
        "RELAY_CONFIG_PATH",
        "RELAY_BROKER_ENDPOINT",
        "RELAY_DEVICE_ID",
        "RELAY_GATEWAY_HOST",
        "RELAY_BROKER_USERNAME",
        "RELAY_BROKER_PASSWORD",
    ]:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:
    """Tests for load_config."""

    def test_loads_file(self, config_file):
        config = load_config(str(config_file))
        assert config.endpoint == "broker.example.com"
        assert config.device_id == "dev-1"
        assert config.status_interval == 15.0
        assert config.port == 8883
        assert config.gateway_base_path == "/json"
        assert config.client_id == "relay-bridge-dev-1"
        assert not config.uses_mtls

    def test_env_overrides(self, config_file, monkeypatch):
        monkeypatch.setenv("RELAY_DEVICE_ID", "dev-2")
        monkeypatch.setenv("RELAY_BROKER_PASSWORD", "from-env")
        config = load_config(str(config_file))
        assert config.device_id == "dev-2"
        assert config.password == "from-env"

    def test_config_path_from_env(self, config_file, monkeypatch):
        monkeypatch.setenv("RELAY_CONFIG_PATH", str(config_file))
        assert load_config().endpoint == "broker.example.com"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.json"))

    def test_relative_cert_paths_resolve_against_config_dir(self, tmp_path):
        path = tmp_path / "bridge.json"
        path.write_text(
            json.dumps(
                {
                    "endpoint": "broker.example.com",
                    "device_id": "dev-1",
                    "gateway_host": "10.0.0.2",
                    "cert_path": "certs/cert.pem",
                    "key_path": "certs/key.pem",
                }
            )
        )
        config = load_config(str(path))
        assert config.cert_path == tmp_path / "certs" / "cert.pem"
        assert config.uses_mtls


class TestValidate:
    """Tests for BridgeConfig.validate."""

    def _config(self, **kwargs):
        values = dict(
            endpoint="broker.example.com",
            device_id="dev-1",
            gateway_host="10.0.0.2",
            username="u",
            password="p",
        )
        values.update(kwargs)
        return BridgeConfig(**values)

    def test_valid(self):
        self._config().validate()

    def test_requires_credentials(self):
        with pytest.raises(ValueError, match="username/password"):
            self._config(username=None, password=None).validate()

    def test_reconnect_interval_floor(self):
        with pytest.raises(ValueError, match="reconnect_interval"):
            self._config(reconnect_interval=1.0).validate()

    def test_missing_certificate(self, tmp_path):
        config = self._config(
            username=None,
            password=None,
            cert_path=tmp_path / "cert.pem",
            key_path=tmp_path / "key.pem",
        )
        with pytest.raises(FileNotFoundError, match="certificate"):
            config.validate()

    def test_requires_device_id(self):
        with pytest.raises(ValueError, match="device_id"):
            self._config(device_id="").validate()

    def test_status_interval_zero_allowed(self):
        self._config(status_interval=0).validate()
