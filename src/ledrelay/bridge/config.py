"""Configuration loader for the Bridge Agent."""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.ledrelay/bridge.json"
DEFAULT_BROKER_PORT = 8883
DEFAULT_GATEWAY_PORT = 80
DEFAULT_GATEWAY_BASE_PATH = "/json"
DEFAULT_HTTP_TIMEOUT_SEC = 10.0
DEFAULT_STATUS_INTERVAL_SEC = 30.0
# Reconnect attempts more often than this trip broker-side rate limits
MIN_RECONNECT_INTERVAL_SEC = 5.0
DEFAULT_KEEPALIVE_SEC = 60
DEFAULT_BRIDGE_NAME = "relay-bridge"


@dataclass
class BridgeConfig:
    """Broker session and device gateway settings for one bridge."""

    endpoint: str
    device_id: str
    gateway_host: str
    port: int = DEFAULT_BROKER_PORT
    client_id: str = ""
    cert_path: Optional[Path] = None
    key_path: Optional[Path] = None
    root_ca_path: Optional[Path] = None
    username: Optional[str] = None
    password: Optional[str] = None
    gateway_port: int = DEFAULT_GATEWAY_PORT
    gateway_base_path: str = DEFAULT_GATEWAY_BASE_PATH
    http_timeout: float = DEFAULT_HTTP_TIMEOUT_SEC
    status_interval: float = DEFAULT_STATUS_INTERVAL_SEC
    reconnect_interval: float = MIN_RECONNECT_INTERVAL_SEC
    keep_alive_secs: int = DEFAULT_KEEPALIVE_SEC
    bridge_name: str = DEFAULT_BRIDGE_NAME
    controller_ids: list[str] = field(default_factory=lambda: ["primary"])
    retain_status: bool = True

    def __post_init__(self):
        if not self.client_id:
            self.client_id = f"relay-bridge-{self.device_id}"

    @property
    def uses_mtls(self) -> bool:
        return self.cert_path is not None and self.key_path is not None

    def validate(self) -> None:
        """Validate credentials and timing settings.

        Raises:
            FileNotFoundError: If a configured certificate file is missing
            ValueError: If settings are missing or out of range
        """
        if not self.endpoint:
            raise ValueError("broker endpoint is not configured")
        if not self.device_id:
            raise ValueError("device_id is not configured")
        if not self.gateway_host:
            raise ValueError("gateway_host is not configured")

        if not self.uses_mtls and not (self.username and self.password):
            raise ValueError(
                "either cert_path/key_path or username/password must be configured"
            )

        for path, name in [
            (self.cert_path, "certificate"),
            (self.key_path, "private key"),
            (self.root_ca_path, "root CA"),
        ]:
            if path is not None and not path.exists():
                raise FileNotFoundError(f"{name} not found at {path}")

        if self.reconnect_interval < MIN_RECONNECT_INTERVAL_SEC:
            raise ValueError(
                f"reconnect_interval must be at least {MIN_RECONNECT_INTERVAL_SEC}s"
            )
        if self.status_interval < 0:
            raise ValueError("status_interval must be >= 0 (0 disables)")
        if self.http_timeout <= 0:
            raise ValueError("http_timeout must be positive")
        if not self.controller_ids:
            raise ValueError("at least one controller id is required")


def _optional_path(value: Optional[str], base: Path) -> Optional[Path]:
    if not value:
        return None
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base / path
    return path


def load_config(config_path: Optional[str] = None) -> BridgeConfig:
    """Load bridge configuration from file with environment variable overrides.

    Environment variables:
        RELAY_CONFIG_PATH: Override config file location
        RELAY_BROKER_ENDPOINT: Override broker hostname
        RELAY_DEVICE_ID: Override device identity
        RELAY_GATEWAY_HOST: Override device gateway address
        RELAY_BROKER_USERNAME / RELAY_BROKER_PASSWORD: Broker credentials

    Args:
        config_path: Path to config JSON file. Defaults to ~/.ledrelay/bridge.json

    Returns:
        BridgeConfig (not yet validated)
    """
    path_str = config_path or os.environ.get("RELAY_CONFIG_PATH", DEFAULT_CONFIG_PATH)
    config_file = Path(path_str).expanduser()

    if not config_file.exists():
        raise FileNotFoundError(f"Bridge config not found at {config_file}")

    with open(config_file) as f:
        data = json.load(f)

    # Relative certificate paths are resolved against the config directory
    config_dir = config_file.parent

    config = BridgeConfig(
        endpoint=os.environ.get("RELAY_BROKER_ENDPOINT", data.get("endpoint", "")),
        device_id=os.environ.get("RELAY_DEVICE_ID", data.get("device_id", "")),
        gateway_host=os.environ.get("RELAY_GATEWAY_HOST", data.get("gateway_host", "")),
        port=int(data.get("port", DEFAULT_BROKER_PORT)),
        client_id=data.get("client_id", ""),
        cert_path=_optional_path(data.get("cert_path"), config_dir),
        key_path=_optional_path(data.get("key_path"), config_dir),
        root_ca_path=_optional_path(data.get("root_ca_path"), config_dir),
        username=os.environ.get("RELAY_BROKER_USERNAME", data.get("username")),
        password=os.environ.get("RELAY_BROKER_PASSWORD", data.get("password")),
        gateway_port=int(data.get("gateway_port", DEFAULT_GATEWAY_PORT)),
        gateway_base_path=data.get("gateway_base_path", DEFAULT_GATEWAY_BASE_PATH),
        http_timeout=float(data.get("http_timeout", DEFAULT_HTTP_TIMEOUT_SEC)),
        status_interval=float(data.get("status_interval", DEFAULT_STATUS_INTERVAL_SEC)),
        reconnect_interval=float(
            data.get("reconnect_interval", MIN_RECONNECT_INTERVAL_SEC)
        ),
        keep_alive_secs=int(data.get("keep_alive_secs", DEFAULT_KEEPALIVE_SEC)),
        bridge_name=data.get("bridge_name", DEFAULT_BRIDGE_NAME),
        controller_ids=list(data.get("controller_ids", ["primary"])),
        retain_status=bool(data.get("retain_status", True)),
    )

    logger.info(
        f"Loaded bridge config: endpoint={config.endpoint}, device={config.device_id}, "
        f"gateway={config.gateway_host}:{config.gateway_port}"
    )
    return config
