"""Bridge Agent: relays broker commands to the local device gateway."""

from ledrelay.bridge.agent import AgentState, BridgeAgent, ConnectionPhase, HealthSignal
from ledrelay.bridge.broker import BrokerClient
from ledrelay.bridge.config import BridgeConfig, load_config
from ledrelay.bridge.gateway import DeviceGateway

__all__ = [
    "AgentState",
    "BridgeAgent",
    "BrokerClient",
    "BridgeConfig",
    "ConnectionPhase",
    "DeviceGateway",
    "HealthSignal",
    "load_config",
]
