"""Bridge Agent: relays canonical commands from the broker to the device gateway.

Topic structure:
- Commands: relay/{device_id}/command
- Status:   relay/{device_id}/status

The agent is a single-threaded control loop. Each ``step()``:

1. services the broker client (drains received commands, detects link loss)
2. attempts a reconnect when disconnected and the backoff interval elapsed
3. publishes the periodic device status when its timer is due
4. updates the health signal

Commands are processed synchronously inside step 1, so commands for the
device are applied strictly in delivery order and a slow gateway call delays
the status timer.
"""

import asyncio
import json
import logging
import socket
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from ledrelay.bridge.broker import BrokerClient
from ledrelay.bridge.config import BridgeConfig
from ledrelay.bridge.gateway import DeviceGateway, GatewayError, GatewayTransportError
from ledrelay.commands import CommandParseError, command_topic, parse_command, status_topic

logger = logging.getLogger(__name__)

LOOP_TICK_SEC = 0.01


class ConnectionPhase(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class HealthSignal(Enum):
    """Externally visible bridge health, distinct per failure layer."""

    OK = "ok"
    BROKER_DOWN = "broker_down"
    NETWORK_DOWN = "network_down"


@dataclass
class AgentState:
    """Connection flags and counters, owned and mutated only by the agent loop."""

    wifi_connected: bool = False
    broker_connected: bool = False
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    last_reconnect_attempt: Optional[float] = None
    last_status_publish: Optional[float] = None
    commands_processed: int = 0
    commands_failed: int = 0
    reconnect_attempts: int = 0
    device_reachable: Optional[bool] = None
    health: HealthSignal = HealthSignal.NETWORK_DOWN
    started_at: float = 0.0


def check_network(host: str, port: int) -> bool:
    """Check that the host has a route to the broker.

    Connecting a UDP socket resolves the name and selects a route without
    sending any packets.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.settimeout(2.0)
            sock.connect((host, port))
        return True
    except OSError as e:
        logger.debug(f"Network check failed: {e}")
        return False


class BridgeAgent:
    """Relays commands for exactly one device."""

    def __init__(
        self,
        config: BridgeConfig,
        broker: BrokerClient,
        gateway: DeviceGateway,
        clock: Callable[[], float] = time.monotonic,
        network_check: Optional[Callable[[], bool]] = None,
        wall_clock: Callable[[], float] = time.time,
    ):
        """Initialize the agent.

        Args:
            config: Bridge configuration
            broker: Broker client owning the MQTT session
            gateway: HTTP client for the device gateway
            clock: Monotonic clock in seconds
            network_check: Returns True when the local network is usable
            wall_clock: Epoch clock in seconds, compared against command expiry
        """
        self._config = config
        self._broker = broker
        self._gateway = gateway
        self._clock = clock
        self._wall_clock = wall_clock
        self._network_check = network_check or (
            lambda: check_network(config.endpoint, config.port)
        )
        self._command_topic = command_topic(config.device_id)
        self._status_topic = status_topic(config.device_id)
        self.state = AgentState(started_at=clock())
        self.state.last_status_publish = self.state.started_at

    @property
    def command_topic(self) -> str:
        return self._command_topic

    @property
    def status_topic(self) -> str:
        return self._status_topic

    def step(self) -> None:
        """Run one iteration of the control loop."""
        now = self._clock()
        self._service_broker()
        self._maybe_reconnect(now)
        self._maybe_publish_device_state(now)
        self._update_health()

    async def run_forever(self, stop_event: asyncio.Event, tick: float = LOOP_TICK_SEC) -> None:
        """Run the control loop until ``stop_event`` is set."""
        logger.info(f"Bridge agent running for device {self._config.device_id}")
        while not stop_event.is_set():
            try:
                self.step()
            except Exception as e:
                logger.error(f"Unexpected error in control loop: {e}")
            await asyncio.sleep(tick)

    def stop(self) -> None:
        """Announce going offline and close the broker session."""
        if self.state.phase is ConnectionPhase.CONNECTED:
            self._publish_status({"online": False, "bridge": self._config.bridge_name})
        self._broker.disconnect()
        self.state.phase = ConnectionPhase.DISCONNECTED
        self.state.broker_connected = False

    # Connection management

    def _service_broker(self) -> None:
        if self.state.phase is not ConnectionPhase.CONNECTED:
            return

        for message in self._broker.poll():
            if message.topic != self._command_topic:
                logger.warning(f"Ignoring message on unexpected topic: {message.topic}")
                continue
            logger.info(f"Message received on topic: {message.topic}")
            self.handle_message(message.payload)

        if not self._broker.is_connected():
            logger.warning("Broker link lost")
            self.state.phase = ConnectionPhase.DISCONNECTED
            self.state.broker_connected = False

    def _maybe_reconnect(self, now: float) -> None:
        if self.state.phase is ConnectionPhase.CONNECTED:
            return

        last = self.state.last_reconnect_attempt
        if last is not None and now - last < self._config.reconnect_interval:
            return
        self.state.last_reconnect_attempt = now

        self.state.wifi_connected = self._network_check()
        if not self.state.wifi_connected:
            logger.warning("Network unavailable, not attempting broker connection")
            return

        self.state.phase = ConnectionPhase.CONNECTING
        self.state.reconnect_attempts += 1
        logger.info(f"Connecting to broker (attempt {self.state.reconnect_attempts})")

        if not self._broker.connect():
            self.state.phase = ConnectionPhase.DISCONNECTED
            logger.warning(
                f"Broker connection failed, retrying in {self._config.reconnect_interval:.0f}s"
            )
            return

        self._on_connected()

    def _on_connected(self) -> None:
        self.state.phase = ConnectionPhase.CONNECTED
        self.state.broker_connected = True

        # Subscribe/publish failures surface through the broker client on the
        # next iteration; the phase stays CONNECTED
        if not self._broker.subscribe(self._command_topic):
            logger.warning(f"Subscription to {self._command_topic} failed")
        self._publish_status({"online": True, "bridge": self._config.bridge_name})

    def _update_health(self) -> None:
        if self.state.phase is ConnectionPhase.CONNECTED:
            self.state.wifi_connected = True
            health = HealthSignal.OK
        elif self.state.wifi_connected:
            health = HealthSignal.BROKER_DOWN
        else:
            health = HealthSignal.NETWORK_DOWN

        if health is not self.state.health:
            if health is HealthSignal.OK:
                logger.info("Bridge health: network up, broker connected")
            elif health is HealthSignal.BROKER_DOWN:
                logger.warning("Bridge health: network up, broker down")
            else:
                logger.warning("Bridge health: network down")
            self.state.health = health

    # Command processing

    def handle_message(self, payload: bytes) -> bool:
        """Process one command message and publish its outcome.

        Side effects: at most one device gateway request, exactly one status
        publish, and one counter increment.

        Returns:
            True if the device gateway accepted the command
        """
        try:
            command = parse_command(payload)
        except CommandParseError as e:
            logger.warning(f"Rejected command: {e}")
            self._record_failure({"error": str(e)})
            return False

        action_name = command.action_name
        if command.controller_id not in self._config.controller_ids:
            logger.warning(f"Rejected command for unknown controller: {command.controller_id}")
            self._record_failure(
                {"error": f"Unknown controller: {command.controller_id}", "action": action_name}
            )
            return False

        if command.is_expired(self._wall_clock()):
            logger.warning(f"Rejected expired command: {action_name} (expiresAt {command.expires_at})")
            self._record_failure({"error": "Command expired", "action": action_name})
            return False

        if command.is_fallback:
            logger.warning(f"Unknown action '{command.raw_action}', treating as setState")

        action = command.action
        body = json.dumps(command.payload).encode("utf-8") if action.has_body else None
        logger.info(f"Action: {action_name} -> {action.method} {action.path}")

        try:
            response = self._gateway.request(action.method, action.path, body)
        except GatewayError as e:
            logger.warning(f"Device gateway request failed: {e}")
            if isinstance(e, GatewayTransportError):
                self.state.device_reachable = False
            self._record_failure({"error": str(e), "action": action_name})
            return False

        self.state.commands_processed += 1
        self.state.device_reachable = True
        self._publish_status(response)
        return True

    def _record_failure(self, status: dict[str, Any]) -> None:
        self.state.commands_failed += 1
        self._publish_status(status)

    # Status publishing

    def _maybe_publish_device_state(self, now: float) -> None:
        interval = self._config.status_interval
        if interval <= 0:
            return
        last = self.state.last_status_publish
        if last is not None and now - last < interval:
            return
        self.publish_device_state(now)

    def publish_device_state(self, now: Optional[float] = None) -> None:
        """Read the device state and publish it with bridge metadata.

        The gateway read runs regardless of broker state so reachability stays
        current; the publish itself needs a broker connection.
        """
        now = self._clock() if now is None else now
        self.state.last_status_publish = now

        try:
            body = self._gateway.get_state()
        except GatewayError as e:
            logger.warning(f"Periodic state read failed: {e}")
            if isinstance(e, GatewayTransportError):
                self.state.device_reachable = False
            status: dict[str, Any] = {"error": str(e)}
        else:
            self.state.device_reachable = True
            try:
                decoded = json.loads(body)
            except ValueError:
                decoded = body.decode("utf-8", errors="replace")
            status = decoded if isinstance(decoded, dict) else {"state": decoded}

        status.update(self._bridge_metadata(now))

        if self.state.phase is not ConnectionPhase.CONNECTED:
            logger.debug("Skipping status publish: broker not connected")
            return
        self._publish_status(status)

    def _bridge_metadata(self, now: float) -> dict[str, Any]:
        return {
            "_bridge": self._config.bridge_name,
            "_uptime": int(now - self.state.started_at),
            "_commands": self.state.commands_processed,
            "_errors": self.state.commands_failed,
        }

    def _publish_status(self, status: Union[dict[str, Any], bytes]) -> bool:
        if isinstance(status, dict):
            payload = json.dumps(status).encode("utf-8")
        else:
            payload = status
        return self._broker.publish(
            self._status_topic, payload, retain=self._config.retain_status
        )
