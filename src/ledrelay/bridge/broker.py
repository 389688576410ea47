"""MQTT session to the command broker.

awscrt delivers messages and connection events on its own event-loop thread.
The callbacks here only append to a queue and flip a flag; the Bridge Agent
drains them with ``poll()`` from its control loop, so every state change the
agent makes happens on one thread.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Optional

from awscrt import io, mqtt
from awsiot import mqtt_connection_builder

from ledrelay.bridge.config import BridgeConfig

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SEC = 10.0
OPERATION_TIMEOUT_SEC = 5.0


@dataclass
class InboundMessage:
    """A message received on a subscribed topic."""

    topic: str
    payload: bytes


class BrokerClient:
    """Owns one MQTT connection at a time and buffers what it receives."""

    def __init__(self, config: BridgeConfig):
        self._config = config
        self._connection: Optional[mqtt.Connection] = None
        self._inbox: "queue.Queue[InboundMessage]" = queue.Queue()
        self._connected = threading.Event()

    def _create_connection(self) -> mqtt.Connection:
        """Create the MQTT connection (mTLS or username/password over TLS)."""
        if self._config.uses_mtls:
            kwargs = {}
            if self._config.root_ca_path is not None:
                kwargs["ca_filepath"] = str(self._config.root_ca_path)
            return mqtt_connection_builder.mtls_from_path(
                endpoint=self._config.endpoint,
                port=self._config.port,
                cert_filepath=str(self._config.cert_path),
                pri_key_filepath=str(self._config.key_path),
                client_id=self._config.client_id,
                clean_session=False,
                keep_alive_secs=self._config.keep_alive_secs,
                on_connection_interrupted=self._on_connection_interrupted,
                on_connection_resumed=self._on_connection_resumed,
                **kwargs,
            )

        tls_options = io.TlsContextOptions()
        if self._config.root_ca_path is not None:
            tls_options.override_default_trust_store_from_path(
                None, str(self._config.root_ca_path)
            )
        client = mqtt.Client(
            io.ClientBootstrap.get_or_create_static_default(),
            io.ClientTlsContext(tls_options),
        )
        return mqtt.Connection(
            client=client,
            host_name=self._config.endpoint,
            port=self._config.port,
            client_id=self._config.client_id,
            clean_session=False,
            keep_alive_secs=self._config.keep_alive_secs,
            username=self._config.username,
            password=self._config.password,
            on_connection_interrupted=self._on_connection_interrupted,
            on_connection_resumed=self._on_connection_resumed,
        )

    def connect(self, timeout: float = CONNECT_TIMEOUT_SEC) -> bool:
        """Open a fresh connection, replacing any previous one.

        Returns:
            True if the TLS handshake and broker authentication succeeded
        """
        self.disconnect()

        try:
            connection = self._create_connection()
            # Sole delivery path: also receives messages the broker replays
            # from a persistent session before the subscription is re-established
            connection.on_message(self._on_message)
            connect_future = connection.connect()
            connect_future.result(timeout=timeout)
        except Exception as e:
            logger.warning(f"Broker connection to {self._config.endpoint} failed: {e}")
            return False

        self._connection = connection
        self._connected.set()
        logger.info(f"Connected to broker: {self._config.endpoint}:{self._config.port}")
        return True

    def disconnect(self, timeout: float = OPERATION_TIMEOUT_SEC) -> None:
        """Close the current connection, if any."""
        connection, self._connection = self._connection, None
        self._connected.clear()
        if connection is None:
            return
        try:
            connection.disconnect().result(timeout=timeout)
            logger.info("Disconnected from broker")
        except Exception as e:
            logger.warning(f"Error during disconnect: {e}")

    def is_connected(self) -> bool:
        return self._connection is not None and self._connected.is_set()

    def subscribe(self, topic: str) -> bool:
        """Subscribe to a topic with at-least-once delivery.

        No per-subscription callback is registered: awscrt invokes both the
        subscription callback and the ``on_message`` catch-all for every
        publish, which would queue each message twice.
        """
        if not self.is_connected():
            return False
        try:
            subscribe_future, _ = self._connection.subscribe(
                topic=topic,
                qos=mqtt.QoS.AT_LEAST_ONCE,
                callback=None,
            )
            subscribe_future.result(timeout=OPERATION_TIMEOUT_SEC)
            logger.info(f"Subscribed to topic: {topic}")
            return True
        except Exception as e:
            logger.warning(f"Failed to subscribe to {topic}: {e}")
            return False

    def publish(self, topic: str, payload: bytes, retain: bool = False) -> bool:
        """Publish a message with at-least-once delivery."""
        if not self.is_connected():
            logger.warning(f"Cannot publish to {topic}: broker not connected")
            return False
        try:
            publish_future, _ = self._connection.publish(
                topic=topic,
                payload=payload,
                qos=mqtt.QoS.AT_LEAST_ONCE,
                retain=retain,
            )
            publish_future.result(timeout=OPERATION_TIMEOUT_SEC)
            logger.debug(f"Published to {topic}: {payload[:100]!r}")
            return True
        except Exception as e:
            logger.warning(f"Failed to publish to {topic}: {e}")
            return False

    def poll(self) -> list[InboundMessage]:
        """Drain messages received since the last call, in arrival order."""
        messages = []
        while True:
            try:
                messages.append(self._inbox.get_nowait())
            except queue.Empty:
                return messages

    def _on_message(self, topic: str, payload: bytes, **kwargs):  # noqa: ARG002
        self._inbox.put(InboundMessage(topic, bytes(payload)))

    def _on_connection_interrupted(self, connection, error, **kwargs):  # noqa: ARG002
        """Mark the link lost; the agent reconnects on its own schedule."""
        if connection is self._connection:
            logger.warning(f"Broker connection interrupted: {error}")
            self._connected.clear()

    def _on_connection_resumed(self, connection, return_code, session_present, **kwargs):  # noqa: ARG002
        # Interrupted connections are replaced by the agent, never resumed
        logger.debug(
            f"Ignoring connection resume (session_present={session_present})"
        )
