"""Tests for the BrokerClient."""

from unittest.mock import patch

from awscrt import mqtt

from ledrelay.bridge.broker import BrokerClient, InboundMessage


class TestConnect:
    """Tests for connection handling."""

    def test_connect_success(self, broker, mock_connection):
        assert broker.connect() is True
        assert broker.is_connected()
        assert mock_connection.connected
        assert mock_connection._on_message is not None

    def test_connect_failure(self, broker, mock_connection):
        mock_connection.simulate_connect_failure = True
        assert broker.connect() is False
        assert not broker.is_connected()

    def test_create_connection_error_is_failure(self, bridge_config):
        client = BrokerClient(bridge_config)
        with patch.object(client, "_create_connection", side_effect=RuntimeError("tls")):
            assert client.connect() is False

    def test_disconnect(self, broker, mock_connection):
        broker.connect()
        broker.disconnect()
        assert not broker.is_connected()
        assert not mock_connection.connected

    def test_reconnect_replaces_connection(self, broker, mock_connection):
        broker.connect()
        broker.connect()
        assert mock_connection.connect_calls == 2
        assert broker.is_connected()

    def test_interrupt_marks_link_lost(self, broker, mock_connection):
        broker.connect()
        mock_connection.simulate_connection_interrupted(Exception("keepalive timeout"))
        assert not broker.is_connected()

    def test_resume_does_not_restore_link(self, broker, mock_connection):
        broker.connect()
        mock_connection.simulate_connection_interrupted(Exception("keepalive timeout"))
        mock_connection.simulate_connection_resumed()
        assert not broker.is_connected()

    def test_interrupt_from_stale_connection_ignored(self, broker, mock_connection):
        broker.connect()
        broker._on_connection_interrupted(object(), Exception("old"))
        assert broker.is_connected()


class TestMessaging:
    """Tests for subscribe, publish and poll."""

    def test_subscribe_uses_at_least_once(self, broker, mock_connection):
        broker.connect()
        assert broker.subscribe("relay/dev-1/command") is True
        assert mock_connection.subscriptions["relay/dev-1/command"].qos == mqtt.QoS.AT_LEAST_ONCE

    def test_subscription_has_no_separate_callback(self, broker, mock_connection):
        """Delivery goes through the catch-all only."""
        broker.connect()
        broker.subscribe("relay/dev-1/command")
        assert mock_connection.subscriptions["relay/dev-1/command"].callback is None

    def test_each_message_queued_once(self, broker, mock_connection):
        broker.connect()
        broker.subscribe("relay/dev-1/command")
        mock_connection.simulate_message("relay/dev-1/command", b'{"action":"getState"}')
        assert len(broker.poll()) == 1

    def test_subscribe_when_disconnected(self, broker):
        assert broker.subscribe("relay/dev-1/command") is False

    def test_subscribe_failure(self, broker, mock_connection):
        broker.connect()
        mock_connection.simulate_subscribe_failure = True
        assert broker.subscribe("relay/dev-1/command") is False

    def test_publish_retained(self, broker, mock_connection):
        broker.connect()
        assert broker.publish("relay/dev-1/status", b'{"online":true}', retain=True)
        message = mock_connection.published_messages[0]
        assert message.retain is True
        assert mock_connection.retained["relay/dev-1/status"] == b'{"online":true}'

    def test_publish_when_disconnected(self, broker, mock_connection):
        assert broker.publish("relay/dev-1/status", b"{}") is False
        assert mock_connection.published_messages == []

    def test_publish_failure(self, broker, mock_connection):
        broker.connect()
        mock_connection.simulate_publish_failure = True
        assert broker.publish("relay/dev-1/status", b"{}") is False

    def test_poll_preserves_arrival_order(self, broker, mock_connection):
        broker.connect()
        broker.subscribe("relay/dev-1/command")
        mock_connection.simulate_message("relay/dev-1/command", b"1")
        mock_connection.simulate_message("relay/dev-1/command", b"2")
        assert broker.poll() == [
            InboundMessage("relay/dev-1/command", b"1"),
            InboundMessage("relay/dev-1/command", b"2"),
        ]
        assert broker.poll() == []

    def test_catch_all_messages_are_queued(self, broker, mock_connection):
        broker.connect()
        mock_connection._on_message(topic="relay/dev-1/command", payload=b"x", dup=False)
        assert broker.poll() == [InboundMessage("relay/dev-1/command", b"x")]
