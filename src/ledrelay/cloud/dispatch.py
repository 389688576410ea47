"""Publish canonical commands to a bridge and read back its status.

Used by the voice adapter's backend. Commands go to
``relay/{device_id}/command`` through the boto3 ``iot-data`` client; the
bridge publishes its outcome, retained, to ``relay/{device_id}/status``.
"""

import json
import logging
import time
from typing import Any, Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ledrelay.commands import COMMAND_TTL_SEC, CanonicalCommand, command_topic, status_topic
from ledrelay.errors import DispatchError

logger = logging.getLogger(__name__)


def publish_command(
    device_id: str,
    command: CanonicalCommand,
    iot_client,
    ttl: float = COMMAND_TTL_SEC,
    clock: Callable[[], float] = time.time,
) -> None:
    """Publish a command for the bridge that owns ``device_id``.

    Delivery is at-least-once (QoS 1). There is no acknowledgement beyond
    the broker accepting the message; outcomes arrive on the status topic.
    Commands without an expiry are stamped to expire ``ttl`` seconds from
    now, so a bridge that reconnects late drops them instead of applying a
    stale instruction.

    Args:
        device_id: Target device identity
        command: Command to relay
        iot_client: boto3 iot-data client
        ttl: Seconds the command stays valid
        clock: Epoch clock in seconds

    Raises:
        DispatchError: If the broker rejected the publish
    """
    if command.expires_at is None:
        command = command.with_expiry(clock(), ttl)

    topic = command_topic(device_id)
    logger.info(
        "Publishing command: topic=%s, action=%s, controller=%s, expiresAt=%s",
        topic,
        command.action.wire_name,
        command.controller_id,
        command.expires_at,
    )

    try:
        iot_client.publish(
            topic=topic,
            qos=1,
            payload=command.to_json().encode("utf-8"),
        )
    except (BotoCoreError, ClientError) as e:
        logger.error("Failed to publish command: %s", e)
        raise DispatchError(f"Failed to publish command: {e}") from e


def read_status(device_id: str, iot_client) -> Optional[dict[str, Any]]:
    """Read the newest status message the bridge published.

    Args:
        device_id: Device identity
        iot_client: boto3 iot-data client

    Returns:
        The status JSON object exactly as published, or None if there is none
    """
    topic = status_topic(device_id)
    try:
        response = iot_client.get_retained_message(topic=topic)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") == "ResourceNotFoundException":
            logger.info("No status retained on %s", topic)
        else:
            logger.error("Failed to read status: %s", e)
        return None
    except BotoCoreError as e:
        logger.error("Failed to read status: %s", e)
        return None

    try:
        status = json.loads(response["payload"])
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Unreadable status on %s: %s", topic, e)
        return None
    return status if isinstance(status, dict) else None
