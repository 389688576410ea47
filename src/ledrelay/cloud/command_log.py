"""DynamoDB log of outbound canonical commands."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from ledrelay.cloud.profile_store import to_dynamo
from ledrelay.commands import CanonicalCommand

logger = logging.getLogger(__name__)

COMMAND_PREFIX = "COMMAND#"
TTL_DAYS = 30


class DynamoCommandLog:
    """Fire-and-forget logger that records every dispatched command.

    Writes into the profile table under ``COMMAND#<timestamp>`` sort keys.
    After any write failure, sets ``_disabled`` to avoid retrying.
    """

    def __init__(self, table) -> None:
        self._table = table
        self._disabled = False

    def record(
        self,
        user_id: str,
        device_id: Optional[str],
        command: CanonicalCommand,
        source: str = "alexa",
    ) -> None:
        """Record an outbound command.

        Failures are logged as warnings and never propagate to the caller.

        Args:
            user_id: Owner of the device.
            device_id: Target bridge's device identity.
            command: The command being dispatched.
            source: Which surface issued the command.
        """
        if self._disabled:
            return

        try:
            now = datetime.now(timezone.utc)
            item = {
                "user_id": user_id,
                "record": f"{COMMAND_PREFIX}{now.isoformat(timespec='microseconds')}",
                "device_id": device_id or "",
                "action": command.action.wire_name,
                "controller_id": command.controller_id,
                "payload": to_dynamo(command.payload),
                "status": "pending",
                "source": source,
                "created_at": now.isoformat(),
                "ttl": int((now + timedelta(days=TTL_DAYS)).timestamp()),
            }
            self._table.put_item(Item=item)
        except (BotoCoreError, ClientError, Exception) as exc:
            logger.warning("Command logging failed, disabling logger: %s", exc)
            self._disabled = True
