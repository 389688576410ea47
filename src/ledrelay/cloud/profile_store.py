"""DynamoDB-backed profile and scene store.

Single table layout (partition key ``user_id``, sort key ``record``):

    PROFILE         property_name, device_id, last_known_state
    SCENE#<id>      scene_id, name, type, wled_payload | brightness, effect_id
    COMMAND#<ts>    outbound command log, see command_log.py
    INTEGRATION#<n> is_linked, unlinked_at for a linked voice platform
"""

import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from ledrelay.cloud.models import Profile, Scene
from ledrelay.errors import ProfileStoreError

logger = logging.getLogger(__name__)

DEFAULT_TABLE_NAME = "ledrelay-users"
DEFAULT_REGION = "eu-central-1"
PROFILE_RECORD = "PROFILE"
SCENE_PREFIX = "SCENE#"
INTEGRATION_PREFIX = "INTEGRATION#"


def from_dynamo(value: Any) -> Any:
    """Convert DynamoDB Decimals back to ints/floats, recursively."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    return value


def to_dynamo(value: Any) -> Any:
    """Convert floats to Decimals so boto3 can serialize them, recursively."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_dynamo(v) for v in value]
    return value


def get_table(table_name: str | None = None, region: str | None = None):
    """Create the DynamoDB Table resource from arguments or environment."""
    table_name = table_name or os.environ.get("RELAY_TABLE_NAME", DEFAULT_TABLE_NAME)
    region = region or os.environ.get("AWS_DEFAULT_REGION", DEFAULT_REGION)
    session = boto3.Session(region_name=region)
    return session.resource("dynamodb").Table(table_name)


class DynamoProfileStore:
    """Reads profiles and scenes for the voice adapter."""

    def __init__(self, table) -> None:
        self._table = table

    def get_profile(self, user_id: str) -> Profile:
        """Fetch a user's profile; users without one get the default profile."""
        try:
            response = self._table.get_item(
                Key={"user_id": user_id, "record": PROFILE_RECORD}
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Profile lookup failed for %s: %s", user_id, exc)
            raise ProfileStoreError("Unable to load profile") from exc

        item = response.get("Item")
        if item is None:
            logger.info("No profile stored for %s, using defaults", user_id)
            return Profile(user_id=user_id)
        return Profile.from_item(user_id, from_dynamo(item))

    def get_scenes(self, user_id: str) -> list[Scene]:
        """Fetch all scenes for a user, in sort-key order."""
        scenes = []
        kwargs = {
            "KeyConditionExpression": Key("user_id").eq(user_id)
            & Key("record").begins_with(SCENE_PREFIX)
        }
        try:
            while True:
                response = self._table.query(**kwargs)
                for item in response.get("Items", []):
                    try:
                        scenes.append(Scene.from_item(from_dynamo(item)))
                    except KeyError:
                        logger.warning("Skipping scene without id: %s", item.get("record"))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as exc:
            logger.error("Scene lookup failed for %s: %s", user_id, exc)
            raise ProfileStoreError("Unable to load scenes") from exc
        return scenes

    def get_scene(self, user_id: str, scene_id: str) -> Scene | None:
        """Fetch one scene, or None if it does not exist."""
        try:
            response = self._table.get_item(
                Key={"user_id": user_id, "record": f"{SCENE_PREFIX}{scene_id}"}
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Scene lookup failed for %s/%s: %s", user_id, scene_id, exc)
            raise ProfileStoreError("Unable to load scene") from exc

        item = response.get("Item")
        if item is None:
            return None
        item = from_dynamo(item)
        item.setdefault("scene_id", scene_id)
        return Scene.from_item(item)

    def mark_unlinked(self, user_id: str, integration: str) -> None:
        """Record that the user unlinked a voice platform from their account."""
        try:
            self._table.put_item(
                Item={
                    "user_id": user_id,
                    "record": f"{INTEGRATION_PREFIX}{integration}",
                    "is_linked": False,
                    "unlinked_at": datetime.now(timezone.utc).isoformat(),
                }
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("Unlink of %s failed for %s: %s", integration, user_id, exc)
            raise ProfileStoreError("Unable to record unlink") from exc
