"""Identity, profile and dispatch services consumed by the voice adapter."""

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import boto3

from ledrelay.cloud.command_log import DynamoCommandLog
from ledrelay.cloud.dispatch import publish_command
from ledrelay.cloud.identity import CognitoIdentityResolver
from ledrelay.cloud.models import Profile, Scene
from ledrelay.cloud.profile_store import DEFAULT_REGION, DynamoProfileStore, get_table
from ledrelay.commands import CanonicalCommand
from ledrelay.errors import DispatchError

logger = logging.getLogger(__name__)


class RelayBackend(ABC):
    """Everything a directive handler may ask of the cloud side.

    Implementations must be safe to share across invocations; they hold no
    per-request state.
    """

    @abstractmethod
    def resolve_identity(self, access_token: str) -> str:
        """Return the user id for an access token.

        Raises:
            AuthError: If the token is missing, invalid or expired
            IdentityServiceError: If the identity provider failed to answer
        """

    @abstractmethod
    def get_profile(self, user_id: str) -> Profile:
        """Return the user's profile, including the last known device state."""

    @abstractmethod
    def get_scenes(self, user_id: str) -> list[Scene]:
        """Return all of the user's scenes."""

    @abstractmethod
    def dispatch_command(self, user_id: str, command: CanonicalCommand) -> None:
        """Hand a command to the user's bridge.

        Raises:
            DispatchError: If the command could not be published
        """

    def get_scene(self, user_id: str, scene_id: str) -> Optional[Scene]:
        """Return one scene, or None if the user has no such scene."""
        for scene in self.get_scenes(user_id):
            if scene.id == scene_id:
                return scene
        return None

    def unlink_integration(self, user_id: str, integration: str) -> None:
        """Record that the user unlinked a voice platform. No-op by default."""
        logger.info("User %s unlinked %s", user_id, integration)


class AwsRelayBackend(RelayBackend):
    """Cognito for identity, DynamoDB for profiles, IoT Core for dispatch."""

    def __init__(
        self,
        identity: CognitoIdentityResolver,
        profiles: DynamoProfileStore,
        command_log: DynamoCommandLog,
        iot_client,
        source: str = "alexa",
    ):
        self._identity = identity
        self._profiles = profiles
        self._command_log = command_log
        self._iot_client = iot_client
        self._source = source

    @classmethod
    def from_environment(cls, source: str = "alexa") -> "AwsRelayBackend":
        """Build the backend from Lambda environment variables.

        Args:
            source: Surface name recorded on every logged command

        Environment variables:
            RELAY_TABLE_NAME: Profile table (default: ledrelay-users)
            AWS_DEFAULT_REGION: AWS region (default: eu-central-1)
        """
        region = os.environ.get("AWS_DEFAULT_REGION", DEFAULT_REGION)
        table = get_table(region=region)
        return cls(
            identity=CognitoIdentityResolver(boto3.client("cognito-idp", region_name=region)),
            profiles=DynamoProfileStore(table),
            command_log=DynamoCommandLog(table),
            iot_client=boto3.client("iot-data", region_name=region),
            source=source,
        )

    def resolve_identity(self, access_token: str) -> str:
        return self._identity.resolve(access_token)

    def get_profile(self, user_id: str) -> Profile:
        return self._profiles.get_profile(user_id)

    def get_scenes(self, user_id: str) -> list[Scene]:
        return self._profiles.get_scenes(user_id)

    def get_scene(self, user_id: str, scene_id: str) -> Optional[Scene]:
        return self._profiles.get_scene(user_id, scene_id)

    def unlink_integration(self, user_id: str, integration: str) -> None:
        self._profiles.mark_unlinked(user_id, integration)

    def dispatch_command(self, user_id: str, command: CanonicalCommand) -> None:
        profile = self._profiles.get_profile(user_id)
        if not profile.device_id:
            raise DispatchError(f"No device provisioned for user {user_id}")

        self._command_log.record(user_id, profile.device_id, command, source=self._source)
        publish_command(profile.device_id, command, self._iot_client)
