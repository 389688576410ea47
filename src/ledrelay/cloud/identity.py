"""Resolve account-linking access tokens to user ids via Amazon Cognito."""

import logging

from botocore.exceptions import BotoCoreError, ClientError

from ledrelay.errors import AuthError, IdentityServiceError

logger = logging.getLogger(__name__)

# Cognito error codes meaning the token itself is bad
TOKEN_REJECTED_CODES = {"NotAuthorizedException", "UserNotFoundException"}


class CognitoIdentityResolver:
    """Maps a Cognito access token to the user's ``sub`` attribute."""

    def __init__(self, cognito_client):
        """
        Args:
            cognito_client: boto3 cognito-idp client
        """
        self._client = cognito_client

    def resolve(self, access_token: str) -> str:
        """Return the user id for an access token.

        Raises:
            AuthError: If the token is missing, invalid or expired
            IdentityServiceError: If Cognito failed to answer (outage,
                throttling, misconfiguration)
        """
        if not access_token:
            raise AuthError("Missing access token")

        try:
            response = self._client.get_user(AccessToken=access_token)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            message = e.response.get("Error", {}).get("Message", "")
            if code not in TOKEN_REJECTED_CODES:
                logger.error("Cognito lookup failed: %s %s", code, message)
                raise IdentityServiceError(f"Identity lookup failed: {code}") from e
            logger.warning("Access token rejected: %s %s", code, message)
            expired = code == "NotAuthorizedException" and "expired" in message.lower()
            raise AuthError("Invalid access token", expired=expired) from e
        except BotoCoreError as e:
            logger.error("Cognito lookup failed: %s", e)
            raise IdentityServiceError("Identity provider unavailable") from e

        for attribute in response.get("UserAttributes", []):
            if attribute.get("Name") == "sub":
                return attribute["Value"]
        return response["Username"]
