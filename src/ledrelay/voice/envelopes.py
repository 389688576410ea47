"""Alexa Smart Home v3 response envelopes.

Every response the adapter returns is built by ``build_event`` so the header
fields required by the certification checks are always present:

    {"event": {"header": {namespace, name, payloadVersion, messageId,
                          correlationToken?},
               "endpoint": {"endpointId": ...}?,
               "payload": {...}},
     "context": {"properties": [...]}?}
"""

import secrets
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

PAYLOAD_VERSION = "3"
_MESSAGE_ID_ALPHABET = string.ascii_lowercase + string.digits


class ErrorType(str, Enum):
    """Error types from the Alexa.ErrorResponse vocabulary."""

    NO_SUCH_ENDPOINT = "NO_SUCH_ENDPOINT"
    INVALID_AUTHORIZATION_CREDENTIAL = "INVALID_AUTHORIZATION_CREDENTIAL"
    EXPIRED_AUTHORIZATION_CREDENTIAL = "EXPIRED_AUTHORIZATION_CREDENTIAL"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_DIRECTIVE = "INVALID_DIRECTIVE"
    INVALID_VALUE = "INVALID_VALUE"


class VoiceError(Exception):
    """Raised by directive handlers to answer with an ErrorResponse."""

    def __init__(self, error_type: ErrorType, message: str):
        super().__init__(message)
        self.error_type = error_type
        self.message = message


def new_message_id() -> str:
    """Time-prefixed, randomly-suffixed id, unique per response."""
    suffix = "".join(secrets.choice(_MESSAGE_ID_ALPHABET) for _ in range(9))
    return f"msg-{int(time.time() * 1000)}-{suffix}"


def utc_timestamp() -> str:
    """ISO 8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def context_property(
    namespace: str, name: str, value: Any, uncertainty_ms: int
) -> dict[str, Any]:
    return {
        "namespace": namespace,
        "name": name,
        "value": value,
        "timeOfSample": utc_timestamp(),
        "uncertaintyInMilliseconds": uncertainty_ms,
    }


def build_event(
    namespace: str,
    name: str,
    payload: Optional[dict[str, Any]] = None,
    correlation_token: Optional[str] = None,
    endpoint_id: Optional[str] = None,
    properties: Optional[list[dict[str, Any]]] = None,
) -> dict[str, Any]:
    """Build a response envelope.

    Args:
        namespace: Response namespace, e.g. "Alexa" or "Alexa.SceneController"
        name: Response name, e.g. "Response" or "ActivationStarted"
        payload: Event payload (empty object when omitted)
        correlation_token: Token from the inbound directive header, if any
        endpoint_id: Endpoint the response is scoped to, if any
        properties: Context properties reporting endpoint state

    Returns:
        The envelope dict
    """
    header = {
        "namespace": namespace,
        "name": name,
        "payloadVersion": PAYLOAD_VERSION,
        "messageId": new_message_id(),
    }
    if correlation_token:
        header["correlationToken"] = correlation_token

    event: dict[str, Any] = {"header": header}
    if endpoint_id is not None:
        event["endpoint"] = {"endpointId": endpoint_id}
    event["payload"] = payload if payload is not None else {}

    envelope: dict[str, Any] = {"event": event}
    if properties is not None:
        envelope["context"] = {"properties": properties}
    return envelope


def build_error(
    error_type: ErrorType,
    message: str,
    correlation_token: Optional[str] = None,
    endpoint_id: Optional[str] = None,
) -> dict[str, Any]:
    """Build an Alexa.ErrorResponse envelope."""
    return build_event(
        "Alexa",
        "ErrorResponse",
        payload={"type": ErrorType(error_type).value, "message": message},
        correlation_token=correlation_token,
        endpoint_id=endpoint_id,
    )


class Directive:
    """Read-only view over an inbound directive."""

    def __init__(self, event: dict[str, Any]):
        self._directive = (event.get("directive") if isinstance(event, dict) else None) or {}
        self._header = self._directive.get("header") or {}
        self._endpoint = self._directive.get("endpoint") or {}

    @property
    def namespace(self) -> str:
        return self._header.get("namespace", "")

    @property
    def name(self) -> str:
        return self._header.get("name", "")

    @property
    def correlation_token(self) -> Optional[str]:
        return self._header.get("correlationToken")

    @property
    def endpoint_id(self) -> Optional[str]:
        return self._endpoint.get("endpointId")

    @property
    def payload(self) -> dict[str, Any]:
        return self._directive.get("payload") or {}

    @property
    def token(self) -> str:
        """Bearer token from the endpoint scope, or the payload scope for discovery."""
        scope = self._endpoint.get("scope") or self.payload.get("scope") or {}
        return scope.get("token", "")

    def respond(self, namespace: str, name: str, **kwargs) -> dict[str, Any]:
        """Build a response correlated to this directive."""
        kwargs.setdefault("endpoint_id", self.endpoint_id)
        return build_event(
            namespace, name, correlation_token=self.correlation_token, **kwargs
        )

    def error(self, error_type: ErrorType, message: str) -> dict[str, Any]:
        """Build an error response correlated to this directive."""
        return build_error(
            error_type,
            message,
            correlation_token=self.correlation_token,
            endpoint_id=self.endpoint_id,
        )
