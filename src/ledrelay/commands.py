"""Canonical command model shared by the cloud dispatcher and the bridge.

A canonical command is the broker-agnostic JSON instruction relayed to a
bridge agent:

    {"action": "setState", "payload": {"on": true}, "controllerId": "primary",
     "expiresAt": 1735689600000}

``expiresAt`` (epoch milliseconds) is optional. The cloud stamps it on every
command it publishes; bridges refuse commands received after that instant so
a command replayed from a persistent session after an outage is not applied
late.

The action set is closed. Unknown action strings fall back to ``setState``
(the device gateway treats any JSON state body as a partial update), but the
fallback is recorded on the parsed command so callers can log it.
"""

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Union

DEFAULT_CONTROLLER_ID = "primary"
TOPIC_PREFIX = "relay"
# Lifetime the cloud gives a command before bridges refuse it
COMMAND_TTL_SEC = 60


class Action(Enum):
    """Closed set of bridge actions mapped to device gateway calls."""

    GET_STATE = ("getState", "GET", "/state")
    GET_INFO = ("getInfo", "GET", "/info")
    SET_STATE = ("setState", "POST", "/state")
    SET_CONFIG = ("setConfig", "POST", "/cfg")

    def __init__(self, wire_name: str, method: str, path: str):
        self.wire_name = wire_name
        self.method = method
        self.path = path

    @property
    def has_body(self) -> bool:
        return self.method == "POST"


_ACTIONS_BY_NAME = {action.wire_name: action for action in Action}
# Names used by the mobile app's command documents
_ACTIONS_BY_NAME["applyJson"] = Action.SET_STATE
_ACTIONS_BY_NAME["applyConfig"] = Action.SET_CONFIG


class CommandParseError(ValueError):
    """Command message is not a well-formed canonical command."""


@dataclass
class CanonicalCommand:
    """A single instruction for one controller behind a bridge."""

    action: Action
    payload: dict[str, Any] = field(default_factory=dict)
    controller_id: str = DEFAULT_CONTROLLER_ID
    raw_action: Optional[str] = None
    expires_at: Optional[int] = None

    def is_expired(self, now: float) -> bool:
        """True when ``now`` (epoch seconds) is past the command's expiry."""
        return self.expires_at is not None and now * 1000 > self.expires_at

    def with_expiry(self, now: float, ttl: float = COMMAND_TTL_SEC) -> "CanonicalCommand":
        """Copy of this command expiring ``ttl`` seconds after ``now``."""
        return replace(self, expires_at=int((now + ttl) * 1000))

    @property
    def is_fallback(self) -> bool:
        """True when an unrecognized action string was mapped to setState."""
        return self.raw_action is not None and self.raw_action not in _ACTIONS_BY_NAME

    @property
    def action_name(self) -> str:
        return self.raw_action or self.action.wire_name

    def to_dict(self) -> dict[str, Any]:
        data = {
            "action": self.action.wire_name,
            "payload": self.payload,
            "controllerId": self.controller_id,
        }
        if self.expires_at is not None:
            data["expiresAt"] = self.expires_at
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def set_state(
        cls, payload: dict[str, Any], controller_id: str = DEFAULT_CONTROLLER_ID
    ) -> "CanonicalCommand":
        return cls(Action.SET_STATE, payload, controller_id)


def parse_action(name: Optional[str]) -> Action:
    """Map an action string to an Action, defaulting to SET_STATE."""
    if name is None:
        return Action.SET_STATE
    return _ACTIONS_BY_NAME.get(name, Action.SET_STATE)


def parse_command(body: Union[bytes, str]) -> CanonicalCommand:
    """Parse a command message body.

    Args:
        body: Raw MQTT payload

    Returns:
        The parsed CanonicalCommand

    Raises:
        CommandParseError: If the body is not JSON or has the wrong shape
    """
    try:
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CommandParseError("JSON parse error") from e

    if not isinstance(data, dict):
        raise CommandParseError("Command must be a JSON object")

    raw_action = data.get("action")
    if raw_action is not None and not isinstance(raw_action, str):
        raise CommandParseError("action must be a string")

    payload = data.get("payload")
    if payload is None:
        payload = {}
    elif not isinstance(payload, dict):
        raise CommandParseError("payload must be a JSON object")

    controller_id = data.get("controllerId", DEFAULT_CONTROLLER_ID)
    if not isinstance(controller_id, str):
        raise CommandParseError("controllerId must be a string")

    expires_at = data.get("expiresAt")
    if expires_at is not None:
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            raise CommandParseError("expiresAt must be epoch milliseconds")
        expires_at = int(expires_at)

    return CanonicalCommand(
        action=parse_action(raw_action),
        payload=payload,
        controller_id=controller_id,
        raw_action=raw_action,
        expires_at=expires_at,
    )


def command_topic(device_id: str) -> str:
    return f"{TOPIC_PREFIX}/{device_id}/command"


def status_topic(device_id: str) -> str:
    return f"{TOPIC_PREFIX}/{device_id}/status"
