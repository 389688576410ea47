"""Lambda entry point for the Google Home smart-home fulfillment.

Serves the SYNC, QUERY, EXECUTE and DISCONNECT intents behind an API Gateway
proxy integration. Devices mirror the Alexa endpoints: ``relay-main`` is the
lighting system, ``scene-{id}`` are the user's scenes. Commands go through the
same backend, so Google and Alexa produce identical canonical commands.

Environment variables:
    RELAY_TABLE_NAME: Profile table (default: ledrelay-users)
    RELAY_CONTROLLER_ID: Controller addressed by voice commands (default: primary)
    AWS_DEFAULT_REGION: AWS region (default: eu-central-1)
"""

import base64
import json
import logging
import os
from typing import Any, Optional

from ledrelay.cloud.backend import AwsRelayBackend, RelayBackend
from ledrelay.commands import DEFAULT_CONTROLLER_ID, CanonicalCommand
from ledrelay.errors import AuthError, DispatchError, IdentityServiceError, ProfileStoreError
from ledrelay.voice.discovery import MAIN_ENDPOINT_ID, MANUFACTURER_NAME, SCENE_ENDPOINT_PREFIX
from ledrelay.voice.power import to_device_brightness, to_percent

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

CONTROLLER_ID = os.environ.get("RELAY_CONTROLLER_ID", DEFAULT_CONTROLLER_ID)
INTEGRATION_NAME = "google_home"

SYNC = "action.devices.SYNC"
QUERY = "action.devices.QUERY"
EXECUTE = "action.devices.EXECUTE"
DISCONNECT = "action.devices.DISCONNECT"

ON_OFF = "action.devices.commands.OnOff"
BRIGHTNESS_ABSOLUTE = "action.devices.commands.BrightnessAbsolute"
ACTIVATE_SCENE = "action.devices.commands.ActivateScene"

# Lazily initialized, reused across warm Lambda invocations
backend: Optional[RelayBackend] = None


class ExecutionError(Exception):
    """A single EXECUTE command failed; ``code`` is the Google error code."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code


def get_backend() -> RelayBackend:
    """Get or initialize the AWS backend."""
    global backend
    if backend is None:
        backend = AwsRelayBackend.from_environment(source=INTEGRATION_NAME)
    return backend


def _http_response(status_code: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body),
    }


def bearer_token(headers: Optional[dict[str, str]]) -> str:
    """Extract the OAuth access token from the Authorization header."""
    for name, value in (headers or {}).items():
        if name.lower() == "authorization" and value:
            scheme, _, token = value.partition(" ")
            return token.strip() if scheme.lower() == "bearer" else ""
    return ""


# SYNC


def main_device(user_id: str, property_name: str) -> dict[str, Any]:
    return {
        "id": MAIN_ENDPOINT_ID,
        "type": "action.devices.types.LIGHT",
        "traits": ["action.devices.traits.OnOff", "action.devices.traits.Brightness"],
        "name": {
            "name": property_name,
            "defaultNames": ["House Lights"],
            "nicknames": [property_name, "house lights", "LED lights"],
        },
        # No HomeGraph state reporting; Google queries instead
        "willReportState": False,
        "roomHint": "Outside",
        "deviceInfo": {"manufacturer": MANUFACTURER_NAME, "model": "LED Controller"},
        "customData": {"userId": user_id, "type": "main"},
    }


def scene_device(user_id: str, scene) -> dict[str, Any]:
    return {
        "id": f"{SCENE_ENDPOINT_PREFIX}{scene.id}",
        "type": "action.devices.types.SCENE",
        "traits": ["action.devices.traits.Scene"],
        "name": {
            "name": scene.name,
            "defaultNames": [scene.name],
            "nicknames": [scene.name.lower()],
        },
        "willReportState": False,
        "attributes": {"sceneReversible": False},
        "customData": {
            "userId": user_id,
            "type": "scene",
            "sceneId": scene.id,
            "sceneName": scene.name,
        },
    }


def handle_sync(user_id: str, payload: dict[str, Any], backend: RelayBackend) -> dict[str, Any]:
    profile = backend.get_profile(user_id)
    scenes = backend.get_scenes(user_id)

    devices = [main_device(user_id, profile.property_name)]
    devices.extend(scene_device(user_id, s) for s in scenes if not s.is_system)

    logger.info("SYNC returning %d devices for user %s", len(devices), user_id)
    return {"agentUserId": user_id, "devices": devices}


# QUERY


def handle_query(user_id: str, payload: dict[str, Any], backend: RelayBackend) -> dict[str, Any]:
    """Report last known state; any lookup failure reports every device offline."""
    device_ids = [d.get("id") for d in payload.get("devices", [])]
    states: dict[str, Any] = {}

    try:
        profile = backend.get_profile(user_id)
    except ProfileStoreError as e:
        logger.error("QUERY failed for user %s: %s", user_id, e)
        offline = {"online": False, "status": "ERROR", "errorCode": "deviceOffline"}
        return {"devices": {device_id: dict(offline) for device_id in device_ids}}

    for device_id in device_ids:
        if device_id == MAIN_ENDPOINT_ID:
            states[device_id] = {
                "online": profile.online,
                "on": profile.is_on,
                "brightness": to_percent(profile.brightness),
                "status": "SUCCESS",
            }
        elif device_id and device_id.startswith(SCENE_ENDPOINT_PREFIX):
            states[device_id] = {"online": True, "status": "SUCCESS"}
        else:
            states[device_id] = {"online": False, "status": "ERROR", "errorCode": "deviceNotFound"}
    return {"devices": states}


# EXECUTE


def _require_main_device(device: dict[str, Any]) -> None:
    if device.get("id") != MAIN_ENDPOINT_ID:
        raise ExecutionError("deviceNotFound", f"Unknown device: {device.get('id')}")


def _scene_id(device: dict[str, Any]) -> str:
    scene_id = (device.get("customData") or {}).get("sceneId")
    if scene_id:
        return str(scene_id)
    device_id = device.get("id") or ""
    if not device_id.startswith(SCENE_ENDPOINT_PREFIX):
        raise ExecutionError("deviceNotFound", f"Unknown device: {device_id}")
    return device_id[len(SCENE_ENDPOINT_PREFIX):]


def execute_command(
    user_id: str, device: dict[str, Any], execution: dict[str, Any], backend: RelayBackend
) -> dict[str, Any]:
    """Relay one execution to the bridge and return the expected new state.

    Raises:
        ExecutionError: With the Google error code to report for the device
    """
    command = execution.get("command")
    params = execution.get("params") or {}

    if command == ON_OFF:
        _require_main_device(device)
        turn_on = params.get("on")
        if not isinstance(turn_on, bool):
            raise ExecutionError("functionNotSupported", "OnOff needs a boolean 'on'")
        payload = {"on": turn_on}
        new_state = {"on": turn_on, "online": True}

    elif command == BRIGHTNESS_ABSOLUTE:
        _require_main_device(device)
        percent = params.get("brightness")
        if isinstance(percent, bool) or not isinstance(percent, int) or not 0 <= percent <= 100:
            raise ExecutionError("valueOutOfRange", f"Brightness out of range: {percent}")
        payload = {"on": True, "bri": to_device_brightness(percent)}
        new_state = {"on": True, "brightness": percent, "online": True}

    elif command == ACTIVATE_SCENE:
        if params.get("deactivate"):
            raise ExecutionError("actionNotAvailable", "Scenes cannot be deactivated")
        scene = backend.get_scene(user_id, _scene_id(device))
        if scene is None:
            raise ExecutionError("deviceNotFound", "Scene not found")
        payload = scene.to_payload()
        new_state = {"online": True}

    else:
        raise ExecutionError("notSupported", f"Unsupported command: {command}")

    try:
        backend.dispatch_command(user_id, CanonicalCommand.set_state(payload, CONTROLLER_ID))
    except DispatchError as e:
        raise ExecutionError("hardError", str(e)) from e
    return new_state


def handle_execute(user_id: str, payload: dict[str, Any], backend: RelayBackend) -> dict[str, Any]:
    """Run every execution on every targeted device; one result per pair."""
    results = []
    for command in payload.get("commands", []):
        for device in command.get("devices", []):
            for execution in command.get("execution", []):
                device_id = device.get("id")
                try:
                    states = execute_command(user_id, device, execution, backend)
                except ExecutionError as e:
                    logger.warning(
                        "EXECUTE %s on %s failed: %s", execution.get("command"), device_id, e
                    )
                    results.append({"ids": [device_id], "status": "ERROR", "errorCode": e.code})
                except ProfileStoreError as e:
                    logger.error("EXECUTE scene lookup failed on %s: %s", device_id, e)
                    results.append({"ids": [device_id], "status": "ERROR", "errorCode": "hardError"})
                else:
                    logger.info("EXECUTE %s on %s", execution.get("command"), device_id)
                    results.append({"ids": [device_id], "status": "SUCCESS", "states": states})
    return {"commands": results}


# DISCONNECT


def handle_disconnect(user_id: str, payload: dict[str, Any], backend: RelayBackend) -> dict[str, Any]:
    backend.unlink_integration(user_id, INTEGRATION_NAME)
    logger.info("Google Home unlinked for user %s", user_id)
    return {}


INTENTS = {
    SYNC: handle_sync,
    QUERY: handle_query,
    EXECUTE: handle_execute,
    DISCONNECT: handle_disconnect,
}


def handle_request(body: dict[str, Any], token: str, backend: RelayBackend) -> dict[str, Any]:
    """Handle a decoded fulfillment request.

    Returns:
        The fulfillment response; for DISCONNECT an empty object

    Raises:
        AuthError: If the token does not resolve to a user
    """
    request_id = body.get("requestId")
    inputs = body.get("inputs") or [{}]
    intent = inputs[0].get("intent")
    payload = inputs[0].get("payload") or {}

    handler = INTENTS.get(intent)
    if handler is None:
        logger.warning("Unsupported intent: %s", intent)
        return {"requestId": request_id, "payload": {"errorCode": "notSupported"}}

    user_id = backend.resolve_identity(token)
    logger.info("%s request for user %s", intent, user_id)
    result = handler(user_id, payload, backend)
    if intent == DISCONNECT:
        return result
    return {"requestId": request_id, "payload": result}


def fulfillment_handler(event, context):  # noqa: ARG001
    """Main Lambda handler for Google Home fulfillment requests.

    Args:
        event: API Gateway proxy event carrying the fulfillment request
        context: Lambda context (unused)

    Returns:
        API Gateway proxy response
    """
    body = event.get("body") or "{}"
    try:
        if event.get("isBase64Encoded"):
            body = base64.b64decode(body).decode("utf-8")
        request = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        logger.warning("Rejected fulfillment request with invalid JSON")
        return _http_response(400, {"error": "Invalid JSON format."})
    if not isinstance(request, dict):
        return _http_response(400, {"error": "Unrecognized request format."})

    token = bearer_token(event.get("headers"))
    try:
        return _http_response(200, handle_request(request, token, get_backend()))
    except AuthError as e:
        logger.warning("Authorization failed: %s", e)
        return _http_response(401, {"error": "Invalid access token."})
    except (IdentityServiceError, ProfileStoreError) as e:
        logger.error("Fulfillment request failed: %s", e)
        return _http_response(500, {"error": "Internal server error."})
    except Exception:
        logger.exception("Unexpected error handling fulfillment request")
        return _http_response(500, {"error": "Internal server error."})
