"""Alexa.SceneController: activate and deactivate stored scenes."""

import logging
from typing import Any

from ledrelay.cloud.backend import RelayBackend
from ledrelay.commands import CanonicalCommand
from ledrelay.voice.discovery import SCENE_ENDPOINT_PREFIX
from ledrelay.voice.envelopes import Directive, ErrorType, VoiceError, utc_timestamp

logger = logging.getLogger(__name__)


def scene_id_from_endpoint(endpoint_id: str | None) -> str:
    """Extract the scene id from a ``scene-{sceneId}`` endpoint id."""
    if not endpoint_id or not endpoint_id.startswith(SCENE_ENDPOINT_PREFIX):
        raise VoiceError(ErrorType.NO_SUCH_ENDPOINT, f"Unknown endpoint: {endpoint_id}")
    return endpoint_id[len(SCENE_ENDPOINT_PREFIX):]


def _started(directive: Directive, name: str) -> dict[str, Any]:
    return directive.respond(
        "Alexa.SceneController",
        name,
        payload={
            "cause": {"type": "VOICE_INTERACTION"},
            "timestamp": utc_timestamp(),
        },
    )


def handle_activate_scene(
    directive: Directive, backend: RelayBackend, controller_id: str
) -> dict[str, Any]:
    """Handle SceneController / Activate."""
    scene_id = scene_id_from_endpoint(directive.endpoint_id)
    user_id = backend.resolve_identity(directive.token)

    scene = backend.get_scene(user_id, scene_id)
    if scene is None:
        logger.warning("Scene not found: %s", scene_id)
        raise VoiceError(ErrorType.NO_SUCH_ENDPOINT, "Scene not found")

    backend.dispatch_command(
        user_id, CanonicalCommand.set_state(scene.to_payload(), controller_id)
    )
    logger.info('Scene "%s" activated', scene.name)
    return _started(directive, "ActivationStarted")


def handle_deactivate_scene(
    directive: Directive, backend: RelayBackend, controller_id: str
) -> dict[str, Any]:
    """Handle SceneController / Deactivate by turning the lights off."""
    scene_id_from_endpoint(directive.endpoint_id)
    user_id = backend.resolve_identity(directive.token)

    backend.dispatch_command(user_id, CanonicalCommand.set_state({"on": False}, controller_id))
    logger.info("Scene endpoint %s deactivated", directive.endpoint_id)
    return _started(directive, "DeactivationStarted")
