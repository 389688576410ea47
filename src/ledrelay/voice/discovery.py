"""Alexa.Discovery: expose the lighting system and its scenes as endpoints."""

import logging
from typing import Any

from ledrelay.cloud.backend import RelayBackend
from ledrelay.cloud.models import Profile, Scene
from ledrelay.voice.envelopes import Directive

logger = logging.getLogger(__name__)

MAIN_ENDPOINT_ID = "relay-main"
SCENE_ENDPOINT_PREFIX = "scene-"
MANUFACTURER_NAME = "LED Relay"


def _interface(interface: str, supported: list[str] | None = None, **extra) -> dict[str, Any]:
    capability: dict[str, Any] = {
        "type": "AlexaInterface",
        "interface": interface,
        "version": "3",
    }
    if supported is not None:
        capability["properties"] = {
            "supported": [{"name": name} for name in supported],
            "proactivelyReported": False,
            "retrievable": True,
        }
    capability.update(extra)
    return capability


def main_endpoint(user_id: str, profile: Profile) -> dict[str, Any]:
    """Endpoint for the whole lighting system: power, brightness, health."""
    return {
        "endpointId": MAIN_ENDPOINT_ID,
        "manufacturerName": MANUFACTURER_NAME,
        "friendlyName": profile.property_name,
        "description": "Permanent outdoor LED lighting system",
        "displayCategories": ["LIGHT"],
        "cookie": {"userId": user_id, "type": "main"},
        "capabilities": [
            _interface("Alexa"),
            _interface("Alexa.PowerController", ["powerState"]),
            _interface("Alexa.BrightnessController", ["brightness"]),
            _interface("Alexa.EndpointHealth", ["connectivity"]),
        ],
    }


def scene_endpoint(user_id: str, scene: Scene) -> dict[str, Any]:
    """Endpoint for a scene: activation only."""
    return {
        "endpointId": f"{SCENE_ENDPOINT_PREFIX}{scene.id}",
        "manufacturerName": MANUFACTURER_NAME,
        "friendlyName": scene.name,
        "description": f"Lighting scene: {scene.name}",
        "displayCategories": ["SCENE_TRIGGER"],
        "cookie": {
            "userId": user_id,
            "type": "scene",
            "sceneId": scene.id,
            "sceneName": scene.name,
        },
        "capabilities": [
            _interface(
                "Alexa.SceneController",
                supportsDeactivation=False,
                proactivelyReported=False,
            ),
        ],
    }


def handle_discovery(directive: Directive, backend: RelayBackend) -> dict[str, Any]:
    """Handle Alexa.Discovery / Discover."""
    user_id = backend.resolve_identity(directive.token)
    profile = backend.get_profile(user_id)
    scenes = backend.get_scenes(user_id)

    endpoints = [main_endpoint(user_id, profile)]
    endpoints.extend(scene_endpoint(user_id, s) for s in scenes if not s.is_system)

    logger.info("Discovered %d endpoints for user %s", len(endpoints), user_id)
    return directive.respond(
        "Alexa.Discovery",
        "Discover.Response",
        endpoint_id=None,
        payload={"endpoints": endpoints},
    )
