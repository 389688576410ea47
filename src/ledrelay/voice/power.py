"""Alexa.PowerController and Alexa.ReportState handlers."""

import logging
from typing import Any

from ledrelay.cloud.backend import RelayBackend
from ledrelay.commands import CanonicalCommand
from ledrelay.voice.discovery import MAIN_ENDPOINT_ID
from ledrelay.voice.envelopes import Directive, ErrorType, VoiceError, context_property

logger = logging.getLogger(__name__)

COMMAND_UNCERTAINTY_MS = 500
REPORT_UNCERTAINTY_MS = 1000


def to_percent(device_brightness: int) -> int:
    """Rescale 0-255 device brightness to Alexa's 0-100."""
    return round(device_brightness / 255 * 100)


def to_device_brightness(percent: int) -> int:
    """Rescale Alexa's 0-100 brightness to the device's 0-255."""
    return round(percent / 100 * 255)


def require_main_endpoint(directive: Directive) -> None:
    if directive.endpoint_id != MAIN_ENDPOINT_ID:
        raise VoiceError(
            ErrorType.NO_SUCH_ENDPOINT, f"Unknown endpoint: {directive.endpoint_id}"
        )


def handle_power(directive: Directive, backend: RelayBackend, controller_id: str) -> dict[str, Any]:
    """Handle TurnOn / TurnOff."""
    require_main_endpoint(directive)
    user_id = backend.resolve_identity(directive.token)
    turn_on = directive.name == "TurnOn"

    logger.info("Power request: %s for endpoint %s", directive.name, directive.endpoint_id)
    backend.dispatch_command(user_id, CanonicalCommand.set_state({"on": turn_on}, controller_id))

    return directive.respond(
        "Alexa",
        "Response",
        properties=[
            context_property(
                "Alexa.PowerController",
                "powerState",
                "ON" if turn_on else "OFF",
                COMMAND_UNCERTAINTY_MS,
            ),
        ],
    )


def handle_report_state(directive: Directive, backend: RelayBackend) -> dict[str, Any]:
    """Handle Alexa / ReportState from the last known state (no device round-trip)."""
    require_main_endpoint(directive)
    user_id = backend.resolve_identity(directive.token)
    profile = backend.get_profile(user_id)

    logger.info("Report state request for endpoint %s", directive.endpoint_id)
    return directive.respond(
        "Alexa",
        "StateReport",
        properties=[
            context_property(
                "Alexa.PowerController",
                "powerState",
                "ON" if profile.is_on else "OFF",
                REPORT_UNCERTAINTY_MS,
            ),
            context_property(
                "Alexa.BrightnessController",
                "brightness",
                to_percent(profile.brightness),
                REPORT_UNCERTAINTY_MS,
            ),
            context_property(
                "Alexa.EndpointHealth",
                "connectivity",
                {"value": "OK" if profile.online else "UNREACHABLE"},
                REPORT_UNCERTAINTY_MS,
            ),
        ],
    )
