"""Alexa.BrightnessController: SetBrightness and AdjustBrightness."""

import logging
from typing import Any

from ledrelay.cloud.backend import RelayBackend
from ledrelay.commands import CanonicalCommand
from ledrelay.voice.envelopes import Directive, ErrorType, VoiceError, context_property
from ledrelay.voice.power import (
    COMMAND_UNCERTAINTY_MS,
    require_main_endpoint,
    to_device_brightness,
    to_percent,
)

logger = logging.getLogger(__name__)


def _read_int(payload: dict[str, Any], key: str, low: int, high: int) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise VoiceError(ErrorType.INVALID_VALUE, f"{key} must be a number")
    if not low <= value <= high:
        raise VoiceError(ErrorType.INVALID_VALUE, f"{key} must be between {low} and {high}")
    return int(value)


def _apply(
    directive: Directive, backend: RelayBackend, user_id: str, percent: int, controller_id: str
) -> dict[str, Any]:
    command = CanonicalCommand.set_state(
        {"on": True, "bri": to_device_brightness(percent)}, controller_id
    )
    backend.dispatch_command(user_id, command)

    return directive.respond(
        "Alexa",
        "Response",
        properties=[
            context_property(
                "Alexa.BrightnessController", "brightness", percent, COMMAND_UNCERTAINTY_MS
            ),
            context_property(
                "Alexa.PowerController", "powerState", "ON", COMMAND_UNCERTAINTY_MS
            ),
        ],
    )


def handle_set_brightness(
    directive: Directive, backend: RelayBackend, controller_id: str
) -> dict[str, Any]:
    """Set brightness to an absolute percentage (0-100)."""
    require_main_endpoint(directive)
    percent = _read_int(directive.payload, "brightness", 0, 100)
    user_id = backend.resolve_identity(directive.token)

    logger.info("SetBrightness request: %d%% for endpoint %s", percent, directive.endpoint_id)
    return _apply(directive, backend, user_id, percent, controller_id)


def handle_adjust_brightness(
    directive: Directive, backend: RelayBackend, controller_id: str
) -> dict[str, Any]:
    """Adjust brightness by a relative percentage (-100 to 100)."""
    require_main_endpoint(directive)
    delta = _read_int(directive.payload, "brightnessDelta", -100, 100)
    user_id = backend.resolve_identity(directive.token)

    current = to_percent(backend.get_profile(user_id).brightness)
    percent = max(0, min(100, current + delta))

    logger.info(
        "AdjustBrightness request: %+d%% (%d%% -> %d%%) for endpoint %s",
        delta,
        current,
        percent,
        directive.endpoint_id,
    )
    return _apply(directive, backend, user_id, percent, controller_id)
