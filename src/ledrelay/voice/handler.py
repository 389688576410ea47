"""Lambda entry point for the Alexa Smart Home skill.

Routes each directive to its handler and turns every failure into an
Alexa.ErrorResponse. Commands are relayed to the user's bridge through the
command broker; nothing waits for the device to apply them.

Environment variables:
    RELAY_TABLE_NAME: Profile table (default: ledrelay-users)
    RELAY_CONTROLLER_ID: Controller addressed by voice commands (default: primary)
    AWS_DEFAULT_REGION: AWS region (default: eu-central-1)
"""

import json
import logging
import os
from typing import Any, Callable, Optional

from ledrelay.cloud.backend import AwsRelayBackend, RelayBackend
from ledrelay.commands import DEFAULT_CONTROLLER_ID
from ledrelay.errors import AuthError, DispatchError, IdentityServiceError, ProfileStoreError
from ledrelay.voice.authorization import handle_accept_grant
from ledrelay.voice.brightness import handle_adjust_brightness, handle_set_brightness
from ledrelay.voice.discovery import handle_discovery
from ledrelay.voice.envelopes import Directive, ErrorType, VoiceError
from ledrelay.voice.power import handle_power, handle_report_state
from ledrelay.voice.scenes import handle_activate_scene, handle_deactivate_scene

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

CONTROLLER_ID = os.environ.get("RELAY_CONTROLLER_ID", DEFAULT_CONTROLLER_ID)

# Lazily initialized, reused across warm Lambda invocations
backend: Optional[RelayBackend] = None

Handler = Callable[[Directive, RelayBackend], dict[str, Any]]

ROUTES: dict[tuple[str, str], Handler] = {
    ("Alexa.Discovery", "Discover"): handle_discovery,
    ("Alexa.PowerController", "TurnOn"): lambda d, b: handle_power(d, b, CONTROLLER_ID),
    ("Alexa.PowerController", "TurnOff"): lambda d, b: handle_power(d, b, CONTROLLER_ID),
    ("Alexa.BrightnessController", "SetBrightness"): (
        lambda d, b: handle_set_brightness(d, b, CONTROLLER_ID)
    ),
    ("Alexa.BrightnessController", "AdjustBrightness"): (
        lambda d, b: handle_adjust_brightness(d, b, CONTROLLER_ID)
    ),
    ("Alexa.SceneController", "Activate"): (
        lambda d, b: handle_activate_scene(d, b, CONTROLLER_ID)
    ),
    ("Alexa.SceneController", "Deactivate"): (
        lambda d, b: handle_deactivate_scene(d, b, CONTROLLER_ID)
    ),
    ("Alexa", "ReportState"): handle_report_state,
    ("Alexa.Authorization", "AcceptGrant"): lambda d, b: handle_accept_grant(d),
}


def get_backend() -> RelayBackend:
    """Get or initialize the AWS backend."""
    global backend
    if backend is None:
        backend = AwsRelayBackend.from_environment()
    return backend


def lambda_handler(event, context):  # noqa: ARG001
    """Main Lambda handler for Alexa Smart Home directives.

    Args:
        event: Alexa directive envelope ({"directive": {...}})
        context: Lambda context (unused)

    Returns:
        JSON-serializable response or error envelope
    """
    directive = Directive(event)
    logger.info("Processing: %s.%s", directive.namespace, directive.name)
    logger.debug("Directive: %s", json.dumps(event))

    route = ROUTES.get((directive.namespace, directive.name))
    if route is None:
        logger.warning("Unsupported directive: %s.%s", directive.namespace, directive.name)
        return directive.error(
            ErrorType.INVALID_DIRECTIVE,
            f"Unsupported directive: {directive.namespace}.{directive.name}",
        )

    try:
        return route(directive, get_backend())
    except VoiceError as e:
        return directive.error(e.error_type, e.message)
    except AuthError as e:
        logger.warning("Authorization failed: %s", e)
        error_type = (
            ErrorType.EXPIRED_AUTHORIZATION_CREDENTIAL
            if e.expired
            else ErrorType.INVALID_AUTHORIZATION_CREDENTIAL
        )
        return directive.error(error_type, str(e))
    except (DispatchError, IdentityServiceError, ProfileStoreError) as e:
        logger.error("%s.%s failed: %s", directive.namespace, directive.name, e)
        return directive.error(ErrorType.INTERNAL_ERROR, str(e))
    except Exception as e:
        logger.exception("Unexpected error handling %s.%s", directive.namespace, directive.name)
        return directive.error(ErrorType.INTERNAL_ERROR, str(e) or "An internal error occurred")
