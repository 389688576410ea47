"""Alexa.Authorization: acknowledge the account-linking grant."""

import logging
from typing import Any

from ledrelay.voice.envelopes import Directive

logger = logging.getLogger(__name__)


def handle_accept_grant(directive: Directive) -> dict[str, Any]:
    """Handle AcceptGrant.

    The grant code would only be needed for proactive state reports, which
    the skill does not send, so it is acknowledged without being stored.
    """
    logger.info("Authorization grant received")
    return directive.respond("Alexa.Authorization", "AcceptGrant.Response", endpoint_id=None)
