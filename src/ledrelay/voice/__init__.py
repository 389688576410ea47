"""Voice platform adapters: Alexa Smart Home directives and Google Home fulfillment."""

from ledrelay.voice.envelopes import ErrorType, VoiceError, build_error, build_event

__all__ = ["ErrorType", "VoiceError", "build_error", "build_event"]
