"""Exceptions shared by the cloud-side services and the voice adapter."""


class RelayError(Exception):
    """Base class for relay errors."""


class AuthError(RelayError):
    """Access token could not be resolved to a user."""

    def __init__(self, message: str, expired: bool = False):
        super().__init__(message)
        self.expired = expired


class DispatchError(RelayError):
    """Canonical command could not be handed to the command broker."""


class ProfileStoreError(RelayError):
    """Profile, scene or state lookup failed."""


class IdentityServiceError(RelayError):
    """Identity provider could not be reached or refused to answer."""
