"""Cloud-side identity, profile and command dispatch services."""

from ledrelay.cloud.backend import AwsRelayBackend, RelayBackend
from ledrelay.cloud.models import Profile, Scene

__all__ = ["AwsRelayBackend", "Profile", "RelayBackend", "Scene"]
