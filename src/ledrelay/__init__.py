"""Cloud-to-device command relay for LED lighting controllers."""

__version__ = "0.1.0"
