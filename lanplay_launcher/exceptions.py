"""
Custom exceptions for launcher startup and supervision.
"""


class LauncherError(Exception):
    """Base exception for all launcher errors."""
    pass


class ConfigError(LauncherError):
    """Raised when the relay is missing or the baked config is unusable."""
    pass


class DownloadError(LauncherError):
    """Raised when the lan-play binary could not be downloaded."""
    pass


class PortInUseError(LauncherError):
    """Raised when the control channel cannot bind its port."""

    def __init__(self, port: int):
        super().__init__(f"Port {port} already in use")
        self.port = port
