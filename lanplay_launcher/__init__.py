"""
lan-play bridge launcher.

Local companion process that keeps lan-play running for the web app and
shuts itself down once the browser is gone.
"""

from .binary import BinaryAcquirer
from .channel import ControlChannel
from .config import LauncherConfig, build_config
from .exceptions import (
    LauncherError,
    ConfigError,
    DownloadError,
    PortInUseError,
)
from .monitor import LifecycleMonitor
from .shutdown import ShutdownCoordinator
from .state import ActivityClock, LauncherContext, ShutdownReason, ShutdownState
from .supervisor import ProcessSupervisor

__version__ = "0.1.0"

__all__ = [
    'ActivityClock',
    'BinaryAcquirer',
    'ControlChannel',
    'LauncherConfig',
    'LauncherContext',
    'LifecycleMonitor',
    'ProcessSupervisor',
    'ShutdownCoordinator',
    'ShutdownReason',
    'ShutdownState',
    'build_config',
    'LauncherError',
    'ConfigError',
    'DownloadError',
    'PortInUseError',
]
