"""
Shared launcher state: activity watermarks, shutdown flag and the supervised process.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from aiohttp import web

from .config import LauncherConfig


class ShutdownReason(str, Enum):
    """Why the launcher is shutting down."""

    NO_HEARTBEAT = "no heartbeat"
    NO_ACTIVITY = "no activity"
    SIGNAL = "signal"

    @property
    def wire(self) -> str:
        """Reason string sent to connected browsers; the value is only logged locally"""
        return "timeout"


class ActivityClock:
    """Tracks the last heartbeat and the last observed activity of any kind."""

    def __init__(self, now: Callable[[], float] = time.monotonic):
        self.now = now
        self.last_activity_at = now()
        self.last_heartbeat_at = 0.0
        self.ever_received_heartbeat = False

    def touch(self):
        """Record activity; the watermark never moves backward"""
        self.last_activity_at = max(self.last_activity_at, self.now())

    def record_heartbeat(self):
        """Record a browser heartbeat (also counts as activity)"""
        ts = self.now()
        self.last_heartbeat_at = max(self.last_heartbeat_at, ts)
        self.ever_received_heartbeat = True
        self.last_activity_at = max(self.last_activity_at, ts)

    def since_activity(self, now: Optional[float] = None) -> float:
        return (self.now() if now is None else now) - self.last_activity_at

    def since_heartbeat(self, now: Optional[float] = None) -> Optional[float]:
        if not self.ever_received_heartbeat:
            return None
        return (self.now() if now is None else now) - self.last_heartbeat_at


class ShutdownState:
    """One-way shutdown flag."""

    def __init__(self):
        self.requested = False
        self.reason: Optional[ShutdownReason] = None

    def begin(self, reason: ShutdownReason) -> bool:
        """Flip the flag; only the first caller gets True"""
        if self.requested:
            return False
        self.requested = True
        self.reason = reason
        return True


@dataclass
class SupervisedProcess:
    """The lan-play subprocess as seen by the supervisor."""

    args: List[str]
    handle: Optional[asyncio.subprocess.Process] = None
    running: bool = False

    @property
    def alive(self) -> bool:
        return self.handle is not None and self.handle.returncode is None


@dataclass
class LauncherContext:
    """State shared by every launcher component, built once at startup."""

    config: LauncherConfig
    clock: ActivityClock = field(default_factory=ActivityClock)
    shutdown: ShutdownState = field(default_factory=ShutdownState)
    connections: Set[web.WebSocketResponse] = field(default_factory=set)
    process: Optional[SupervisedProcess] = None

    def __post_init__(self):
        if self.process is None:
            self.process = SupervisedProcess(args=list(self.config.process_args))

    def status_payload(self) -> Dict:
        return {
            "running": self.process.running,
            "relay": self.config.relay,
            "platform": self.config.platform,
            "version": self.config.version,
        }
