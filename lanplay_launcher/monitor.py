"""
Auto-shutdown monitor.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from .console import log
from .state import LauncherContext, ShutdownReason


class LifecycleMonitor:
    """
    Periodically decides whether the launcher is still useful.

    Two independent conditions, checked in order:
      1. A heartbeat was received at some point, but none for heartbeat_timeout
         (the browser tab was closed).
      2. No activity of any kind for inactivity_timeout (the user walked away).
    A browser that never sends heartbeats is only subject to the second one.
    """

    def __init__(self, context: LauncherContext, on_trip: Callable[[ShutdownReason], Awaitable]):
        self.context = context
        self.on_trip = on_trip

    def evaluate(self, now: Optional[float] = None) -> Optional[ShutdownReason]:
        """Return the reason to shut down, or None if the launcher should keep running"""
        if self.context.shutdown.requested:
            return None

        config = self.context.config
        clock = self.context.clock
        now = clock.now() if now is None else now

        since_heartbeat = clock.since_heartbeat(now)
        if since_heartbeat is not None and since_heartbeat > config.heartbeat_timeout:
            return ShutdownReason.NO_HEARTBEAT
        if clock.since_activity(now) > config.inactivity_timeout:
            return ShutdownReason.NO_ACTIVITY
        return None

    async def tick(self, now: Optional[float] = None) -> Optional[ShutdownReason]:
        reason = self.evaluate(now)
        if reason is None:
            return None

        config = self.context.config
        if reason is ShutdownReason.NO_HEARTBEAT:
            log(f"No heartbeat for {config.heartbeat_timeout:g}s. Browser tab likely closed.", "yellow")
        else:
            log(f"No activity for {config.inactivity_timeout / 60:g} minutes.", "yellow")
        await self.on_trip(reason)
        return reason

    async def run(self):
        """Tick every check_interval until shutdown begins"""
        interval = self.context.config.check_interval
        while not self.context.shutdown.requested:
            await asyncio.sleep(interval)
            await self.tick()
