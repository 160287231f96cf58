"""
Orderly, idempotent teardown.
"""

import asyncio

from .console import log
from .state import LauncherContext, ShutdownReason


class ShutdownCoordinator:
    """Runs the teardown sequence exactly once, whoever asks first."""

    def __init__(self, context: LauncherContext, channel, supervisor):
        self.context = context
        self.channel = channel
        self.supervisor = supervisor
        self.finished = asyncio.Event()
        self._task = None

    async def shutdown(self, reason: ShutdownReason) -> bool:
        """
        Notify browsers, stop lan-play and, after a short grace period, release
        the main task so the process can exit.

        Returns:
            True for the call that performed the teardown, False for repeats
        """
        if not self.context.shutdown.begin(reason):
            return False

        log(f"Shutting down ({reason.value})...", "yellow")

        # Each step is best effort; none may prevent the exit
        try:
            await self.channel.close_all(reason.wire)
        except Exception as e:
            log(f"Failed to notify browsers: {e}", "red")

        try:
            await self.supervisor.stop()
        except Exception as e:
            log(f"Failed to stop lan-play: {e}", "red")

        await asyncio.sleep(self.context.config.shutdown_grace)
        log("Goodbye.")
        self.finished.set()
        return True

    def request(self, reason: ShutdownReason, source: str = ""):
        """Schedule shutdown from a synchronous callback (signal handlers)"""
        if source:
            log(f"Received {source}.", "yellow")
        if self.context.shutdown.requested:
            return
        self._task = asyncio.ensure_future(self.shutdown(reason))
