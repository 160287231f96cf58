"""
lan-play subprocess supervision - start, watch output, restart on crash.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from .console import log, log_output
from .state import LauncherContext


async def _no_op():
    pass


class ProcessSupervisor:
    """Keeps exactly one lan-play process running until shutdown begins."""

    def __init__(self, context: LauncherContext, on_change: Optional[Callable[[], Awaitable[None]]] = None):
        """
        Args:
            context: Shared launcher state
            on_change: Coroutine function called whenever the process state may
                have changed (the control channel's status broadcast)
        """
        self.context = context
        self.on_change = on_change or _no_op
        self.restart_count = 0
        self._restart_task: Optional[asyncio.Task] = None
        self._watch_task: Optional[asyncio.Task] = None

    @property
    def process(self):
        return self.context.process

    async def start(self) -> bool:
        """Spawn lan-play; returns False if the executable could not be started"""
        if self.process.alive:
            return True

        config = self.context.config
        log(f"Starting lan-play -> {config.relay}")
        try:
            proc = await asyncio.create_subprocess_exec(
                str(config.binary_path),
                *self.process.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            # Not retried: a missing or non-executable binary stays that way
            log(f"Failed to start lan-play: {e}", "red")
            self.process.handle = None
            self.process.running = False
            await self._notify()
            return False

        self.process.handle = proc
        self.process.running = True
        self.context.clock.touch()
        self._watch_task = asyncio.create_task(self._watch(proc))
        await self._notify()
        return True

    async def stop(self) -> bool:
        """Terminate the running process, if any; also drops a pending restart"""
        if self._restart_task and not self._restart_task.done():
            self._restart_task.cancel()
        self._restart_task = None

        proc = self.process.handle
        if proc is None or proc.returncode is not None:
            return False
        log("Stopping lan-play...")
        try:
            proc.terminate()
        except ProcessLookupError:
            return False
        return True

    async def _watch(self, proc: asyncio.subprocess.Process):
        """Pump both output streams, then handle the exit"""
        await asyncio.gather(
            self._pump(proc.stdout),
            self._pump(proc.stderr),
        )
        code = await proc.wait()

        if self.process.handle is not proc:
            return
        log(f"lan-play exited with code {code}", "yellow")
        self.process.handle = None
        self.process.running = False
        await self._notify()

        if not self.context.shutdown.requested:
            delay = self.context.config.restart_delay
            log(f"lan-play crashed. Restarting in {delay:g} seconds...", "yellow")
            self.restart_count += 1
            self._restart_task = asyncio.create_task(self._restart_later(delay))

    async def _pump(self, stream: Optional[asyncio.StreamReader]):
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # over-long line, already discarded by the reader
                continue
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").strip()
            self.context.clock.touch()
            if line:
                log_output(line)
            await self._notify()

    async def _restart_later(self, delay: float):
        await asyncio.sleep(delay)
        if self.context.shutdown.requested:
            return
        await self.start()

    async def _notify(self):
        try:
            await self.on_change()
        except Exception as e:
            log(f"Status broadcast failed: {e}", "red")
