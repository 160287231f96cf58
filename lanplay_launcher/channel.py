"""
Local control channel - WebSocket status/heartbeat protocol plus /health, on one loopback port.
"""

import asyncio
import errno
from typing import Dict, Optional

import aiohttp_cors
from aiohttp import web, WSMsgType

from .console import log
from .exceptions import PortInUseError
from .messages import (
    Heartbeat,
    StatusRequest,
    heartbeat_ack,
    parse_message,
    shutdown_message,
    status_message,
)
from .state import LauncherContext

FORWARDING_HEADERS = ("X-Forwarded-For", "Forwarded")
FORBIDDEN_CLOSE_CODE = 4003
CLOSE_TIMEOUT = 2.0


def is_forwarded(request: web.Request) -> bool:
    """True if the request passed through a proxy"""
    return any(request.headers.get(h) for h in FORWARDING_HEADERS)


class ControlChannel:
    """Serves the browser's control connections on 127.0.0.1."""

    def __init__(self, context: LauncherContext):
        self.context = context
        self.app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None

    # ==================== Server ====================

    def build_app(self) -> web.Application:
        """Create the aiohttp application with the control and health routes"""
        if self.app is not None:
            return self.app

        app = web.Application()
        app.router.add_get("/", self.websocket_handler)
        health_route = app.router.add_get("/health", self.health_handler)

        # The web app is served from another origin and probes /health with fetch()
        cors = aiohttp_cors.setup(app, defaults={
            "*": aiohttp_cors.ResourceOptions(
                allow_credentials=False,
                allow_headers="*",
                allow_methods=["GET"],
            )
        })
        cors.add(health_route)

        self.app = app
        return app

    async def start(self):
        """Bind to the configured loopback port; raises PortInUseError if it is taken"""
        config = self.context.config
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, config.host, config.port)
        try:
            await site.start()
        except OSError as e:
            await self._runner.cleanup()
            self._runner = None
            if e.errno == errno.EADDRINUSE:
                raise PortInUseError(config.port) from e
            raise
        log(f"Listening on ws://localhost:{config.port}")
        log("Waiting for browser to connect...")

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    # ==================== Handlers ====================

    async def health_handler(self, request: web.Request) -> web.Response:
        """Plain HTTP liveness probe"""
        return web.json_response(self.context.status_payload())

    async def websocket_handler(self, request: web.Request):
        """One browser connection: status on connect, then heartbeat/status requests"""
        ws = web.WebSocketResponse()
        if not ws.can_prepare(request).ok:
            raise web.HTTPNotFound()
        await ws.prepare(request)

        if is_forwarded(request):
            log("Rejected connection with forwarding header (possible proxy)", "yellow")
            await ws.close(code=FORBIDDEN_CLOSE_CODE, message=b"Forbidden")
            return ws

        log("Browser connected", "green")
        connections = self.context.connections
        clock = self.context.clock
        connections.add(ws)
        clock.touch()

        try:
            await self.send(ws, status_message(self.context.status_payload()))

            async for msg in ws:
                if msg.type in (WSMsgType.TEXT, WSMsgType.BINARY):
                    clock.touch()
                    message = parse_message(msg.data)
                    if isinstance(message, Heartbeat):
                        clock.record_heartbeat()
                        await self.send(ws, heartbeat_ack())
                    elif isinstance(message, StatusRequest):
                        await self.send(ws, status_message(self.context.status_payload()))
                elif msg.type == WSMsgType.ERROR:
                    log(f"Browser connection error: {ws.exception()}", "red")
                    break
        finally:
            connections.discard(ws)
            log("Browser disconnected")

        return ws

    # ==================== Outbound ====================

    async def send(self, ws: web.WebSocketResponse, message: Dict) -> bool:
        """Send to one connection; closed or closing connections are skipped"""
        if ws.closed:
            return False
        try:
            await ws.send_json(message)
        except ConnectionError:
            return False
        return True

    async def broadcast_status(self):
        """Push the current status to every open connection"""
        message = status_message(self.context.status_payload())
        for ws in list(self.context.connections):
            await self.send(ws, message)

    async def close_all(self, reason: str):
        """Tell every connection the launcher is going away, then close it"""
        connections = list(self.context.connections)
        await asyncio.gather(*(self._close_one(ws, reason) for ws in connections))

    async def _close_one(self, ws: web.WebSocketResponse, reason: str):
        try:
            await self.send(ws, shutdown_message(reason))
            await asyncio.wait_for(ws.close(), timeout=CLOSE_TIMEOUT)
        except Exception as e:
            log(f"Error closing browser connection: {e}", "yellow")
        finally:
            self.context.connections.discard(ws)
