"""HTTP control plane on the loopback interface.

``GET /`` reports mode and connectivity. ``POST /`` takes a stream of
``{"args": [...]}`` JSON objects, one command each, and answers with one
acknowledgement line per object handled.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Protocol, Sequence

from aiohttp import web

from wahelper.commands import CONTROL_COMMANDS

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
ACK_RECEIVED = "command received"


class Controller(Protocol):
    def status_text(self) -> str: ...

    def submit(self, name: str, args: Sequence[str]) -> str:
        """Accept one command without waiting for it; return the acknowledgement."""


class ControlServer:
    """aiohttp server whose start/stop are idempotent and safe to race."""

    def __init__(self, controller: Controller, port: int, host: str = DEFAULT_HOST):
        self._controller = controller
        self._port = port
        self._host = host
        self._runner: web.AppRunner | None = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._runner is not None

    @property
    def port(self) -> int:
        """Bound port (differs from the configured one when that was 0)."""
        if self._runner is not None and self._runner.addresses:
            return self._runner.addresses[0][1]
        return self._port

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/", self.handle_root)
        return app

    async def start(self) -> None:
        async with self._lock:
            if self._runner is not None:
                return
            runner = web.AppRunner(self.create_app(), access_log=None)
            await runner.setup()
            site = web.TCPSite(runner, self._host, self._port)
            try:
                await site.start()
            except OSError:
                await runner.cleanup()
                raise
            self._runner = runner
            logger.info(f"Control server listening on http://{self._host}:{self.port}/")

    async def stop(self) -> None:
        async with self._lock:
            if self._runner is None:
                return
            runner, self._runner = self._runner, None
            await runner.cleanup()
            logger.info("Control server stopped")

    async def handle_root(self, request: web.Request) -> web.Response:
        if request.method == "GET":
            return self._handle_status()
        if request.method == "POST":
            return await self._handle_commands(request)
        logger.error(f"{request.method}, only GET and POST methods are supported.")
        raise web.HTTPMethodNotAllowed(request.method, ["GET", "POST"])

    def _handle_status(self) -> web.Response:
        text = self._controller.status_text()
        logger.info(f"GET request received: {text}")
        return web.Response(text=text)

    async def _handle_commands(self, request: web.Request) -> web.Response:
        body = await request.text()
        decoder = json.JSONDecoder()
        acks: list[str] = []
        pos = 0
        while True:
            while pos < len(body) and body[pos].isspace():
                pos += 1
            if pos >= len(body):
                break
            try:
                obj, pos = decoder.raw_decode(body, pos)
            except json.JSONDecodeError as e:
                logger.error(f"Error decoding command body: {e}")
                return web.Response(status=400, text="\n".join(acks))

            args = obj.get("args") if isinstance(obj, dict) else None
            if args is not None and not (isinstance(args, list) and all(isinstance(a, str) for a in args)):
                logger.error(f"Error decoding command body: args must be a list of strings, got {args!r}")
                return web.Response(status=400, text="\n".join(acks))
            if not args:
                acks.append(ACK_RECEIVED)
                break

            name = args[0].lower()
            acks.append(self._controller.submit(name, args[1:]))
            if name in CONTROL_COMMANDS:
                break
        return web.Response(text="\n".join(acks))
