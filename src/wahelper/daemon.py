"""wahelper daemon: messaging session + HTTP control plane + stdin commands."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
import threading
from typing import Sequence

from rich.console import Console

from wahelper.commands import CONTROL_COMMANDS, RESTART, STOP, Command, CommandContext, CommandTable
from wahelper.config import WahelperConfig, ensure_work_dirs
from wahelper.dispatcher import EventDispatcher
from wahelper.normalizer import MessageNormalizer
from wahelper.polls import PollStore
from wahelper.sender import OutboundSender
from wahelper.server import ACK_RECEIVED, ControlServer
from wahelper.session import InFlightTracker, Session, SessionManager
from wahelper.transport import Transport, load_transport

logger = logging.getLogger(__name__)

CONNECT_RECHECK_INTERVAL = 1.0

PAIR_HINT = (
    "Not logged in. Please pair your device using:\n\n"
    "    wahelper pair-phone <number>\n\n"
    '<number> is "Country Code" + "Phone Number"\n'
    "(e.g., if Country Code = 91, then use 919876543210)"
)


class WahelperDaemon:
    """Long-running session agent.

    Owns every component and the shutdown path shared by ``stop``, SIGINT,
    SIGTERM, stdin EOF and stream replacement.
    """

    def __init__(
        self,
        config: WahelperConfig,
        transport: Transport | None = None,
        immediate: Sequence[str] = (),
        read_stdin: bool = True,
        console: Console | None = None,
    ):
        self.config = config
        self.transport = transport or load_transport(config)
        self.console = console or Console()
        self._err_console = Console(stderr=True)

        self.session = Session(config.mode)
        self.tracker = InFlightTracker()
        self.polls = PollStore(
            config.work_dir / ".tmp",
            max_entries=config.polls.max_entries,
            ttl_seconds=config.polls.ttl_seconds,
        )
        self.sender = OutboundSender(config.http_port, timeout=config.timing.delivery_timeout)
        self.manager = SessionManager(
            self.transport, self.session, self.tracker, config.timing, on_fatal=self.request_stop
        )
        self.normalizer = MessageNormalizer(config, self.session, self.transport, self.polls, self.sender)
        self.dispatcher = EventDispatcher(config.mode, self.manager, self.tracker, self.normalizer.handle)
        self.commands = CommandTable(
            CommandContext(
                transport=self.transport,
                session=self.session,
                config=config,
                polls=self.polls,
                manager=self.manager,
                console=self.console,
            )
        )
        self.server = ControlServer(self, config.http_port) if config.mode.can_send else None

        self._immediate = list(immediate)
        self._read_stdin = read_stdin
        self._stdin_lines: asyncio.Queue[str | None] = asyncio.Queue()
        self._command_lines: asyncio.Queue[list[str]] = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()
        self._stop_event = asyncio.Event()
        self._stopping = False

    # --- controller interface for the HTTP control plane ---

    def status_text(self) -> str:
        if self.session.is_available:
            return f"Server is running in {self.config.mode.value} mode"
        return "Bad network, server is waiting for reconnection"

    def submit(self, name: str, args: Sequence[str]) -> str:
        name = name.lower()
        if name == STOP:
            self._spawn(self._delayed_stop())
            return "exiting"
        if name == RESTART:
            self._spawn(self._delayed_restart())
            return "restarting"
        if self.config.mode.can_send:
            self._spawn(self.commands.execute(name, list(args)))
        return ACK_RECEIVED

    # --- lifecycle ---

    async def run(self) -> int:
        """Connect, serve and block until stopped. Returns the process exit code."""
        loop = asyncio.get_running_loop()
        self.dispatcher.bind_loop(loop)
        ensure_work_dirs(self.config)
        for sig in (signal.SIGTERM, signal.SIGINT):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, self.request_stop)

        try:
            await self.manager.connect(self.dispatcher.sink)
        except Exception as e:
            logger.error(f"Failed to connect to WhatsApp: {e}")
            await self.stop()
            return 1

        if self.server is not None:
            try:
                await self.server.start()
            except OSError as e:
                logger.error(f"Failed to start control server on port {self.config.http_port}: {e}")
                await self.stop()
                return 1

        if self._immediate:
            name = self._immediate[0].lower()
            code = await self._run_immediate(name, self._immediate[1:])
            if name != Command.PAIR_PHONE.value or code != 0:
                await self.stop()
                return code

        if self._read_stdin:
            self._start_stdin_reader(loop)
            self._spawn(self._stdin_loop())
            self._spawn(self._command_worker())

        logger.info(f"wahelper started in {self.config.mode.value} mode")
        await self._stop_event.wait()
        return 0

    def request_stop(self) -> None:
        if not self._stopping:
            self._spawn(self.stop())

    async def stop(self) -> None:
        """Stop the control plane, the session and every background task."""
        if self._stopping:
            return
        self._stopping = True
        logger.info("wahelper stopping")
        if self.server is not None:
            await self.server.stop()
        await self.manager.shutdown()
        self.dispatcher.cancel_all()
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.sender.aclose()
        self._stop_event.set()

    async def _delayed_stop(self) -> None:
        await asyncio.sleep(self.config.timing.control_grace_delay)
        logger.info("Exit command received, exiting...")
        await self.stop()

    async def _delayed_restart(self) -> None:
        await asyncio.sleep(self.config.timing.control_grace_delay)
        if self.server is None:
            return
        await self.server.stop()
        if self.config.mode.can_receive:
            logger.info("Receive/Send Mode Enabled")
            logger.info("Will Now Receive/Send Messages")
        else:
            logger.info("Send Mode Enabled")
            logger.info("Can Now Send Messages")
        try:
            await self.server.start()
        except OSError as e:
            logger.error(f"Failed to restart control server: {e}")

    # --- operator commands ---

    async def wait_until_connected(self) -> None:
        while not self.transport.is_connected:
            try:
                await asyncio.wait_for(self.session.wait_connected(), CONNECT_RECHECK_INTERVAL)
            except asyncio.TimeoutError:
                continue
            return

    async def _run_immediate(self, name: str, args: list[str]) -> int:
        await self.wait_until_connected()
        if not self.transport.is_logged_in and name != Command.PAIR_PHONE.value:
            self._err_console.print(PAIR_HINT, markup=False, highlight=False)
            return 1
        await self.commands.execute(name, args)
        return 0

    async def handle_line(self, line: str) -> None:
        """Route one stdin line: a pairing answer, a control command or a table command."""
        line = line.strip()
        if not line:
            return
        if self.manager.pairing.pending and line in ("r", "a"):
            self.manager.pairing.submit(line == "a")
            return
        parts = line.split()
        name = parts[0].lower()
        if name in CONTROL_COMMANDS:
            logger.info(self.submit(name, parts[1:]))
            return
        self._command_lines.put_nowait(parts)

    async def run_command_line(self, parts: list[str]) -> bool:
        name = parts[0].lower()
        await self.wait_until_connected()
        if not self.transport.is_logged_in and name != Command.PAIR_PHONE.value:
            self._err_console.print(PAIR_HINT, markup=False, highlight=False)
            return False
        return await self.commands.execute(name, parts[1:])

    def _start_stdin_reader(self, loop: asyncio.AbstractEventLoop) -> None:
        def reader() -> None:
            for line in sys.stdin:
                with contextlib.suppress(RuntimeError):
                    loop.call_soon_threadsafe(self._stdin_lines.put_nowait, line)
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(self._stdin_lines.put_nowait, None)

        threading.Thread(target=reader, name="wahelper-stdin", daemon=True).start()

    async def _stdin_loop(self) -> None:
        while True:
            line = await self._stdin_lines.get()
            if line is None:
                logger.info("Stdin closed, exiting")
                self.request_stop()
                return
            await self.handle_line(line)

    async def _command_worker(self) -> None:
        while True:
            parts = await self._command_lines.get()
            await self.run_command_line(parts)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
