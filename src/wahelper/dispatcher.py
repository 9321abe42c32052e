"""Event dispatcher: the single sink registered with the transport."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Awaitable, Callable

from wahelper.config import Mode
from wahelper.events import (
    SESSION_EVENTS,
    AppState,
    Blocklist,
    KeepAliveRestored,
    MessageEvent,
    Presence,
    Receipt,
    ReceiptType,
)
from wahelper.session import InFlightTracker, SessionManager

logger = logging.getLogger(__name__)

MessageHandler = Callable[[MessageEvent], Awaitable[object]]


class EventDispatcher:
    """Routes transport events in delivery order.

    Session events are queued to the ``SessionManager`` worker. Message events
    (when receiving is enabled) bump the in-flight tracker before returning,
    then run the normalizer on their own task.
    """

    def __init__(
        self,
        mode: Mode,
        manager: SessionManager,
        tracker: InFlightTracker,
        on_message: MessageHandler,
    ):
        self._mode = mode
        self._manager = manager
        self._tracker = tracker
        self._on_message = on_message
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Bind to the running loop; call from the loop thread."""
        self._loop = loop
        self._loop_thread = threading.get_ident()

    def sink(self, event: object) -> None:
        """Transport callback: inline on the loop thread, marshalled from any other."""
        if self._loop_thread is not None and threading.get_ident() != self._loop_thread:
            self.dispatch_threadsafe(event)
        else:
            self.dispatch(event)

    def dispatch_threadsafe(self, event: object) -> None:
        """Entry point for SDKs that call back from their own threads."""
        if self._loop is None:
            raise RuntimeError("EventDispatcher has no event loop bound")
        self._loop.call_soon_threadsafe(self.dispatch, event)

    def dispatch(self, event: object) -> None:
        if isinstance(event, MessageEvent):
            self._on_message_event(event)
        elif isinstance(event, SESSION_EVENTS):
            self._manager.submit(event)
        elif isinstance(event, Receipt):
            self._log_receipt(event)
        elif isinstance(event, Presence):
            self._log_presence(event)
        elif isinstance(event, AppState):
            logger.debug(f"App state event: {event.index} / {event.action!r}")
        elif isinstance(event, KeepAliveRestored):
            logger.debug("Keepalive restored")
        elif isinstance(event, Blocklist):
            logger.info(f"Blocklist event: {event.action} {event.changes}")
        else:
            logger.debug(f"Ignoring unhandled event {type(event).__name__}")

    async def wait_idle(self) -> None:
        """Wait for every normalization task spawned so far (used by tests and shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    def _on_message_event(self, event: MessageEvent) -> None:
        info = event.info
        meta = [f"pushname: {info.push_name}", f"timestamp: {info.timestamp.isoformat()}"]
        if info.type:
            meta.append(f"type: {info.type}")
        logger.info(f"Received message {info.id} from {info.source_string()} ({', '.join(meta)})")
        if not self._mode.can_receive:
            return
        token = self._tracker.add()
        task = asyncio.get_running_loop().create_task(self._normalize(event, token))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _normalize(self, event: MessageEvent, token: int) -> None:
        try:
            await self._on_message(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Failed to normalize message {event.info.id}")
        finally:
            self._tracker.done(token)

    def _log_receipt(self, event: Receipt) -> None:
        if event.type in (ReceiptType.READ, ReceiptType.READ_SELF):
            logger.info(f"{event.message_ids} was read by {event.source} at {event.timestamp}")
        elif event.type is ReceiptType.DELIVERED and event.message_ids:
            logger.info(f"{event.message_ids[0]} was delivered to {event.source} at {event.timestamp}")

    def _log_presence(self, event: Presence) -> None:
        if not event.unavailable:
            logger.info(f"{event.from_} is now online")
        elif event.last_seen is None:
            logger.info(f"{event.from_} is now offline")
        else:
            logger.info(f"{event.from_} is now offline (last seen: {event.last_seen})")
