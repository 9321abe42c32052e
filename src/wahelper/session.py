"""Session lifecycle: connectivity state machine, pairing and reconnection.

State machine:
    Disconnected -> Connecting -> (AwaitingPairApproval -> Connecting)
    Connecting -> ConnectedSyncing -> ConnectedAvailable
    Connected* -> Reconnecting -> Connecting   (retries forever)
    any -> Disconnected                          (stream replaced / logout / shutdown)

Session-level events are applied one at a time by a single worker task
reading from a queue, so transitions keep transport arrival order while the
transport callback itself never blocks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Callable, Mapping

from wahelper.config import Mode, TimingConfig
from wahelper.events import (
    CRITICAL_BLOCK_PATCH,
    AppStateSyncComplete,
    Connected,
    Disconnected,
    KeepAliveTimeout,
    LoggedOut,
    OfflineSyncCompleted,
    PairRequested,
    PushNameSetting,
    StreamReplaced,
)
from wahelper.jid import JID
from wahelper.transport import Transport

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Connectivity states of the session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_PAIR_APPROVAL = "awaiting_pair_approval"
    CONNECTED_SYNCING = "connected_syncing"
    CONNECTED_AVAILABLE = "connected_available"
    RECONNECTING = "reconnecting"


CONNECTED_STATES = frozenset({SessionState.CONNECTED_SYNCING, SessionState.CONNECTED_AVAILABLE})


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view handed to message normalization."""

    mode: Mode
    default_jid: JID | None
    directory: Mapping[str, str]
    directory_fresh: bool

    def group_name(self, group: JID) -> str | None:
        if not self.directory_fresh:
            return None
        return self.directory.get(str(group))


class Session:
    """The single long-lived session. Mutated only by ``SessionManager``."""

    def __init__(self, mode: Mode):
        self.mode = mode
        self.own_jid: JID | None = None
        self.default_jid: JID | None = None
        self.lock = asyncio.Lock()
        self._state = SessionState.DISCONNECTED
        self._connected = asyncio.Event()
        self._directory: Mapping[str, str] = MappingProxyType({})
        self._directory_fresh = False
        self._directory_settled = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state in CONNECTED_STATES

    @property
    def is_available(self) -> bool:
        return self._state is SessionState.CONNECTED_AVAILABLE

    @property
    def directory_fresh(self) -> bool:
        return self._directory_fresh

    def set_state(self, new: SessionState) -> None:
        old = self._state
        if old is new:
            return
        self._state = new
        if new in CONNECTED_STATES:
            self._connected.set()
        else:
            self._connected.clear()
        logger.debug(f"Session state {old.value} -> {new.value}")

    def set_identity(self, own: JID) -> None:
        self.own_jid = own
        self.default_jid = own.to_non_ad()

    def clear_identity(self) -> None:
        self.own_jid = None
        self.default_jid = None

    async def wait_connected(self) -> None:
        await self._connected.wait()

    async def wait_directory_settled(self) -> None:
        """Block until the first directory rebuild attempt has finished."""
        await self._directory_settled.wait()

    async def replace_directory(self, groups: Mapping[str, str]) -> None:
        """Swap in a complete new group directory."""
        snapshot = MappingProxyType(dict(groups))
        async with self.lock:
            self._directory = snapshot
            self._directory_fresh = True
        self._directory_settled.set()

    def mark_directory_failed(self) -> None:
        """A rebuild failed: keep the previous snapshot and freshness, release waiters."""
        self._directory_settled.set()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            mode=self.mode,
            default_jid=self.default_jid,
            directory=self._directory,
            directory_fresh=self._directory_fresh,
        )


class InFlightTracker:
    """Counts in-flight normalization tasks; backs the offline-sync barrier.

    ``add()`` hands out a generation token. ``reset()`` starts a new
    generation, so completions of tasks started before the reset are ignored.
    """

    def __init__(self):
        self._count = 0
        self._generation = 0
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def count(self) -> int:
        return self._count

    def add(self) -> int:
        self._count += 1
        self._idle.clear()
        return self._generation

    def done(self, token: int) -> None:
        if token != self._generation:
            return
        if self._count == 0:
            logger.warning("In-flight tracker decremented below zero")
            return
        self._count -= 1
        if self._count == 0:
            self._idle.set()

    def reset(self) -> None:
        self._generation += 1
        self._count = 0
        self._idle.set()

    async def wait_idle(self) -> None:
        await self._idle.wait()


class PairingGate:
    """Single-slot accept/reject channel for device pairing.

    Only one decision is outstanding at a time; later requests queue behind
    the lock. No answer within the timeout means accept.
    """

    def __init__(self, timeout: float = 3.0):
        self._timeout = timeout
        self._slot: asyncio.Queue[bool] = asyncio.Queue(maxsize=1)
        self._lock = asyncio.Lock()
        self._pending = False

    @property
    def pending(self) -> bool:
        return self._pending

    def submit(self, accept: bool) -> bool:
        """Answer the outstanding pairing request. False if none is waiting."""
        if not self._pending:
            return False
        try:
            self._slot.put_nowait(accept)
        except asyncio.QueueFull:
            return False
        return True

    async def decide(self) -> bool:
        async with self._lock:
            while not self._slot.empty():
                self._slot.get_nowait()
            self._pending = True
            try:
                return await asyncio.wait_for(self._slot.get(), self._timeout)
            except asyncio.TimeoutError:
                return True
            finally:
                self._pending = False


class SessionManager:
    """Drives connect, pairing, availability and reconnection."""

    def __init__(
        self,
        transport: Transport,
        session: Session,
        tracker: InFlightTracker,
        timing: TimingConfig | None = None,
        on_fatal: Callable[[], None] | None = None,
    ):
        self._transport = transport
        self._session = session
        self._tracker = tracker
        self._timing = timing or TimingConfig()
        self._on_fatal = on_fatal
        self.pairing = PairingGate(self._timing.pair_timeout)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._shutdown = asyncio.Event()
        self._sink_registered = False

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def start(self) -> None:
        """Start the worker that applies session events in order."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="wahelper-session")

    def submit(self, event: object) -> None:
        """Queue a session event; called synchronously from the dispatcher."""
        self._queue.put_nowait(event)

    async def drain(self) -> None:
        """Wait until every queued session event has been applied."""
        await self._queue.join()

    async def connect(self, sink: Callable[[object], None]) -> None:
        """Register the event sink, then open the transport connection."""
        if not self._sink_registered:
            self._transport.add_event_handler(sink)
            self._sink_registered = True
        self.start()
        async with self._session.lock:
            self._session.set_state(SessionState.CONNECTING)
        try:
            await self._transport.connect()
        except Exception:
            async with self._session.lock:
                self._session.set_state(SessionState.DISCONNECTED)
            raise

    async def reconnect_once(self) -> None:
        """Operator-requested reconnect: drop the link and retry until connected again."""
        if self.reconnecting:
            logger.info("Reconnect already in progress")
            return
        async with self._session.lock:
            self._session.set_state(SessionState.RECONNECTING)
        self._tracker.reset()
        self._reconnect_task = asyncio.create_task(self._reconnect_loop(), name="wahelper-reconnect")
        await asyncio.shield(self._reconnect_task)

    async def refresh_directory(self) -> bool:
        """Rebuild the group directory from the transport's joined-group list."""
        try:
            groups = await self._transport.get_joined_groups()
        except Exception as e:
            logger.error(f"Failed to rebuild group directory: {e}")
            self._session.mark_directory_failed()
            return False
        await self._session.replace_directory({str(g.jid): g.name for g in groups})
        logger.info(f"Group directory rebuilt with {len(groups)} groups")
        return True

    async def shutdown(self) -> None:
        """Stop retrying, stop the worker and disconnect the transport."""
        self._shutdown.set()
        current = asyncio.current_task()
        pending = [t for t in (self._reconnect_task, self._worker, *self._tasks) if t and t is not current]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._reconnect_task = None
        self._worker = None
        try:
            await self._transport.disconnect()
        except Exception as e:
            logger.warning(f"Transport disconnect error: {e}")
        async with self._session.lock:
            self._session.set_state(SessionState.DISCONNECTED)

    # --- event application ---

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.apply(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Failed to apply {type(event).__name__}: {e}")
            finally:
                self._queue.task_done()

    async def apply(self, event: object) -> None:
        if isinstance(event, Connected):
            await self._on_connected()
        elif isinstance(event, PushNameSetting):
            await self._become_available()
        elif isinstance(event, AppStateSyncComplete):
            if event.name == CRITICAL_BLOCK_PATCH:
                await self._become_available()
        elif isinstance(event, PairRequested):
            await self._on_pair_requested(event)
        elif isinstance(event, (Disconnected, KeepAliveTimeout)):
            await self._on_connection_lost(event)
        elif isinstance(event, OfflineSyncCompleted):
            self._spawn(self._await_offline_sync(event.count))
        elif isinstance(event, StreamReplaced):
            await self._on_stream_replaced()
        elif isinstance(event, LoggedOut):
            await self._on_logged_out(event)

    async def _on_connected(self) -> None:
        own = self._transport.own_id
        async with self._session.lock:
            if own is not None:
                self._session.set_identity(own)
            self._session.set_state(SessionState.CONNECTED_SYNCING)
        logger.info(f"Connected as {own or '<unpaired device>'}")
        if self._transport.push_name:
            await self._become_available()

    async def _become_available(self) -> None:
        if not self._transport.push_name:
            logger.debug("Push name not known yet, staying in sync state")
            return
        already_available = self._session.is_available
        try:
            await self._transport.send_presence("available")
        except Exception as e:
            logger.warning(f"Failed to send available presence: {e}")
            return
        logger.info("Marked self as available")
        async with self._session.lock:
            self._session.set_state(SessionState.CONNECTED_AVAILABLE)
        if already_available:
            logger.debug("Already available on this connection, directory left as is")
            return

        mode = self._session.mode
        if mode.can_receive:
            await self.refresh_directory()
            logger.info("Receive/Send Mode Enabled")
            logger.info("Will Now Receive/Send Messages")
        elif mode.can_send:
            logger.info("Send Mode Enabled")
            logger.info("Can Now Send Messages")

    async def _on_pair_requested(self, event: PairRequested) -> None:
        async with self._session.lock:
            self._session.set_state(SessionState.AWAITING_PAIR_APPROVAL)
        logger.info(
            f"Pairing {event.jid} (platform: {event.platform!r}, business name: {event.business_name!r}). "
            f"Type 'r' within {self._timing.pair_timeout:g} seconds to reject pair"
        )
        self._spawn(self._decide_pairing(event))

    async def _decide_pairing(self, event: PairRequested) -> None:
        accept = await self.pairing.decide()
        logger.info("Accepting pair" if accept else "Rejecting pair")
        try:
            event.respond(accept)
        except Exception as e:
            logger.error(f"Failed to deliver pairing decision for {event.jid}: {e}")
        async with self._session.lock:
            if self._session.state is SessionState.AWAITING_PAIR_APPROVAL:
                self._session.set_state(SessionState.CONNECTING)

    async def _on_connection_lost(self, event: object) -> None:
        if self._shutdown.is_set():
            return
        async with self._session.lock:
            self._session.set_state(SessionState.RECONNECTING)
        self._tracker.reset()
        if isinstance(event, KeepAliveTimeout):
            logger.debug(f"Keepalive timeout event: {event!r}")
        if self.reconnecting:
            logger.debug(f"Reconnect loop already running, ignoring {type(event).__name__}")
            return
        logger.info("Bad network, waiting for reconnection")
        self._reconnect_task = asyncio.create_task(self._reconnect_loop(), name="wahelper-reconnect")

    async def _reconnect_loop(self) -> None:
        attempt = 0
        while not self._shutdown.is_set():
            attempt += 1
            try:
                await self._transport.disconnect()
                async with self._session.lock:
                    self._session.set_state(SessionState.CONNECTING)
                await self._transport.connect()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Failed to reconnect (attempt {attempt}): {e}")
                async with self._session.lock:
                    self._session.set_state(SessionState.RECONNECTING)
                if await self._wait_shutdown(self._timing.reconnect_backoff):
                    return
                continue
            logger.info(f"Reconnected after {attempt} attempt(s)")
            return

    async def _wait_shutdown(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _on_stream_replaced(self) -> None:
        logger.info("Stream replaced, exiting")
        self._shutdown.set()
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        async with self._session.lock:
            self._session.set_state(SessionState.DISCONNECTED)
        if self._on_fatal:
            self._on_fatal()

    async def _on_logged_out(self, event: LoggedOut) -> None:
        logger.warning(f"Logged out (on connect: {event.on_connect}, reason: {event.reason or 'unknown'})")
        async with self._session.lock:
            self._session.clear_identity()
            self._session.set_state(SessionState.DISCONNECTED)

    async def _await_offline_sync(self, count: int) -> None:
        await self._tracker.wait_idle()
        logger.info(f"Offline Sync Completed ({count} messages)")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
