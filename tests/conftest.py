"""Shared test fixtures for the wahelper test suite."""

import io
from datetime import datetime, timezone

import pytest
from rich.console import Console

from wahelper.commands import CommandContext, CommandTable
from wahelper.config import Mode, TimingConfig, WahelperConfig
from wahelper.jid import DEFAULT_USER_SERVER, JID
from wahelper.polls import PollStore
from wahelper.session import Session
from wahelper.transport import (
    GroupInfo,
    SendResponse,
    Transport,
    TransportError,
    UploadResponse,
)

OWN_JID = JID(user="919876543210", server=DEFAULT_USER_SERVER, device=7)
SERVER_TIME = datetime(2024, 1, 2, tzinfo=timezone.utc)


class FakeTransport(Transport):
    """In-memory transport that records every call."""

    def __init__(self):
        self.handlers = []
        self.connected = False
        self.logged_in = True
        self.own = OWN_JID
        self.name = "Tester"
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.connect_failures = 0
        self.presences = []
        self.sent = []
        self.calls = []
        self.groups = []
        self.groups_error = None
        self.download_data = b""
        self.poll_votes = []
        self._next_id = 0

    def add_event_handler(self, handler):
        self.handlers.append(handler)

    def emit(self, event):
        for handler in self.handlers:
            handler(event)

    async def connect(self):
        self.connect_calls += 1
        if self.connect_failures:
            self.connect_failures -= 1
            raise TransportError("network unreachable")
        self.connected = True

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False

    @property
    def is_connected(self):
        return self.connected

    @property
    def is_logged_in(self):
        return self.logged_in

    @property
    def own_id(self):
        return self.own

    @property
    def push_name(self):
        return self.name

    async def send_presence(self, presence):
        self.presences.append(presence)

    async def send_message(self, to, message):
        self._next_id += 1
        self.sent.append((to, message))
        return SendResponse(id=f"MSG{self._next_id}", timestamp=SERVER_TIME)

    async def get_joined_groups(self):
        if self.groups_error is not None:
            raise self.groups_error
        return list(self.groups)

    async def get_group_info(self, group):
        for g in self.groups:
            if g.jid == group:
                return g
        raise TransportError(f"group {group} not found")

    async def upload(self, data, kind):
        return UploadResponse(
            url="https://mmg.example.net/d/f/abc",
            direct_path="/v/t62/abc",
            media_key=b"k" * 32,
            file_sha256=b"s" * 32,
            file_enc_sha256=b"e" * 32,
            file_length=len(data),
        )

    async def download(self, media):
        return self.download_data

    async def decrypt_poll_vote(self, event):
        return list(self.poll_votes)

    async def pair_phone(self, phone):
        self.calls.append(("pair_phone", phone))
        return "ABCD-EFGH"

    async def fetch_app_state(self, name, full_sync=False):
        self.calls.append(("fetch_app_state", name, full_sync))

    async def set_archived(self, chat, archived):
        self.calls.append(("set_archived", chat, archived))

    async def set_muted(self, chat, muted, duration_seconds):
        self.calls.append(("set_muted", chat, muted, duration_seconds))

    async def set_pinned(self, chat, pinned):
        self.calls.append(("set_pinned", chat, pinned))

    async def update_group_participants(self, group, participants, action):
        self.calls.append(("update_group_participants", group, participants, action))
        return []


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def config(tmp_path):
    """Receive+send config rooted in a temporary work dir with short timings."""
    cfg = WahelperConfig(mode=Mode.BOTH, http_port=7774, work_dir=tmp_path)
    cfg.timing = TimingConfig(
        pair_timeout=0.2,
        reconnect_backoff=0.01,
        delivery_timeout=0.5,
        auto_delete_delay=0.05,
        control_grace_delay=0.01,
    )
    return cfg


@pytest.fixture
def session():
    s = Session(Mode.BOTH)
    s.set_identity(OWN_JID)
    return s


@pytest.fixture
def polls(tmp_path):
    return PollStore(tmp_path / ".tmp")


@pytest.fixture
def console_output():
    return io.StringIO()


@pytest.fixture
def command_table(transport, session, config, polls, console_output):
    ctx = CommandContext(
        transport=transport,
        session=session,
        config=config,
        polls=polls,
        console=Console(file=console_output, width=200),
    )
    return CommandTable(ctx)


@pytest.fixture
def family_group():
    return GroupInfo(
        jid=JID(user="120363025246125486", server="g.us"),
        name="Family",
        participants=[
            OWN_JID.to_non_ad(),
            JID(user="14155550100", server=DEFAULT_USER_SERVER),
            JID(user="14155550101", server=DEFAULT_USER_SERVER),
        ],
    )
