"""Inbound events delivered by the transport to the event dispatcher."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from wahelper.jid import JID
from wahelper.messages import Message

# App-state patch whose sync completion marks the end of the initial sync
CRITICAL_BLOCK_PATCH = "critical_block"
ALL_APP_STATE_PATCHES = (
    "regular",
    "regular_high",
    "regular_low",
    "critical_unblock_low",
    CRITICAL_BLOCK_PATCH,
)


class ReceiptType(Enum):
    DELIVERED = "delivered"
    READ = "read"
    READ_SELF = "read-self"
    PLAYED = "played"
    SENDER = "sender"
    RETRY = "retry"


@dataclass
class MessageInfo:
    id: str
    chat: JID
    sender: JID
    push_name: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_from_me: bool = False
    is_group: bool = False
    type: str = ""  # "text", "media", "poll", ...

    def source_string(self) -> str:
        if self.sender != self.chat:
            return f"{self.sender} in {self.chat}"
        return str(self.chat)


@dataclass
class Connected:
    pass


@dataclass
class PushNameSetting:
    name: str = ""


@dataclass
class PairRequested:
    """A new device asks to be linked; ``respond(accept)`` answers the transport."""

    jid: JID
    platform: str = ""
    business_name: str = ""
    respond: Callable[[bool], None] = lambda accept: None


@dataclass
class StreamReplaced:
    pass


@dataclass
class LoggedOut:
    on_connect: bool = False
    reason: str = ""


@dataclass
class MessageEvent:
    info: MessageInfo
    message: Message


@dataclass
class Receipt:
    message_ids: list[str]
    source: JID
    timestamp: datetime
    type: ReceiptType = ReceiptType.DELIVERED


@dataclass
class Presence:
    from_: JID
    unavailable: bool = False
    last_seen: datetime | None = None


@dataclass
class AppState:
    index: list[str] = field(default_factory=list)
    action: object = None


@dataclass
class AppStateSyncComplete:
    name: str


@dataclass
class OfflineSyncCompleted:
    count: int = 0


@dataclass
class KeepAliveTimeout:
    error_count: int = 0
    last_success: datetime | None = None


@dataclass
class KeepAliveRestored:
    pass


@dataclass
class Disconnected:
    pass


@dataclass
class Blocklist:
    action: str = ""
    changes: list = field(default_factory=list)


# Events that drive the session state machine, applied in arrival order
SESSION_EVENTS = (
    Connected,
    PushNameSetting,
    PairRequested,
    StreamReplaced,
    LoggedOut,
    AppStateSyncComplete,
    OfflineSyncCompleted,
    KeepAliveTimeout,
    Disconnected,
)
