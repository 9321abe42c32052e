"""Command names, handler registration and argument helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from rich.console import Console

from wahelper.jid import GROUP_SERVER, JID, parse_jid

if TYPE_CHECKING:
    from wahelper.config import WahelperConfig
    from wahelper.polls import PollStore
    from wahelper.session import Session, SessionManager
    from wahelper.transport import Transport


class Command(str, Enum):
    # send
    SEND = "send"
    SENDLIST = "sendlist"
    SENDPOLL = "sendpoll"
    SENDLINK = "sendlink"
    SENDDOC = "senddoc"
    SENDVID = "sendvid"
    SENDAUDIO = "sendaudio"
    SENDIMG = "sendimg"
    REACT = "react"
    REVOKE = "revoke"
    MARKREAD = "markread"
    BATCH_MESSAGE_GROUP_MEMBERS = "batchmessagegroupmembers"
    # group
    GETGROUP = "getgroup"
    SUBGROUPS = "subgroups"
    COMMUNITY_PARTICIPANTS = "communityparticipants"
    GET_INVITE_LINK = "getinvitelink"
    QUERY_INVITE_LINK = "queryinvitelink"
    JOIN_INVITE_LINK = "joininvitelink"
    UPDATE_PARTICIPANT = "updateparticipant"
    GET_REQUEST_PARTICIPANT = "getrequestparticipant"
    LISTGROUPS = "listgroups"
    # media
    MEDIACONN = "mediaconn"
    GETAVATAR = "getavatar"
    # account
    PAIR_PHONE = "pair-phone"
    LOGOUT = "logout"
    SETPUSHNAME = "setpushname"
    SETSTATUS = "setstatus"
    PRIVACY_SETTINGS = "privacysettings"
    SET_PRIVACY_SETTING = "setprivacysetting"
    GET_STATUS_PRIVACY = "getstatusprivacy"
    SET_DISAPPEAR_TIMER = "setdisappeartimer"
    SET_DEFAULT_DISAPPEAR_TIMER = "setdefaultdisappeartimer"
    GETBLOCKLIST = "getblocklist"
    BLOCK = "block"
    UNBLOCK = "unblock"
    # newsletter
    LIST_NEWSLETTERS = "listnewsletters"
    GET_NEWSLETTER = "getnewsletter"
    GET_NEWSLETTER_INVITE = "getnewsletterinvite"
    LIVE_SUBSCRIBE_NEWSLETTER = "livesubscribenewsletter"
    GET_NEWSLETTER_MESSAGES = "getnewslettermessages"
    CREATE_NEWSLETTER = "createnewsletter"
    # misc
    RECONNECT = "reconnect"
    APPSTATE = "appstate"
    REQUEST_APPSTATE_KEY = "request-appstate-key"
    UNAVAILABLE_REQUEST = "unavailable-request"
    CHECKUSER = "checkuser"
    SUBSCRIBE_PRESENCE = "subscribepresence"
    PRESENCE = "presence"
    CHAT_PRESENCE = "chatpresence"
    GETUSER = "getuser"
    RAW = "raw"
    QUERY_BUSINESS_LINK = "querybusinesslink"
    LISTUSERS = "listusers"
    ARCHIVE = "archive"
    MUTE = "mute"
    PIN = "pin"
    LABEL_CHAT = "labelchat"
    LABEL_MESSAGE = "labelmessage"
    EDIT_LABEL = "editlabel"

    @classmethod
    def lookup(cls, name: str) -> Command | None:
        try:
            return cls(name.lower())
        except ValueError:
            return None


class UsageError(Exception):
    """Malformed command arguments; the command has no side effects."""


@dataclass
class CommandContext:
    """Everything a handler may touch."""

    transport: Transport
    session: Session
    config: WahelperConfig
    polls: PollStore
    manager: SessionManager | None = None
    console: Console = field(default_factory=Console)


Handler = Callable[[CommandContext, list[str]], Awaitable[None]]


@dataclass(frozen=True)
class Registration:
    handler: Handler
    usage: str


_HANDLERS: dict[Command, Registration] = {}


def command(name: Command, usage: str = ""):
    """Register ``fn`` as the handler for ``name``."""

    def decorator(fn: Handler) -> Handler:
        if name in _HANDLERS:
            raise RuntimeError(f"Duplicate handler for command {name.value}")
        _HANDLERS[name] = Registration(fn, usage)
        return fn

    return decorator


def registered() -> dict[Command, Registration]:
    return dict(_HANDLERS)


def require_args(args: list[str], count: int) -> None:
    if len(args) < count:
        raise UsageError(f"expected at least {count} argument(s), got {len(args)}")


def parse_jid_arg(arg: str) -> JID:
    jid = parse_jid(arg)
    if jid is None:
        raise UsageError(f"Invalid JID: {arg}")
    return jid


def require_group(arg: str) -> JID:
    jid = parse_jid_arg(arg)
    if jid.server != GROUP_SERVER:
        raise UsageError(f"Input must be a group JID (@{GROUP_SERVER})")
    return jid


_TRUE = {"1", "t", "T", "true", "TRUE", "True"}
_FALSE = {"0", "f", "F", "false", "FALSE", "False"}


def parse_bool(value: str, what: str = "argument") -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise UsageError(f"invalid {what}: {value!r} is not a boolean")


def parse_int(value: str, what: str = "argument") -> int:
    try:
        return int(value)
    except ValueError:
        raise UsageError(f"invalid {what}: {value!r} is not an integer") from None
