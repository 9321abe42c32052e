"""Transport collaborator: the messaging SDK seen through a narrow interface.

wahelper never speaks the wire protocol itself. An adapter around a
messaging SDK implements ``Transport`` and is selected with the
``transport`` config key (``"package.module:factory"``); the factory is
called with the ``WahelperConfig`` and returns a ``Transport``.

Only the operations the session core needs are abstract. The long tail of
account, group, privacy and newsletter operations default to raising
``TransportError`` so adapters can implement what their SDK offers.
"""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable

from wahelper.events import MessageEvent
from wahelper.jid import JID
from wahelper.messages import MediaKind, MediaMessage, Message

if TYPE_CHECKING:
    from wahelper.config import WahelperConfig

EventHandler = Callable[[object], None]


class TransportError(Exception):
    """An operation reported failure by the transport."""


@dataclass
class SendResponse:
    id: str
    timestamp: datetime


@dataclass
class UploadResponse:
    url: str
    direct_path: str
    media_key: bytes
    file_sha256: bytes
    file_enc_sha256: bytes
    file_length: int


@dataclass
class GroupInfo:
    jid: JID
    name: str
    participants: list[JID]


@dataclass
class ProfilePictureInfo:
    id: str
    url: str


@dataclass
class OnWhatsAppResult:
    query: str
    is_in: bool
    jid: JID | None = None
    business_name: str = ""


@dataclass
class NewsletterMetadata:
    jid: JID
    name: str
    description: str = ""
    subscribers: int = 0


class Transport(ABC):
    """Messaging SDK adapter."""

    # --- session ---

    @abstractmethod
    def add_event_handler(self, handler: EventHandler) -> None:
        """Register the single sink for every inbound event."""

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def disconnect(self) -> None: ...

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @property
    @abstractmethod
    def is_logged_in(self) -> bool: ...

    @property
    @abstractmethod
    def own_id(self) -> JID | None:
        """Device-level JID of this session, once paired."""

    @property
    @abstractmethod
    def push_name(self) -> str: ...

    @abstractmethod
    async def send_presence(self, presence: str) -> None: ...

    # --- messaging ---

    @abstractmethod
    async def send_message(self, to: JID, message: Message) -> SendResponse: ...

    @abstractmethod
    async def get_joined_groups(self) -> list[GroupInfo]: ...

    @abstractmethod
    async def get_group_info(self, group: JID) -> GroupInfo: ...

    @abstractmethod
    async def upload(self, data: bytes, kind: MediaKind) -> UploadResponse: ...

    @abstractmethod
    async def download(self, media: MediaMessage) -> bytes: ...

    @abstractmethod
    async def decrypt_poll_vote(self, event: MessageEvent) -> list[bytes]:
        """Return the SHA-256 hashes of the selected poll options."""

    # --- optional operations ---

    def _unsupported(self, name: str):
        raise TransportError(f"{name} is not supported by {type(self).__name__}")

    async def logout(self) -> None:
        self._unsupported("logout")

    async def pair_phone(self, phone: str) -> str:
        """Request a phone-number linking code."""
        self._unsupported("pair_phone")

    async def revoke_message(self, chat: JID, message_id: str) -> SendResponse:
        self._unsupported("revoke_message")

    async def mark_read(self, message_ids: list[str], chat: JID, sender: JID | None = None) -> None:
        self._unsupported("mark_read")

    async def send_unavailable_request(self, chat: JID, sender: JID, message_id: str) -> Any:
        self._unsupported("send_unavailable_request")

    async def get_sub_groups(self, group: JID) -> Any:
        self._unsupported("get_sub_groups")

    async def get_community_participants(self, group: JID) -> Any:
        self._unsupported("get_community_participants")

    async def get_group_invite_link(self, group: JID) -> str:
        self._unsupported("get_group_invite_link")

    async def query_group_invite_link(self, link: str) -> Any:
        self._unsupported("query_group_invite_link")

    async def join_group_with_link(self, link: str) -> Any:
        self._unsupported("join_group_with_link")

    async def update_group_participants(self, group: JID, participants: list[JID], action: str) -> Any:
        self._unsupported("update_group_participants")

    async def get_group_join_requests(self, group: JID) -> Any:
        self._unsupported("get_group_join_requests")

    async def refresh_media_conn(self) -> Any:
        self._unsupported("refresh_media_conn")

    async def get_profile_picture_info(
        self, jid: JID, *, preview: bool = False, is_community: bool = False, existing_id: str = ""
    ) -> ProfilePictureInfo | None:
        self._unsupported("get_profile_picture_info")

    async def set_push_name(self, name: str) -> None:
        self._unsupported("set_push_name")

    async def set_status_message(self, text: str) -> None:
        self._unsupported("set_status_message")

    async def get_privacy_settings(self) -> Any:
        self._unsupported("get_privacy_settings")

    async def set_privacy_setting(self, setting: str, value: str) -> Any:
        self._unsupported("set_privacy_setting")

    async def get_status_privacy(self) -> Any:
        self._unsupported("get_status_privacy")

    async def set_disappearing_timer(self, chat: JID, seconds: int) -> None:
        self._unsupported("set_disappearing_timer")

    async def set_default_disappearing_timer(self, seconds: int) -> None:
        self._unsupported("set_default_disappearing_timer")

    async def get_blocklist(self) -> Any:
        self._unsupported("get_blocklist")

    async def update_blocklist(self, jid: JID, action: str) -> Any:
        self._unsupported("update_blocklist")

    async def get_subscribed_newsletters(self) -> list[NewsletterMetadata]:
        self._unsupported("get_subscribed_newsletters")

    async def get_newsletter_info(self, jid: JID) -> NewsletterMetadata:
        self._unsupported("get_newsletter_info")

    async def get_newsletter_info_with_invite(self, key: str) -> NewsletterMetadata:
        self._unsupported("get_newsletter_info_with_invite")

    async def newsletter_subscribe_live_updates(self, jid: JID) -> float:
        self._unsupported("newsletter_subscribe_live_updates")

    async def get_newsletter_messages(self, jid: JID, count: int = 100, before: int | None = None) -> list[Any]:
        self._unsupported("get_newsletter_messages")

    async def create_newsletter(self, name: str) -> NewsletterMetadata:
        self._unsupported("create_newsletter")

    async def fetch_app_state(self, name: str, full_sync: bool = False) -> None:
        self._unsupported("fetch_app_state")

    async def request_app_state_keys(self, key_ids: list[bytes]) -> None:
        self._unsupported("request_app_state_keys")

    async def is_on_whatsapp(self, phones: list[str]) -> list[OnWhatsAppResult]:
        self._unsupported("is_on_whatsapp")

    async def subscribe_presence(self, jid: JID) -> None:
        self._unsupported("subscribe_presence")

    async def send_chat_presence(self, jid: JID, state: str, media: str = "") -> None:
        self._unsupported("send_chat_presence")

    async def get_user_info(self, jids: list[JID]) -> dict:
        self._unsupported("get_user_info")

    async def send_node(self, node: dict) -> None:
        self._unsupported("send_node")

    async def resolve_business_message_link(self, code: str) -> Any:
        self._unsupported("resolve_business_message_link")

    async def get_all_contacts(self) -> dict:
        self._unsupported("get_all_contacts")

    async def set_archived(self, chat: JID, archived: bool) -> None:
        self._unsupported("set_archived")

    async def set_muted(self, chat: JID, muted: bool, duration_seconds: int) -> None:
        self._unsupported("set_muted")

    async def set_pinned(self, chat: JID, pinned: bool) -> None:
        self._unsupported("set_pinned")

    async def label_chat(self, chat: JID, label_id: str, labeled: bool) -> None:
        self._unsupported("label_chat")

    async def label_message(self, chat: JID, label_id: str, message_id: str, labeled: bool) -> None:
        self._unsupported("label_message")

    async def edit_label(self, label_id: str, name: str, color: int, deleted: bool) -> None:
        self._unsupported("edit_label")


def load_transport(config: WahelperConfig) -> Transport:
    """Import and call the configured ``module:factory`` transport factory."""
    target = (config.transport or "").strip()
    if not target:
        raise RuntimeError(
            "No transport configured. Set 'transport' in the config file, "
            "WAHELPER_TRANSPORT, or pass --transport module:factory"
        )
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise RuntimeError(f"Invalid transport spec {target!r}, expected 'module:factory'")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    transport = factory(config)
    if not isinstance(transport, Transport):
        raise RuntimeError(f"{target} returned {type(transport).__name__}, not a Transport")
    return transport
