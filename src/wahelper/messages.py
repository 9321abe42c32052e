"""Message payload shapes exchanged with the transport (both directions)."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from wahelper.jid import JID


class MediaKind(Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"


@dataclass
class ExtendedTextMessage:
    """Rich text body; carries link preview fields when a URL was matched."""

    text: str = ""
    matched_text: str = ""
    canonical_url: str = ""
    description: str = ""
    title: str = ""
    jpeg_thumbnail: bytes = b""
    thumbnail_direct_path: str = ""
    thumbnail_sha256: bytes = b""
    thumbnail_enc_sha256: bytes = b""
    thumbnail_width: int = 0
    thumbnail_height: int = 0
    media_key: bytes = b""


@dataclass
class ButtonsMessage:
    text: str = ""
    content_text: str = ""
    footer_text: str = ""


@dataclass
class ButtonsResponseMessage:
    selected_display_text: str = ""
    stanza_id: str = ""
    quoted: ButtonsMessage | None = None


@dataclass
class ListRow:
    row_id: str
    title: str
    description: str = ""


@dataclass
class ListSection:
    title: str = ""
    rows: list[ListRow] = field(default_factory=list)


@dataclass
class ListMessage:
    title: str = ""
    description: str = ""
    footer_text: str = ""
    button_text: str = ""
    sections: list[ListSection] = field(default_factory=list)


@dataclass
class ListResponseMessage:
    title: str = ""
    description: str = ""
    stanza_id: str = ""
    quoted: ListMessage | None = None


@dataclass
class PollCreationMessage:
    question: str
    options: list[str]
    selectable_count: int = 1


@dataclass
class PollUpdateMessage:
    """An encrypted vote; only the transport can decrypt it."""

    poll_creation_message_id: str
    encrypted_payload: bytes = b""


@dataclass
class MediaMessage:
    kind: MediaKind
    mimetype: str = ""
    caption: str = ""
    file_name: str = ""
    url: str = ""
    direct_path: str = ""
    media_key: bytes = b""
    file_sha256: bytes = b""
    file_enc_sha256: bytes = b""
    file_length: int = 0
    jpeg_thumbnail: bytes = b""


@dataclass
class ReactionMessage:
    chat: JID
    message_id: str
    from_me: bool
    text: str
    sender_timestamp_ms: int


@dataclass
class Message:
    """Container with at most one populated body."""

    conversation: str = ""
    extended_text: ExtendedTextMessage | None = None
    buttons_response: ButtonsResponseMessage | None = None
    list_message: ListMessage | None = None
    list_response: ListResponseMessage | None = None
    poll_creation: PollCreationMessage | None = None
    poll_update: PollUpdateMessage | None = None
    media: MediaMessage | None = None
    reaction: ReactionMessage | None = None
