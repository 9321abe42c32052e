"""Message normalizer: inbound message events -> flat canonical records.

Rules are tried in order and the first match wins: plain text, rich text
(text or link preview), button response, list response, poll vote, and
saved media when enabled. Anything else is unsupported and produces nothing.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from wahelper.config import WahelperConfig
from wahelper.events import MessageEvent
from wahelper.jid import STATUS_BROADCAST
from wahelper.media import extension_for, sniff_mimetype
from wahelper.messages import MediaKind
from wahelper.polls import PollLookupError, PollStore
from wahelper.sender import OutboundSender
from wahelper.session import Session, SessionSnapshot
from wahelper.transport import Transport

logger = logging.getLogger(__name__)

UNKNOWN_GROUP = "Unknown, Group Not Found"

_CAPTIONED = (MediaKind.IMAGE, MediaKind.VIDEO, MediaKind.DOCUMENT)


@dataclass
class NormalizedMessage:
    record: dict[str, Any]
    path: Path | None = None


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


class MessageNormalizer:
    def __init__(
        self,
        config: WahelperConfig,
        session: Session,
        transport: Transport,
        polls: PollStore,
        sender: OutboundSender | None = None,
    ):
        self._config = config
        self._session = session
        self._transport = transport
        self._polls = polls
        self._sender = sender
        self._media_root = Path(config.work_dir) / "media"

    async def handle(self, event: MessageEvent) -> NormalizedMessage | None:
        """Normalize one message, schedule auto-delete, and deliver the record."""
        await self._session.wait_directory_settled()
        result = await self.normalize(event, self._session.snapshot())
        if result is None:
            return None
        if self._config.auto_delete_media and result.path is not None:
            self._schedule_delete(result.path)
        logger.info(json.dumps(result.record, ensure_ascii=False))
        if self._sender is not None:
            await self._sender.deliver(result.record)
        return result

    async def normalize(self, event: MessageEvent, snapshot: SessionSnapshot) -> NormalizedMessage | None:
        info = event.info
        chat = info.chat
        default_jid = str(snapshot.default_jid) if snapshot.default_jid else ""

        record: dict[str, Any] = {
            "port": str(self._config.http_port),
            "sender_jid": str(info.sender),
            "sender_pushname": info.push_name,
            "is_from_myself": _flag(info.is_from_me),
            "time_stamp": str(int(info.timestamp.timestamp())),
        }
        receiver = str(chat)
        if not info.is_from_me and info.sender == chat and default_jid:
            receiver = default_jid

        is_group = info.is_group and chat != STATUS_BROADCAST
        record["is_group"] = _flag(is_group)
        if is_group:
            record["group_name"] = snapshot.group_name(chat) or UNKNOWN_GROUP

        status = chat == STATUS_BROADCAST
        if status:
            receiver = default_jid
        record["receiver_jid"] = receiver
        record["message_id"] = info.id

        msg = event.message
        if msg.conversation:
            record["type"] = "text_message"
            record["message"] = msg.conversation
            return NormalizedMessage(record)
        if msg.extended_text is not None:
            return await self._extended_text(event, record, status)
        if msg.buttons_response is not None:
            resp = msg.buttons_response
            quoted = resp.quoted
            record.update(
                type="button_response_message",
                button_selected_button=resp.selected_display_text,
                button_title=quoted.text if quoted else "",
                button_body=quoted.content_text if quoted else "",
                button_footer=quoted.footer_text if quoted else "",
                origin_message_id=resp.stanza_id,
            )
            return NormalizedMessage(record)
        if msg.list_response is not None:
            resp = msg.list_response
            quoted = resp.quoted
            record.update(
                type="list_response_message",
                list_selected_title=resp.title,
                list_selected_description=resp.description,
                list_title=quoted.title if quoted else "",
                list_body=quoted.description if quoted else "",
                list_footer=quoted.footer_text if quoted else "",
                list_button_text=quoted.button_text if quoted else "",
                list_header=quoted.sections[0].title if quoted and quoted.sections else "",
                origin_message_id=resp.stanza_id,
            )
            return NormalizedMessage(record)
        if msg.poll_update is not None:
            return await self._poll_vote(event, record)
        if self._config.save_media and msg.media is not None:
            return await self._media(event, record)
        logger.debug(f"Unsupported message {info.id} from {info.source_string()}")
        return None

    async def _extended_text(self, event: MessageEvent, record: dict[str, Any], status: bool) -> NormalizedMessage | None:
        info = event.info
        ext = event.message.extended_text
        if info.type == "text":
            record["type"] = "status_message" if status else "text_message"
            record["message"] = ext.text
            return NormalizedMessage(record)
        if info.type != "media" or not ext.canonical_url:
            return None

        if not ext.jpeg_thumbnail:
            logger.error("Failed to save link preview thumbnail: User cancelled it")
            return None
        path = self._media_root / "link" / f"{info.id}.jpg"
        try:
            await asyncio.to_thread(_write_file, path, ext.jpeg_thumbnail)
        except OSError as e:
            logger.error(f"Failed to save link preview thumbnail for {info.id}: {e}")
            return None
        logger.info(f"Saved link preview thumbnail in message to {path}")
        record.update(
            type="status_message" if status else "link_message",
            path=str(path),
            message=ext.text,
            link_matched_text=ext.matched_text,
            link_canonical_url=ext.canonical_url,
            link_description=ext.description,
            link_title=ext.title,
        )
        return NormalizedMessage(record, path)

    async def _poll_vote(self, event: MessageEvent, record: dict[str, Any]) -> NormalizedMessage | None:
        poll_id = event.message.poll_update.poll_creation_message_id
        try:
            selected = await self._transport.decrypt_poll_vote(event)
        except Exception as e:
            logger.error(f"Failed to decrypt vote on poll {poll_id}: {e}")
            return None
        try:
            question, options = self._polls.resolve_vote(poll_id, selected)
        except PollLookupError as e:
            logger.error(f"Failed to resolve vote: {e}")
            return None
        record.update(
            type="poll_response_message",
            poll_question=question,
            poll_selected_options=options,
            message_id=poll_id,
        )
        return NormalizedMessage(record)

    async def _media(self, event: MessageEvent, record: dict[str, Any]) -> NormalizedMessage | None:
        info = event.info
        media = event.message.media
        try:
            data = await self._transport.download(media)
        except Exception as e:
            logger.error(f"Failed to download {media.kind.value} in message {info.id}: {e}")
            return None
        mimetype = media.mimetype or sniff_mimetype(data)
        path = self._media_root / media.kind.value / f"{info.id}{extension_for(mimetype)}"
        try:
            await asyncio.to_thread(_write_file, path, data)
        except OSError as e:
            logger.error(f"Failed to save {media.kind.value} in message {info.id}: {e}")
            return None
        logger.info(f"Saved {media.kind.value} in message to {path}")
        record.update(type=f"{media.kind.value}_message", path=str(path), mimetype=mimetype)
        if media.kind in _CAPTIONED:
            record["caption"] = media.caption
        if media.kind is MediaKind.DOCUMENT:
            record["file_name"] = media.file_name
        return NormalizedMessage(record, path)

    def _schedule_delete(self, path: Path) -> None:
        loop = asyncio.get_running_loop()
        loop.call_later(self._config.timing.auto_delete_delay, self._remove, path)

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to auto-delete {path}: {e}")
        else:
            logger.debug(f"Auto-deleted {path}")
