"""Tests for wahelper.normalizer: inbound message -> canonical record."""

import asyncio
import hashlib
import json
import logging
from datetime import datetime, timezone

import httpx
import pytest

from wahelper.events import MessageEvent, MessageInfo
from wahelper.jid import JID, STATUS_BROADCAST
from wahelper.messages import (
    ButtonsMessage,
    ButtonsResponseMessage,
    ExtendedTextMessage,
    ListMessage,
    ListResponseMessage,
    ListSection,
    MediaKind,
    MediaMessage,
    Message,
    PollUpdateMessage,
)
from wahelper.normalizer import UNKNOWN_GROUP, MessageNormalizer
from wahelper.sender import OutboundSender

PEER = JID(user="14155550100", server="s.whatsapp.net")
GROUP = JID(user="120363025246125486", server="g.us")
SENT_AT = datetime(2024, 1, 2, tzinfo=timezone.utc)


def _event(message, *, chat=PEER, sender=PEER, is_group=False, type="text", from_me=False, message_id="3EB0A1"):
    info = MessageInfo(
        id=message_id,
        chat=chat,
        sender=sender,
        push_name="Alice",
        timestamp=SENT_AT,
        is_from_me=from_me,
        is_group=is_group,
        type=type,
    )
    return MessageEvent(info=info, message=message)


@pytest.fixture
def normalizer(config, session, transport, polls):
    return MessageNormalizer(config, session, transport, polls)


async def _normalize(normalizer, session, event):
    return await normalizer.normalize(event, session.snapshot())


class TestCommonFields:
    """Fields shared by every record."""

    @pytest.mark.asyncio
    async def test_direct_text(self, normalizer, session):
        result = await _normalize(normalizer, session, _event(Message(conversation="hello")))
        assert result.record == {
            "port": "7774",
            "sender_jid": "14155550100@s.whatsapp.net",
            "sender_pushname": "Alice",
            "is_from_myself": "false",
            "time_stamp": "1704153600",
            "is_group": "false",
            "receiver_jid": "919876543210@s.whatsapp.net",
            "message_id": "3EB0A1",
            "type": "text_message",
            "message": "hello",
        }
        assert result.path is None

    @pytest.mark.asyncio
    async def test_own_message_keeps_chat_as_receiver(self, normalizer, session):
        event = _event(Message(conversation="hi"), sender=JID("919876543210", "s.whatsapp.net"), from_me=True)
        result = await _normalize(normalizer, session, event)
        assert result.record["is_from_myself"] == "true"
        assert result.record["receiver_jid"] == str(PEER)

    @pytest.mark.asyncio
    async def test_group_name_unknown_until_directory_fresh(self, normalizer, session):
        event = _event(Message(conversation="hi all"), chat=GROUP, is_group=True)
        result = await _normalize(normalizer, session, event)
        assert result.record["is_group"] == "true"
        assert result.record["group_name"] == UNKNOWN_GROUP
        assert result.record["receiver_jid"] == str(GROUP)

        await session.replace_directory({str(GROUP): "Family"})
        result = await _normalize(normalizer, session, event)
        assert result.record["group_name"] == "Family"

    @pytest.mark.asyncio
    async def test_status_update(self, normalizer, session):
        event = _event(
            Message(extended_text=ExtendedTextMessage(text="new status")),
            chat=STATUS_BROADCAST,
            is_group=True,
        )
        result = await _normalize(normalizer, session, event)
        assert result.record["type"] == "status_message"
        assert result.record["message"] == "new status"
        assert result.record["is_group"] == "false"
        assert "group_name" not in result.record
        assert result.record["receiver_jid"] == "919876543210@s.whatsapp.net"


class TestRules:
    """Ordered normalization rules."""

    @pytest.mark.asyncio
    async def test_extended_text(self, normalizer, session):
        event = _event(Message(extended_text=ExtendedTextMessage(text="quoted reply")))
        result = await _normalize(normalizer, session, event)
        assert result.record["type"] == "text_message"
        assert result.record["message"] == "quoted reply"

    @pytest.mark.asyncio
    async def test_link_preview_saved(self, normalizer, session, tmp_path):
        ext = ExtendedTextMessage(
            text="https://example.com look",
            matched_text="https://example.com",
            canonical_url="https://example.com/",
            title="Example",
            description="An example",
            jpeg_thumbnail=b"\xff\xd8\xffthumb",
        )
        result = await _normalize(normalizer, session, _event(Message(extended_text=ext), type="media"))
        path = tmp_path / "media" / "link" / "3EB0A1.jpg"
        assert result.path == path
        assert path.read_bytes() == b"\xff\xd8\xffthumb"
        assert result.record["type"] == "link_message"
        assert result.record["path"] == str(path)
        assert result.record["link_canonical_url"] == "https://example.com/"
        assert result.record["link_matched_text"] == "https://example.com"
        assert result.record["link_title"] == "Example"
        assert result.record["link_description"] == "An example"

    @pytest.mark.asyncio
    async def test_link_without_thumbnail_dropped(self, normalizer, session, caplog, tmp_path):
        ext = ExtendedTextMessage(text="https://example.com", canonical_url="https://example.com/")
        result = await _normalize(normalizer, session, _event(Message(extended_text=ext), type="media"))
        assert result is None
        assert "User cancelled it" in caplog.text
        link_dir = tmp_path / "media" / "link"
        assert not link_dir.exists() or not any(link_dir.iterdir())

    @pytest.mark.asyncio
    async def test_button_response(self, normalizer, session):
        resp = ButtonsResponseMessage(
            selected_display_text="Yes",
            stanza_id="3EB0ORIG",
            quoted=ButtonsMessage(text="Confirm", content_text="Are you sure?", footer_text="bot"),
        )
        result = await _normalize(normalizer, session, _event(Message(buttons_response=resp)))
        record = result.record
        assert record["type"] == "button_response_message"
        assert record["button_selected_button"] == "Yes"
        assert record["button_title"] == "Confirm"
        assert record["button_body"] == "Are you sure?"
        assert record["button_footer"] == "bot"
        assert record["origin_message_id"] == "3EB0ORIG"

    @pytest.mark.asyncio
    async def test_list_response(self, normalizer, session):
        resp = ListResponseMessage(
            title="Pizza",
            description="Cheese",
            stanza_id="3EB0LIST",
            quoted=ListMessage(
                title="Menu",
                description="Pick one",
                footer_text="thanks",
                button_text="Open",
                sections=[ListSection(title="Mains")],
            ),
        )
        result = await _normalize(normalizer, session, _event(Message(list_response=resp)))
        record = result.record
        assert record["type"] == "list_response_message"
        assert record["list_selected_title"] == "Pizza"
        assert record["list_selected_description"] == "Cheese"
        assert record["list_title"] == "Menu"
        assert record["list_body"] == "Pick one"
        assert record["list_footer"] == "thanks"
        assert record["list_button_text"] == "Open"
        assert record["list_header"] == "Mains"
        assert record["origin_message_id"] == "3EB0LIST"

    @pytest.mark.asyncio
    async def test_poll_vote(self, normalizer, session, transport, polls):
        polls.save("3EB0POLL", "Lunch?", ["Pizza", "Sushi"])
        transport.poll_votes = [hashlib.sha256(b"Sushi").digest()]
        event = _event(Message(poll_update=PollUpdateMessage(poll_creation_message_id="3EB0POLL")))
        result = await _normalize(normalizer, session, event)
        assert result.record["type"] == "poll_response_message"
        assert result.record["poll_question"] == "Lunch?"
        assert result.record["poll_selected_options"] == ["Sushi"]
        assert result.record["message_id"] == "3EB0POLL"

    @pytest.mark.asyncio
    async def test_poll_vote_without_record(self, normalizer, session, transport):
        transport.poll_votes = [hashlib.sha256(b"Sushi").digest()]
        event = _event(Message(poll_update=PollUpdateMessage(poll_creation_message_id="3EB0GONE")))
        assert await _normalize(normalizer, session, event) is None

    @pytest.mark.asyncio
    async def test_media_ignored_unless_saving(self, normalizer, session, transport):
        transport.download_data = b"\xff\xd8\xffimage"
        event = _event(Message(media=MediaMessage(kind=MediaKind.IMAGE, mimetype="image/jpeg")), type="media")
        assert await _normalize(normalizer, session, event) is None

    @pytest.mark.asyncio
    async def test_image_saved(self, normalizer, session, transport, config, tmp_path):
        config.save_media = True
        transport.download_data = b"\xff\xd8\xffimage"
        media = MediaMessage(kind=MediaKind.IMAGE, mimetype="image/jpeg", caption="beach")
        result = await _normalize(normalizer, session, _event(Message(media=media), type="media"))
        path = tmp_path / "media" / "image" / "3EB0A1.jpg"
        assert path.read_bytes() == b"\xff\xd8\xffimage"
        assert result.record["type"] == "image_message"
        assert result.record["mimetype"] == "image/jpeg"
        assert result.record["caption"] == "beach"
        assert "file_name" not in result.record

    @pytest.mark.asyncio
    async def test_document_saved_with_sniffed_type(self, normalizer, session, transport, config, tmp_path):
        config.save_media = True
        transport.download_data = b"%PDF-1.7 body"
        media = MediaMessage(kind=MediaKind.DOCUMENT, caption="invoice", file_name="inv.pdf")
        result = await _normalize(normalizer, session, _event(Message(media=media), type="media"))
        assert result.path == tmp_path / "media" / "document" / "3EB0A1.pdf"
        assert result.record["type"] == "document_message"
        assert result.record["mimetype"] == "application/pdf"
        assert result.record["file_name"] == "inv.pdf"

    @pytest.mark.asyncio
    async def test_audio_has_no_caption(self, normalizer, session, transport, config):
        config.save_media = True
        transport.download_data = b"OggS voice"
        media = MediaMessage(kind=MediaKind.AUDIO, mimetype="audio/ogg; codecs=opus")
        result = await _normalize(normalizer, session, _event(Message(media=media), type="media"))
        assert result.record["type"] == "audio_message"
        assert result.path.suffix == ".ogg"
        assert "caption" not in result.record

    @pytest.mark.asyncio
    async def test_unsupported_message(self, normalizer, session):
        assert await _normalize(normalizer, session, _event(Message())) is None


class TestHandle:
    """Full path: wait for directory, normalize, deliver, auto-delete."""

    @pytest.mark.asyncio
    async def test_delivers_record(self, config, session, transport, polls):
        received = []

        def handler(request):
            received.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200)

        sender = OutboundSender(config.http_port, transport=httpx.MockTransport(handler))
        normalizer = MessageNormalizer(config, session, transport, polls, sender)
        session.mark_directory_failed()
        result = await normalizer.handle(_event(Message(conversation="hello")))
        await sender.aclose()
        assert received == [("/message", result.record)]

    @pytest.mark.asyncio
    async def test_waits_for_directory(self, normalizer, session):
        task = asyncio.create_task(normalizer.handle(_event(Message(conversation="x"), chat=GROUP, is_group=True)))
        await asyncio.sleep(0.01)
        assert not task.done()
        await session.replace_directory({str(GROUP): "Family"})
        result = await asyncio.wait_for(task, 1.0)
        assert result.record["group_name"] == "Family"

    @pytest.mark.asyncio
    async def test_auto_delete(self, normalizer, session, transport, config):
        config.save_media = True
        config.auto_delete_media = True
        transport.download_data = b"\xff\xd8\xffimage"
        session.mark_directory_failed()
        media = MediaMessage(kind=MediaKind.IMAGE, mimetype="image/jpeg")
        result = await normalizer.handle(_event(Message(media=media), type="media"))
        assert result.path.exists()
        await asyncio.sleep(config.timing.auto_delete_delay + 0.1)
        assert not result.path.exists()

    @pytest.mark.asyncio
    async def test_record_logged_as_json(self, normalizer, session, caplog):
        caplog.set_level(logging.INFO, logger="wahelper.normalizer")
        session.mark_directory_failed()
        await normalizer.handle(_event(Message(conversation="héllo")))
        assert '"message": "héllo"' in caplog.text
