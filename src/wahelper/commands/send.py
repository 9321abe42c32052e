"""Message-sending commands."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

import httpx

from wahelper.commands.registry import (
    Command,
    CommandContext,
    UsageError,
    command,
    parse_int,
    parse_jid_arg,
    require_args,
    require_group,
)
from wahelper.jid import JID
from wahelper.media import (
    MediaError,
    fetch_bytes,
    fetch_link_preview,
    image_size,
    make_thumbnail,
    sniff_mimetype,
    video_thumbnail,
)
from wahelper.messages import (
    ExtendedTextMessage,
    ListMessage,
    ListRow,
    ListSection,
    MediaKind,
    MediaMessage,
    Message,
    PollCreationMessage,
    ReactionMessage,
)

logger = logging.getLogger(__name__)

LINK_FETCH_TIMEOUT = 10.0


async def _read_file(path: str) -> bytes:
    try:
        return await asyncio.to_thread(Path(path).read_bytes)
    except OSError as e:
        raise UsageError(f"Failed to read {path}: {e}") from None


async def _send_media(
    ctx: CommandContext,
    to: JID,
    kind: MediaKind,
    data: bytes,
    *,
    mimetype: str = "",
    caption: str = "",
    file_name: str = "",
    thumbnail: bytes = b"",
) -> None:
    uploaded = await ctx.transport.upload(data, kind)
    media = MediaMessage(
        kind=kind,
        mimetype=mimetype or sniff_mimetype(data),
        caption=caption,
        file_name=file_name,
        url=uploaded.url,
        direct_path=uploaded.direct_path,
        media_key=uploaded.media_key,
        file_sha256=uploaded.file_sha256,
        file_enc_sha256=uploaded.file_enc_sha256,
        file_length=len(data),
        jpeg_thumbnail=thumbnail,
    )
    resp = await ctx.transport.send_message(to, Message(media=media))
    logger.info(f"{kind.value.capitalize()} message sent to {to} (server timestamp: {resp.timestamp})")


async def send_text(ctx: CommandContext, to: JID, text: str) -> None:
    resp = await ctx.transport.send_message(to, Message(conversation=text))
    logger.info(f"Message sent to {to} (server timestamp: {resp.timestamp})")


@command(Command.SEND, "send <jid> <text>")
async def handle_send(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    to = parse_jid_arg(args[0])
    await send_text(ctx, to, " ".join(args[1:]))


@command(
    Command.SENDLIST,
    "sendlist <jid> <title> <text> <footer> <button text> <sub title> -- <heading 1> <description 1> / ...",
)
async def handle_sendlist(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 9)
    to = parse_jid_arg(args[0])
    if args[6] != "--":
        raise UsageError("Missing -- separator")

    rows: list[ListRow] = []
    chunk: list[str] = []
    for token in [*args[7:], "/"]:
        if token != "/":
            chunk.append(token)
            continue
        if not chunk and rows:
            continue
        if len(chunk) != 2:
            raise UsageError(f"Row {len(rows) + 1} needs a heading and a description")
        rows.append(ListRow(row_id=f"id{len(rows) + 1}", title=chunk[0], description=chunk[1]))
        chunk = []

    message = ListMessage(
        title=args[1],
        description=args[2],
        footer_text=args[3],
        button_text=args[4],
        sections=[ListSection(title=args[5], rows=rows)],
    )
    resp = await ctx.transport.send_message(to, Message(list_message=message))
    logger.info(f"List message sent to {to} (server timestamp: {resp.timestamp})")


@command(Command.SENDPOLL, "sendpoll <jid> <max answers> <question> -- <option 1> / <option 2> / ...")
async def handle_sendpoll(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 7)
    to = parse_jid_arg(args[0])
    max_answers = parse_int(args[1], "max answers")
    question, sep, rest = " ".join(args[2:]).partition("--")
    if not sep:
        raise UsageError("Missing '--' separator")
    question = question.strip()
    options = [o.strip() for o in rest.split("/")]
    if not question or any(not o for o in options):
        raise UsageError("Poll question and options must not be empty")
    if len(set(options)) != len(options):
        raise UsageError("Poll options must be unique")

    poll = PollCreationMessage(question=question, options=options, selectable_count=max_answers)
    resp = await ctx.transport.send_message(to, Message(poll_creation=poll))
    logger.info(f"Poll message {resp.id} sent to {to} (server timestamp: {resp.timestamp})")
    if ctx.session.mode.can_receive:
        ctx.polls.save(resp.id, question, options)


@command(Command.SENDLINK, "sendlink <jid> <url/link> [text]")
async def handle_sendlink(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    to = parse_jid_arg(args[0])
    url = args[1]
    text = url + ("\n\n" + " ".join(args[2:]) if len(args) > 2 else "")

    message = ExtendedTextMessage(text=text, canonical_url=url, matched_text=url)
    async with httpx.AsyncClient(timeout=LINK_FETCH_TIMEOUT) as client:
        preview = await fetch_link_preview(client, url)
        if preview is not None:
            try:
                image = await fetch_bytes(client, preview.image_url)
                width, height = image_size(image)
            except MediaError as e:
                logger.error(f"Could not fetch thumbnail data: {e}")
                preview = None

    if preview is not None:
        uploaded = await ctx.transport.upload(image, MediaKind.IMAGE)
        message.title = preview.title
        message.description = preview.description
        message.jpeg_thumbnail = image
        message.thumbnail_direct_path = uploaded.direct_path
        message.thumbnail_sha256 = uploaded.file_sha256
        message.thumbnail_enc_sha256 = uploaded.file_enc_sha256
        message.thumbnail_width = width
        message.thumbnail_height = height
        message.media_key = uploaded.media_key

    resp = await ctx.transport.send_message(to, Message(extended_text=message))
    logger.info(f"Link message sent to {to} (server timestamp: {resp.timestamp})")


@command(Command.SENDDOC, "senddoc <jid> <document path> <document file name> [caption] [mime-type]")
async def handle_senddoc(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 3)
    to = parse_jid_arg(args[0])
    data = await _read_file(args[1])
    caption = args[3] if len(args) > 3 else ""
    mimetype = args[4] if len(args) > 4 else ""
    await _send_media(ctx, to, MediaKind.DOCUMENT, data, mimetype=mimetype, caption=caption, file_name=args[2])


@command(Command.SENDVID, "sendvid <jid> <video path> [caption]")
async def handle_sendvid(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    to = parse_jid_arg(args[0])
    data = await _read_file(args[1])
    thumbnail = await video_thumbnail(args[1], ctx.config.ffmpeg)
    await _send_media(ctx, to, MediaKind.VIDEO, data, caption=" ".join(args[2:]), thumbnail=thumbnail)


@command(Command.SENDAUDIO, "sendaudio <jid> <audio path>")
async def handle_sendaudio(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    to = parse_jid_arg(args[0])
    data = await _read_file(args[1])
    await _send_media(ctx, to, MediaKind.AUDIO, data)


@command(Command.SENDIMG, "sendimg <jid> <image path> [caption]")
async def handle_sendimg(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    to = parse_jid_arg(args[0])
    data = await _read_file(args[1])
    thumbnail = make_thumbnail(data)
    await _send_media(ctx, to, MediaKind.IMAGE, data, caption=" ".join(args[2:]), thumbnail=thumbnail)


@command(Command.REACT, "react <jid> <message ID> <reaction>")
async def handle_react(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 3)
    to = parse_jid_arg(args[0])
    message_id = args[1]
    from_me = message_id.startswith("me:")
    if from_me:
        message_id = message_id[len("me:"):]
    reaction = "" if args[2] == "remove" else args[2]
    message = ReactionMessage(
        chat=to,
        message_id=message_id,
        from_me=from_me,
        text=reaction,
        sender_timestamp_ms=int(time.time() * 1000),
    )
    resp = await ctx.transport.send_message(to, Message(reaction=message))
    logger.info(f"Reaction sent to {to} (server timestamp: {resp.timestamp})")


@command(Command.REVOKE, "revoke <jid> <message ID>")
async def handle_revoke(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    to = parse_jid_arg(args[0])
    resp = await ctx.transport.revoke_message(to, args[1])
    logger.info(f"Revocation sent to {to} (server timestamp: {resp.timestamp})")


@command(Command.MARKREAD, "markread <jid> <message ID 1> [message ID X]")
async def handle_markread(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    to = parse_jid_arg(args[0])
    await ctx.transport.mark_read(args[1:], to)
    logger.info(f"Mark as read sent for {len(args) - 1} message(s) in {to}")


@command(Command.BATCH_MESSAGE_GROUP_MEMBERS, "batchmessagegroupmembers <group jid> <text>")
async def handle_batch_message_group_members(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    group = require_group(args[0])
    info = await ctx.transport.get_group_info(group)
    own = ctx.transport.own_id
    own_account = own.to_non_ad() if own else None
    text = " ".join(args[1:])
    sent = 0
    for participant in info.participants:
        if own_account is not None and participant.to_non_ad() == own_account:
            continue
        try:
            await send_text(ctx, participant, text)
        except Exception as e:
            logger.error(f"Failed to send message to {participant}: {e}")
            continue
        sent += 1
    logger.info(f"Sent message to {sent} member(s) of {group}")
