"""Connection, app-state, presence, lookup and chat-setting commands."""

from __future__ import annotations

import json
import logging

from wahelper.commands.registry import (
    Command,
    CommandContext,
    UsageError,
    command,
    parse_bool,
    parse_int,
    parse_jid_arg,
    require_args,
)
from wahelper.events import ALL_APP_STATE_PATCHES
from wahelper.jid import JID

logger = logging.getLogger(__name__)

PRESENCES = ("available", "unavailable")
CHAT_PRESENCES = ("composing", "paused")
DEFAULT_MUTE_HOURS = 8
MAX_MUTE_HOURS = 168
MUTE_FOREVER_HOURS = 318538


async def _fetch_app_state(ctx: CommandContext, names, full_sync: bool = False) -> None:
    for name in names:
        try:
            await ctx.transport.fetch_app_state(name, full_sync)
        except Exception as e:
            logger.error(f"Failed to sync app state {name}: {e}")


async def _ensure_app_state(ctx: CommandContext) -> None:
    """Without a control plane nothing has synced app state yet; do it before patching."""
    if not ctx.session.mode.can_send:
        await _fetch_app_state(ctx, ALL_APP_STATE_PATCHES)


@command(Command.RECONNECT, "reconnect")
async def handle_reconnect(ctx: CommandContext, args: list[str]) -> None:
    if ctx.manager is None:
        raise RuntimeError("reconnect needs a running session manager")
    await ctx.manager.reconnect_once()


@command(Command.APPSTATE, "appstate <types...|all> [resync]")
async def handle_appstate(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    names = ALL_APP_STATE_PATCHES if args[0] == "all" else (args[0],)
    resync = len(args) > 1 and args[1] == "resync"
    await _fetch_app_state(ctx, names, resync)


@command(Command.REQUEST_APPSTATE_KEY, "request-appstate-key <ids...>")
async def handle_request_appstate_key(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    key_ids = []
    for key in args:
        try:
            key_ids.append(bytes.fromhex(key))
        except ValueError as e:
            raise UsageError(f"Failed to decode {key} as hex: {e}") from None
    await ctx.transport.request_app_state_keys(key_ids)
    logger.info(f"Requested {len(key_ids)} app state key(s)")


@command(Command.UNAVAILABLE_REQUEST, "unavailable-request <chat JID> <sender JID> <message ID>")
async def handle_unavailable_request(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 3)
    chat = parse_jid_arg(args[0])
    sender = parse_jid_arg(args[1])
    resp = await ctx.transport.send_unavailable_request(chat, sender, args[2])
    logger.info(f"Unavailable message request sent: {resp}")


@command(Command.CHECKUSER, "checkuser <phone numbers...>")
async def handle_checkuser(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    results = await ctx.transport.is_on_whatsapp(args)
    for item in results:
        line = f"{item.query}: on whatsapp: {item.is_in}, JID: {item.jid}"
        if item.business_name:
            line += f", business name: {item.business_name}"
        logger.info(line)


@command(Command.SUBSCRIBE_PRESENCE, "subscribepresence <jid>")
async def handle_subscribe_presence(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    jid = parse_jid_arg(args[0])
    await ctx.transport.subscribe_presence(jid)
    logger.info(f"Subscribed to presence of {jid}")


@command(Command.PRESENCE, "presence <available/unavailable>")
async def handle_presence(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    if args[0] not in PRESENCES:
        raise UsageError(f"Unknown presence {args[0]!r}")
    await ctx.transport.send_presence(args[0])
    logger.info(f"Presence set to {args[0]}")


@command(Command.CHAT_PRESENCE, "chatpresence <jid> <composing/paused> [audio]")
async def handle_chat_presence(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    jid = parse_jid_arg(args[0])
    if args[1] not in CHAT_PRESENCES:
        raise UsageError(f"Unknown chat presence {args[1]!r}")
    media = args[2] if len(args) > 2 else ""
    await ctx.transport.send_chat_presence(jid, args[1], media)
    logger.info(f"Chat presence {args[1]} sent to {jid}")


@command(Command.GETUSER, "getuser <jids...>")
async def handle_getuser(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    jids = [parse_jid_arg(a) for a in args]
    info = await ctx.transport.get_user_info(jids)
    for jid, user in info.items():
        logger.info(f"{jid}: {user}")


@command(Command.RAW, "raw <node JSON>")
async def handle_raw(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    try:
        node = json.loads(" ".join(args))
    except json.JSONDecodeError as e:
        raise UsageError(f"Failed to parse args as JSON into XML node: {e}") from None
    if not isinstance(node, dict):
        raise UsageError("Node JSON must be an object")
    await ctx.transport.send_node(node)
    logger.info("Node sent")


@command(Command.QUERY_BUSINESS_LINK, "querybusinesslink <link>")
async def handle_query_business_link(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    resp = await ctx.transport.resolve_business_message_link(args[0])
    logger.info(f"Business info: {resp}")


@command(Command.LISTUSERS, "listusers")
async def handle_listusers(ctx: CommandContext, args: list[str]) -> None:
    users = await ctx.transport.get_all_contacts()
    users = {str(jid): info for jid, info in users.items()}
    ctx.console.print_json(data={"jids": list(users), "users": users}, default=str)


def _chat_toggle(args: list[str]) -> tuple[JID, bool]:
    require_args(args, 2)
    target = parse_jid_arg(args[0])
    return target, parse_bool(args[1], "second argument")


@command(Command.ARCHIVE, "archive <jid> <true/false>")
async def handle_archive(ctx: CommandContext, args: list[str]) -> None:
    target, action = _chat_toggle(args)
    await _ensure_app_state(ctx)
    await ctx.transport.set_archived(target, action)
    logger.info(f"Changed archive state for JID: {target}, state: {action}")


@command(Command.MUTE, "mute <jid> <true/false> [hours] (default is 8 hours, 0 means indefinitely)")
async def handle_mute(ctx: CommandContext, args: list[str]) -> None:
    target, action = _chat_toggle(args)
    hours = DEFAULT_MUTE_HOURS
    if len(args) > 2:
        requested = parse_int(args[2], "hours")
        if requested == 0:
            hours = MUTE_FOREVER_HOURS
        elif 0 < requested <= MAX_MUTE_HOURS:
            hours = requested
    await _ensure_app_state(ctx)
    await ctx.transport.set_muted(target, action, hours * 3600)
    if action:
        logger.info(f"Changed mute state for JID: {target}, state: {action}, duration: {hours}h")
    else:
        logger.info(f"Changed mute state for JID: {target}, state: {action}")


@command(Command.PIN, "pin <jid> <true/false>")
async def handle_pin(ctx: CommandContext, args: list[str]) -> None:
    target, action = _chat_toggle(args)
    await _ensure_app_state(ctx)
    await ctx.transport.set_pinned(target, action)
    logger.info(f"Changed pin state for JID: {target}, state: {action}")


@command(Command.LABEL_CHAT, "labelchat <jid> <labelID> <true/false>")
async def handle_label_chat(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 3)
    jid = parse_jid_arg(args[0])
    action = parse_bool(args[2], "third argument")
    await ctx.transport.label_chat(jid, args[1], action)
    logger.info(f"Changed label {args[1]} on chat {jid}: {action}")


@command(Command.LABEL_MESSAGE, "labelmessage <jid> <labelID> <messageID> <true/false>")
async def handle_label_message(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 4)
    jid = parse_jid_arg(args[0])
    action = parse_bool(args[3], "fourth argument")
    await ctx.transport.label_message(jid, args[1], args[2], action)
    logger.info(f"Changed label {args[1]} on message {args[2]}: {action}")


@command(Command.EDIT_LABEL, "editlabel <labelID> <name> <color> <true/false>")
async def handle_edit_label(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 4)
    color = parse_int(args[2], "third argument")
    deleted = parse_bool(args[3], "fourth argument")
    await ctx.transport.edit_label(args[0], args[1], color, deleted)
    logger.info(f"Edited label {args[0]}")
