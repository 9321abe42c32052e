"""Newsletter (channel) commands."""

from __future__ import annotations

import logging

from wahelper.commands.registry import Command, CommandContext, command, parse_int, parse_jid_arg, require_args

logger = logging.getLogger(__name__)


@command(Command.LIST_NEWSLETTERS, "listnewsletters")
async def handle_list_newsletters(ctx: CommandContext, args: list[str]) -> None:
    newsletters = await ctx.transport.get_subscribed_newsletters()
    for newsletter in newsletters:
        logger.info(f"* {newsletter.jid}: {newsletter.name}")


@command(Command.GET_NEWSLETTER, "getnewsletter <jid>")
async def handle_get_newsletter(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    jid = parse_jid_arg(args[0])
    meta = await ctx.transport.get_newsletter_info(jid)
    logger.info(f"Got info: {meta}")


@command(Command.GET_NEWSLETTER_INVITE, "getnewsletterinvite <invite key>")
async def handle_get_newsletter_invite(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    meta = await ctx.transport.get_newsletter_info_with_invite(args[0])
    logger.info(f"Got info: {meta}")


@command(Command.LIVE_SUBSCRIBE_NEWSLETTER, "livesubscribenewsletter <jid>")
async def handle_live_subscribe_newsletter(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    jid = parse_jid_arg(args[0])
    duration = await ctx.transport.newsletter_subscribe_live_updates(jid)
    logger.info(f"Subscribed to live updates for {jid} for {duration}s")


@command(Command.GET_NEWSLETTER_MESSAGES, "getnewslettermessages <jid> [count] [before id]")
async def handle_get_newsletter_messages(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    jid = parse_jid_arg(args[0])
    count = parse_int(args[1], "count") if len(args) > 1 else 100
    before = parse_int(args[2], "message ID") if len(args) > 2 else None
    messages = await ctx.transport.get_newsletter_messages(jid, count=count, before=before)
    for message in messages:
        logger.info(f"{message}")


@command(Command.CREATE_NEWSLETTER, "createnewsletter <name>")
async def handle_create_newsletter(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    meta = await ctx.transport.create_newsletter(" ".join(args))
    logger.info(f"Created newsletter {meta}")
