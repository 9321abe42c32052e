"""Pairing, profile, privacy and blocklist commands."""

from __future__ import annotations

import logging

from wahelper.commands.registry import (
    Command,
    CommandContext,
    command,
    parse_int,
    parse_jid_arg,
    require_args,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 3600


@command(Command.PAIR_PHONE, "pair-phone <number>")
async def handle_pair_phone(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    if ctx.transport.is_logged_in:
        logger.info("Already paired")
        return
    code = await ctx.transport.pair_phone(args[0])
    logger.info(f'Linking code: "{code}"')
    ctx.console.print(f'Linking code: [bold]"{code}"[/bold]')


@command(Command.LOGOUT, "logout")
async def handle_logout(ctx: CommandContext, args: list[str]) -> None:
    await ctx.transport.logout()
    logger.info("Successfully logged out")


@command(Command.SETPUSHNAME, "setpushname <name>")
async def handle_setpushname(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    await ctx.transport.set_push_name(" ".join(args))
    logger.info("Push name updated")


@command(Command.SETSTATUS, "setstatus <message>")
async def handle_setstatus(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    await ctx.transport.set_status_message(" ".join(args))
    logger.info("Status updated")


@command(Command.PRIVACY_SETTINGS, "privacysettings")
async def handle_privacy_settings(ctx: CommandContext, args: list[str]) -> None:
    settings = await ctx.transport.get_privacy_settings()
    ctx.console.print(settings)


@command(Command.SET_PRIVACY_SETTING, "setprivacysetting <setting> <value>")
async def handle_set_privacy_setting(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    settings = await ctx.transport.set_privacy_setting(args[0], args[1])
    ctx.console.print(settings)


@command(Command.GET_STATUS_PRIVACY, "getstatusprivacy")
async def handle_get_status_privacy(ctx: CommandContext, args: list[str]) -> None:
    resp = await ctx.transport.get_status_privacy()
    ctx.console.print(resp)


@command(Command.SET_DISAPPEAR_TIMER, "setdisappeartimer <jid> <days>")
async def handle_set_disappear_timer(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 2)
    days = parse_int(args[1], "duration")
    chat = parse_jid_arg(args[0])
    await ctx.transport.set_disappearing_timer(chat, days * SECONDS_PER_DAY)
    logger.info(f"Disappearing timer for {chat} set to {days} day(s)")


@command(Command.SET_DEFAULT_DISAPPEAR_TIMER, "setdefaultdisappeartimer <days>")
async def handle_set_default_disappear_timer(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    days = parse_int(args[0], "duration")
    await ctx.transport.set_default_disappearing_timer(days * SECONDS_PER_DAY)
    logger.info(f"Default disappearing timer set to {days} day(s)")


@command(Command.GETBLOCKLIST, "getblocklist")
async def handle_getblocklist(ctx: CommandContext, args: list[str]) -> None:
    blocklist = await ctx.transport.get_blocklist()
    logger.info(f"Blocklist: {blocklist}")


@command(Command.BLOCK, "block <jid>")
async def handle_block(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    jid = parse_jid_arg(args[0])
    resp = await ctx.transport.update_blocklist(jid, "block")
    logger.info(f"Blocklist updated: {resp}")


@command(Command.UNBLOCK, "unblock <jid>")
async def handle_unblock(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    jid = parse_jid_arg(args[0])
    resp = await ctx.transport.update_blocklist(jid, "unblock")
    logger.info(f"Blocklist updated: {resp}")
