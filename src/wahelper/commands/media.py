"""Media connection and avatar commands."""

from __future__ import annotations

import logging

from wahelper.commands.registry import Command, CommandContext, command, parse_jid_arg, require_args

logger = logging.getLogger(__name__)


@command(Command.MEDIACONN, "mediaconn")
async def handle_mediaconn(ctx: CommandContext, args: list[str]) -> None:
    conn = await ctx.transport.refresh_media_conn()
    logger.info(f"Media connection: {conn}")


@command(Command.GETAVATAR, "getavatar <jid> [existing ID] [--preview] [--community]")
async def handle_getavatar(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    jid = parse_jid_arg(args[0])
    positional = [a for a in args[1:] if not a.startswith("--")]
    existing_id = positional[0] if positional else ""
    pic = await ctx.transport.get_profile_picture_info(
        jid,
        preview="--preview" in args,
        is_community="--community" in args,
        existing_id=existing_id,
    )
    if pic is None:
        logger.info(f"No avatar found for {jid}")
    else:
        logger.info(f"Got avatar ID {pic.id}: {pic.url}")
