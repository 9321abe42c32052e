"""Group and community commands."""

from __future__ import annotations

import logging

from wahelper.commands.registry import (
    Command,
    CommandContext,
    UsageError,
    command,
    parse_jid_arg,
    require_args,
    require_group,
)

logger = logging.getLogger(__name__)

PARTICIPANT_ACTIONS = ("add", "remove", "promote", "demote")


@command(Command.GETGROUP, "getgroup <jid>")
async def handle_getgroup(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    group = require_group(args[0])
    info = await ctx.transport.get_group_info(group)
    logger.info(f"Group info: {info}")


@command(Command.SUBGROUPS, "subgroups <jid>")
async def handle_subgroups(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    group = require_group(args[0])
    resp = await ctx.transport.get_sub_groups(group)
    logger.info(f"Subgroups: {resp}")


@command(Command.COMMUNITY_PARTICIPANTS, "communityparticipants <jid>")
async def handle_community_participants(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    group = require_group(args[0])
    resp = await ctx.transport.get_community_participants(group)
    logger.info(f"Community participants: {resp}")


@command(Command.GET_INVITE_LINK, "getinvitelink <jid>")
async def handle_get_invite_link(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    group = require_group(args[0])
    link = await ctx.transport.get_group_invite_link(group)
    logger.info(f"Invite link: {link}")


@command(Command.QUERY_INVITE_LINK, "queryinvitelink <link>")
async def handle_query_invite_link(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    resp = await ctx.transport.query_group_invite_link(args[0])
    logger.info(f"Invite link info: {resp}")


@command(Command.JOIN_INVITE_LINK, "joininvitelink <link>")
async def handle_join_invite_link(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    resp = await ctx.transport.join_group_with_link(args[0])
    logger.info(f"Join invite link response: {resp}")


@command(Command.UPDATE_PARTICIPANT, "updateparticipant <group jid> <add|remove|promote|demote> <jid...>")
async def handle_update_participant(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 3)
    group = require_group(args[0])
    action = args[1].lower()
    if action not in PARTICIPANT_ACTIONS:
        raise UsageError(f"Unknown participant action {args[1]!r}")
    participants = [parse_jid_arg(a) for a in args[2:]]
    resp = await ctx.transport.update_group_participants(group, participants, action)
    logger.info(f"Update participant response: {resp}")


@command(Command.GET_REQUEST_PARTICIPANT, "getrequestparticipant <jid>")
async def handle_get_request_participant(ctx: CommandContext, args: list[str]) -> None:
    require_args(args, 1)
    group = require_group(args[0])
    resp = await ctx.transport.get_group_join_requests(group)
    logger.info(f"Request participant: {resp}")


@command(Command.LISTGROUPS, "listgroups")
async def handle_listgroups(ctx: CommandContext, args: list[str]) -> None:
    groups = await ctx.transport.get_joined_groups()
    ctx.console.print_json(
        data={
            "groups": [
                {
                    "jid": str(g.jid),
                    "name": g.name,
                    "participants": [str(p) for p in g.participants],
                }
                for g in groups
            ]
        }
    )
