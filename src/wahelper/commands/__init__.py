"""Command dispatch table.

Every ``Command`` has exactly one handler, registered with ``@command`` in
one of the handler modules imported below. ``stop`` and ``restart`` are not
table commands; the daemon handles them before lookup.
"""

from __future__ import annotations

import logging
from typing import Sequence

from wahelper.commands.registry import (
    Command,
    CommandContext,
    UsageError,
    registered,
)
from wahelper.commands import account, group, media, misc, newsletter, send  # noqa: F401
from wahelper.transport import TransportError

logger = logging.getLogger(__name__)

STOP = "stop"
RESTART = "restart"
CONTROL_COMMANDS = frozenset({STOP, RESTART})

__all__ = [
    "CONTROL_COMMANDS",
    "Command",
    "CommandContext",
    "CommandTable",
    "RESTART",
    "STOP",
    "UsageError",
]


class CommandTable:
    """Maps lower-cased command names to their handlers."""

    def __init__(self, context: CommandContext):
        self._context = context
        self._registry = registered()
        missing = [c.value for c in Command if c not in self._registry]
        if missing:
            raise RuntimeError(f"Commands without a handler: {', '.join(missing)}")

    @property
    def context(self) -> CommandContext:
        return self._context

    def names(self) -> list[str]:
        return [c.value for c in Command]

    def usage(self, name: str) -> str:
        cmd = Command.lookup(name)
        return self._registry[cmd].usage if cmd else ""

    async def execute(self, name: str, args: Sequence[str]) -> bool:
        """Run one command. Failures are logged and reported as False, never raised."""
        cmd = Command.lookup(name)
        if cmd is None:
            logger.warning(f"Unknown command: {name}")
            return False
        registration = self._registry[cmd]
        try:
            await registration.handler(self._context, list(args))
        except UsageError as e:
            logger.error(f"Error executing command {cmd.value}: {e}")
            logger.error(f"Usage: {registration.usage}")
            return False
        except TransportError as e:
            logger.error(f"Error executing command {cmd.value}: {e}")
            return False
        except Exception as e:
            logger.exception(f"Error executing command {cmd.value}: {e}")
            return False
        return True
