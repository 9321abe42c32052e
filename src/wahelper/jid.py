"""Canonical addresses (JIDs) and the user-input address parser.

A JID is ``user[.agent][:device]@server``. Plain users live on
``s.whatsapp.net``, groups on ``g.us`` and status updates are posted to
``status@broadcast``.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_USER_SERVER = "s.whatsapp.net"
GROUP_SERVER = "g.us"
BROADCAST_SERVER = "broadcast"
NEWSLETTER_SERVER = "newsletter"
HIDDEN_USER_SERVER = "lid"


@dataclass(frozen=True)
class JID:
    """Canonical (localpart, domain) identifier for a person, group or broadcast."""

    user: str = ""
    server: str = ""
    agent: int = 0
    device: int = 0

    @classmethod
    def parse(cls, raw: str) -> "JID":
        """Parse a full JID string. Raises ValueError on malformed input."""
        if raw.count("@") > 1:
            raise ValueError(f"unexpected number of @s in JID: {raw!r}")
        user, sep, server = raw.partition("@")
        if not sep:
            return cls(server=raw)
        agent = device = 0
        if ":" in user:
            user, _, device_part = user.partition(":")
            try:
                device = int(device_part)
            except ValueError:
                raise ValueError(f"failed to parse device from {raw!r}") from None
        if "." in user:
            user, _, agent_part = user.partition(".")
            try:
                agent = int(agent_part)
            except ValueError:
                raise ValueError(f"failed to parse agent from {raw!r}") from None
        return cls(user=user, server=server, agent=agent, device=device)

    @property
    def is_group(self) -> bool:
        return self.server == GROUP_SERVER

    @property
    def is_status_broadcast(self) -> bool:
        return self == STATUS_BROADCAST

    @property
    def is_empty(self) -> bool:
        return not self.server

    def to_non_ad(self) -> "JID":
        """Strip agent/device parts, leaving the account-level address."""
        return JID(user=self.user, server=self.server)

    def __str__(self) -> str:
        if self.agent or self.device:
            agent = f".{self.agent}" if self.agent else ""
            return f"{self.user}{agent}:{self.device}@{self.server}"
        if self.user:
            return f"{self.user}@{self.server}"
        return self.server


STATUS_BROADCAST = JID(user="status", server=BROADCAST_SERVER)


def parse_jid(arg: str) -> JID | None:
    """Normalize a user-supplied address into a JID, or None when invalid.

    A leading ``+`` is dropped. Input without ``@`` is a phone number on the
    default user server; anything else must parse and carry a user part.
    """
    if not arg:
        return None
    if arg[0] == "+":
        arg = arg[1:]
    if "@" not in arg:
        if not arg:
            return None
        return JID(user=arg, server=DEFAULT_USER_SERVER)
    try:
        jid = JID.parse(arg)
    except ValueError:
        return None
    if not jid.user:
        return None
    return jid
