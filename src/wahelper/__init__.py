"""wahelper: WhatsApp session agent with a local HTTP control plane."""

__version__ = "0.3.0"

from wahelper.config import Mode, WahelperConfig
from wahelper.daemon import WahelperDaemon
from wahelper.jid import JID, parse_jid
from wahelper.normalizer import MessageNormalizer
from wahelper.polls import PollStore
from wahelper.server import ControlServer
from wahelper.session import Session, SessionManager, SessionState
from wahelper.transport import Transport, TransportError

__all__ = [
    "Mode",
    "WahelperConfig",
    "WahelperDaemon",
    "JID",
    "parse_jid",
    "MessageNormalizer",
    "PollStore",
    "ControlServer",
    "Session",
    "SessionManager",
    "SessionState",
    "Transport",
    "TransportError",
]
