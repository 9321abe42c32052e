"""wahelper configuration management."""

import json
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

WAHELPER_HOME = Path(os.environ.get("WAHELPER_HOME", Path.home() / ".wahelper"))
WAHELPER_CONFIG = WAHELPER_HOME / "config.json"

DEFAULT_PORT = 7774


class Mode(Enum):
    """Operating mode of the session agent."""

    NONE = "none"
    SEND = "send"
    BOTH = "both"

    @property
    def can_send(self) -> bool:
        return self in (Mode.SEND, Mode.BOTH)

    @property
    def can_receive(self) -> bool:
        return self is Mode.BOTH

    @classmethod
    def parse(cls, value: "str | Mode") -> "Mode":
        if isinstance(value, Mode):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid mode {value!r}, expected one of: none, send, both") from None


@dataclass
class TimingConfig:
    """Fixed delays and timeouts (seconds)."""

    pair_timeout: float = 3.0
    reconnect_backoff: float = 2.0
    delivery_timeout: float = 1.0
    auto_delete_delay: float = 30.0
    control_grace_delay: float = 1.0


@dataclass
class PollConfig:
    """Pending poll record retention."""

    max_entries: int = 1024
    ttl_seconds: float = 7 * 24 * 3600


@dataclass
class WahelperConfig:
    """Top-level wahelper configuration."""

    log_level: str = "INFO"
    debug: bool = False
    db_dialect: str = "sqlite3"
    db_address: str = "file:wahelper.db?_foreign_keys=on"
    request_full_sync: bool = False
    http_port: int = DEFAULT_PORT
    mode: Mode = Mode.NONE
    save_media: bool = False
    auto_delete_media: bool = False
    transport: str = ""  # "package.module:factory"
    ffmpeg: str = "ffmpeg"
    work_dir: Path = field(default_factory=Path.cwd)
    timing: TimingConfig = field(default_factory=TimingConfig)
    polls: PollConfig = field(default_factory=PollConfig)

    def __post_init__(self):
        self.mode = Mode.parse(self.mode)
        self.work_dir = Path(self.work_dir)

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level.upper()

    @classmethod
    def load(cls, path: Path | None = None) -> "WahelperConfig":
        """Load config from disk or return defaults.

        Env vars (WAHELPER_PORT, WAHELPER_MODE, WAHELPER_TRANSPORT,
        WAHELPER_LOG_LEVEL) override file values.
        """
        config = cls()
        path = path or WAHELPER_CONFIG
        if path.exists():
            data = json.loads(path.read_text())
            if "timing" in data:
                for k, v in data.pop("timing").items():
                    setattr(config.timing, k, float(v))
            if "polls" in data:
                for k, v in data.pop("polls").items():
                    setattr(config.polls, k, v)
            for k, v in data.items():
                config.set_value(k, v)

        port = os.environ.get("WAHELPER_PORT")
        mode = os.environ.get("WAHELPER_MODE")
        transport = os.environ.get("WAHELPER_TRANSPORT")
        log_level = os.environ.get("WAHELPER_LOG_LEVEL")

        if port:
            config.http_port = int(port)
        if mode:
            config.mode = Mode.parse(mode)
        if transport:
            config.transport = transport
        if log_level:
            config.log_level = log_level.upper()

        return config

    def set_value(self, key: str, value) -> None:
        """Set a top-level or dotted (``timing.pair_timeout``) key from a raw value."""
        if "." in key:
            section, _, name = key.partition(".")
            target = getattr(self, section, None)
            if target is None or not hasattr(target, name):
                raise KeyError(key)
            current = getattr(target, name)
            setattr(target, name, type(current)(value))
            return
        if not hasattr(self, key) or key in ("timing", "polls"):
            raise KeyError(key)
        current = getattr(self, key)
        if key == "mode":
            value = Mode.parse(value)
        elif key == "work_dir":
            value = Path(value)
        elif isinstance(current, bool):
            value = value if isinstance(value, bool) else str(value).lower() in ("1", "true", "yes", "on")
        elif isinstance(current, int):
            value = int(value)
        setattr(self, key, value)

    def to_dict(self) -> dict:
        return {
            "log_level": self.log_level,
            "debug": self.debug,
            "db_dialect": self.db_dialect,
            "db_address": self.db_address,
            "request_full_sync": self.request_full_sync,
            "http_port": self.http_port,
            "mode": self.mode.value,
            "save_media": self.save_media,
            "auto_delete_media": self.auto_delete_media,
            "transport": self.transport,
            "ffmpeg": self.ffmpeg,
            "timing": {
                "pair_timeout": self.timing.pair_timeout,
                "reconnect_backoff": self.timing.reconnect_backoff,
                "delivery_timeout": self.timing.delivery_timeout,
                "auto_delete_delay": self.timing.auto_delete_delay,
                "control_grace_delay": self.timing.control_grace_delay,
            },
            "polls": {
                "max_entries": self.polls.max_entries,
                "ttl_seconds": self.polls.ttl_seconds,
            },
        }

    def save(self, path: Path | None = None) -> None:
        """Persist config to disk."""
        path = path or WAHELPER_CONFIG
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2))


def ensure_work_dirs(config: WahelperConfig) -> None:
    """Create the media area and reset the scratch area."""
    tmp = config.work_dir / ".tmp"
    shutil.rmtree(tmp, ignore_errors=True)
    tmp.mkdir(parents=True, exist_ok=True)
    (config.work_dir / "media").mkdir(parents=True, exist_ok=True)
