"""Pending poll records: map anonymized votes back to question/option text.

Votes arrive as SHA-256 hashes of the selected option text, referencing the
poll-creation message id. Records are written once when a poll is sent and
read by the normalizer when votes come in. Entries are evicted by age and
by count; every record is mirrored under ``.tmp`` as
``poll_question_<id>`` / ``poll_option_<sha256 hex>``.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)


def option_hash(option: str) -> str:
    return hashlib.sha256(option.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class PendingPoll:
    message_id: str
    question: str
    options: dict[str, str]  # sha256 hex -> option text
    created_at: float


class PollLookupError(LookupError):
    """A vote cannot be rendered back to text."""


class PollStore:
    """In-memory poll correlation store with TTL + LRU eviction."""

    def __init__(
        self,
        mirror_dir: Path | None = None,
        max_entries: int = 1024,
        ttl_seconds: float = 7 * 24 * 3600,
        clock: Callable[[], float] = time.time,
    ):
        self._mirror_dir = mirror_dir
        self._max_entries = max(1, max_entries)
        self._ttl = ttl_seconds
        self._clock = clock
        self._polls: OrderedDict[str, PendingPoll] = OrderedDict()

    def __len__(self) -> int:
        return len(self._polls)

    def __contains__(self, message_id: str) -> bool:
        return self.get(message_id) is not None

    def save(self, message_id: str, question: str, options: list[str]) -> PendingPoll:
        """Record a freshly sent poll. Each message id is written once."""
        if message_id in self._polls:
            raise ValueError(f"Poll {message_id} already recorded")
        poll = PendingPoll(
            message_id=message_id,
            question=question,
            options={option_hash(o): o for o in options},
            created_at=self._clock(),
        )
        self._polls[message_id] = poll
        self._write_mirror(poll)
        self._evict()
        logger.debug(f"Recorded poll {message_id} with {len(poll.options)} options")
        return poll

    def get(self, message_id: str) -> PendingPoll | None:
        poll = self._polls.get(message_id)
        if poll is None:
            return None
        if self._expired(poll):
            self._drop(message_id)
            return None
        return poll

    def resolve_vote(self, message_id: str, selected: list[bytes]) -> tuple[str, list[str]]:
        """Return ``(question, selected option texts)`` for a decrypted vote."""
        poll = self.get(message_id)
        if poll is None:
            raise PollLookupError(f"no question recorded for poll {message_id}")
        chosen = []
        for digest in selected:
            key = digest.hex().lower()
            try:
                chosen.append(poll.options[key])
            except KeyError:
                raise PollLookupError(f"no option {key} recorded for poll {message_id}") from None
        return poll.question, chosen

    def _expired(self, poll: PendingPoll) -> bool:
        return self._ttl > 0 and self._clock() - poll.created_at > self._ttl

    def _evict(self) -> None:
        for message_id in [m for m, p in self._polls.items() if self._expired(p)]:
            self._drop(message_id)
        while len(self._polls) > self._max_entries:
            oldest = next(iter(self._polls))
            self._drop(oldest)

    def _drop(self, message_id: str) -> None:
        poll = self._polls.pop(message_id, None)
        if poll is None or self._mirror_dir is None:
            return
        (self._mirror_dir / f"poll_question_{message_id}").unlink(missing_ok=True)
        still_used = {h for p in self._polls.values() for h in p.options}
        for digest in poll.options:
            if digest not in still_used:
                (self._mirror_dir / f"poll_option_{digest}").unlink(missing_ok=True)

    def _write_mirror(self, poll: PendingPoll) -> None:
        if self._mirror_dir is None:
            return
        try:
            self._mirror_dir.mkdir(parents=True, exist_ok=True)
            (self._mirror_dir / f"poll_question_{poll.message_id}").write_text(poll.question)
            for digest, text in poll.options.items():
                (self._mirror_dir / f"poll_option_{digest}").write_text(text)
        except OSError as e:
            logger.warning(f"Failed to mirror poll {poll.message_id} to {self._mirror_dir}: {e}")
