"""Tests for wahelper.polls: poll record store and vote resolution."""

import hashlib

import pytest

from wahelper.polls import PollLookupError, PollStore, option_hash


def _digest(text):
    return hashlib.sha256(text.encode()).digest()


class TestPollStore:
    """Save, resolve and evict pending polls."""

    def test_resolve_vote(self, polls):
        polls.save("3EB0POLL", "Lunch?", ["Pizza", "Sushi", "Tacos"])
        question, options = polls.resolve_vote("3EB0POLL", [_digest("Tacos"), _digest("Pizza")])
        assert question == "Lunch?"
        assert options == ["Tacos", "Pizza"]

    def test_empty_vote_resolves_to_no_options(self, polls):
        polls.save("3EB0POLL", "Lunch?", ["Pizza", "Sushi"])
        assert polls.resolve_vote("3EB0POLL", []) == ("Lunch?", [])

    def test_unknown_poll(self, polls):
        with pytest.raises(PollLookupError):
            polls.resolve_vote("missing", [_digest("Pizza")])

    def test_unknown_option(self, polls):
        polls.save("3EB0POLL", "Lunch?", ["Pizza", "Sushi"])
        with pytest.raises(PollLookupError):
            polls.resolve_vote("3EB0POLL", [_digest("Burgers")])

    def test_written_once(self, polls):
        polls.save("3EB0POLL", "Lunch?", ["Pizza", "Sushi"])
        with pytest.raises(ValueError):
            polls.save("3EB0POLL", "Dinner?", ["Soup", "Salad"])
        assert polls.get("3EB0POLL").question == "Lunch?"

    def test_mirror_files(self, polls, tmp_path):
        polls.save("3EB0POLL", "Lunch?", ["Pizza", "Sushi"])
        mirror = tmp_path / ".tmp"
        assert (mirror / "poll_question_3EB0POLL").read_text() == "Lunch?"
        assert (mirror / f"poll_option_{option_hash('Sushi')}").read_text() == "Sushi"

    def test_expired_entries_dropped(self, tmp_path):
        now = [1000.0]
        store = PollStore(tmp_path, ttl_seconds=60, clock=lambda: now[0])
        store.save("old", "Q?", ["a", "b"])
        now[0] += 61
        assert store.get("old") is None
        assert "old" not in store
        assert not (tmp_path / "poll_question_old").exists()

    def test_count_eviction_drops_oldest(self, tmp_path):
        store = PollStore(tmp_path, max_entries=2)
        store.save("p1", "Q1?", ["a", "b"])
        store.save("p2", "Q2?", ["a", "c"])
        store.save("p3", "Q3?", ["d", "e"])
        assert len(store) == 2
        assert "p1" not in store
        assert "p3" in store
        # "a" is still referenced by p2
        assert (tmp_path / f"poll_option_{option_hash('a')}").exists()
        assert not (tmp_path / f"poll_option_{option_hash('b')}").exists()

    def test_works_without_mirror(self):
        store = PollStore()
        store.save("p1", "Q?", ["a", "b"])
        assert store.resolve_vote("p1", [_digest("b")]) == ("Q?", ["b"])
