"""Tests for per-run deduplication."""

from scrapers.agenda_sync.dedup import Deduplicator


class TestDeduplicator:
    """Tests for the seen-id set."""

    def test_first_occurrence_accepted(self, event_factory):
        """Test that an unseen id is accepted and recorded."""
        dedup = Deduplicator()
        assert dedup.accept(event_factory("1")) is True
        assert "1" in dedup
        assert len(dedup) == 1

    def test_repeat_rejected(self, event_factory):
        """Test that a second occurrence of an id is rejected."""
        dedup = Deduplicator()
        dedup.accept(event_factory("1", title="Primeiro"))
        assert dedup.accept(event_factory("1", title="Segundo")) is False
        assert len(dedup) == 1

    def test_filter_keeps_first_in_order(self, event_factory):
        events = [
            event_factory("1", title="A"),
            event_factory("2", title="B"),
            event_factory("1", title="A again"),
            event_factory("3", title="C"),
            event_factory("2", title="B again"),
        ]
        result = Deduplicator().filter(events)
        assert [e.title for e in result] == ["A", "B", "C"]

    def test_scoped_to_instance(self, event_factory):
        """Test that a new run starts with an empty set."""
        first = Deduplicator()
        first.accept(event_factory("1"))
        second = Deduplicator()
        assert second.accept(event_factory("1")) is True

    def test_seen_is_read_only_snapshot(self):
        dedup = Deduplicator()
        dedup.accept_id("x")
        assert dedup.seen == frozenset({"x"})
