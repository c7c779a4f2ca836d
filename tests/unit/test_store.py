"""Tests for the SQLAlchemy store and the upsert coordinator."""

import pytest

from scrapers.agenda_sync.errors import RunStateError, StoreError
from scrapers.agenda_sync.models import RunMetrics, RunStatus
from scrapers.agenda_sync.upsert import UpsertCoordinator, collapse_by_key


class TestSqlStoreRuns:
    """Tests for scrape run persistence."""

    def test_create_run(self, store):
        """Test that a new run starts as running with zero counters."""
        run = store.create_run("sympla", "salvador")

        assert run.status is RunStatus.RUNNING
        assert run.ended_at is None
        assert run.metrics == RunMetrics()
        stored = store.get_run(run.id)
        assert stored.id == run.id
        assert stored.status is RunStatus.RUNNING

    def test_finalize_run(self, store):
        run = store.create_run("sympla", "salvador")
        metrics = RunMetrics(items_fetched=10, items_valid=8, items_invalid=2, items_upserted=8)

        finalized = store.finalize_run(run.id, RunStatus.SUCCESS, metrics)

        assert finalized.status is RunStatus.SUCCESS
        assert finalized.ended_at is not None
        assert finalized.metrics == metrics
        assert finalized.error_message is None

    def test_finalize_twice_rejected(self, store):
        """Test that a terminal run cannot be finalized again."""
        run = store.create_run("elcabong", "salvador")
        store.finalize_run(run.id, RunStatus.FAILED, RunMetrics(), "boom")

        with pytest.raises(RunStateError):
            store.finalize_run(run.id, RunStatus.SUCCESS, RunMetrics())
        assert store.get_run(run.id).status is RunStatus.FAILED

    def test_finalize_as_running_rejected(self, store):
        run = store.create_run("elcabong", "salvador")
        with pytest.raises(RunStateError):
            store.finalize_run(run.id, RunStatus.RUNNING, RunMetrics())

    def test_finalize_unknown_run(self, store):
        with pytest.raises(StoreError):
            store.finalize_run("missing", RunStatus.SUCCESS, RunMetrics())


class TestSqlStoreEvents:
    """Tests for event upserts keyed on (source, external_id)."""

    def test_insert_and_read_back(self, store, sample_event):
        assert store.upsert_events([sample_event]) == 1
        assert store.get_event("elcabong", sample_event.external_id) == sample_event

    def test_empty_batch(self, store):
        assert store.upsert_events([]) == 0
        assert store.count_events() == 0

    def test_reupsert_overwrites(self, store, event_factory):
        """Test that a second upsert of a key replaces the mutable fields."""
        store.upsert_events([event_factory("1", title="Original", venue_name="Casa")])
        store.upsert_events([event_factory("1", title="Atualizado", venue_name=None)])

        stored = store.get_event("sympla", "1")
        assert stored.title == "Atualizado"
        assert stored.venue_name is None
        assert store.count_events() == 1

    def test_same_id_different_source(self, store, event_factory):
        """Test that identity is scoped by source."""
        store.upsert_events([
            event_factory("abc", source="sympla"),
            event_factory("abc", source="elcabong", url="https://elcabong.com.br/agenda/"),
        ])
        assert store.count_events() == 2
        assert store.count_events(source="sympla") == 1

    def test_upsert_is_idempotent(self, store, event_factory):
        batch = [event_factory(str(i)) for i in range(5)]
        store.upsert_events(batch)
        store.upsert_events(batch)
        assert store.count_events() == 5

    def test_large_batch(self, store, event_factory):
        batch = [event_factory(str(i)) for i in range(120)]
        assert store.upsert_events(batch) == 120
        assert store.count_events() == 120

    def test_events_never_deleted(self, store, event_factory):
        """Test that events missing from a later batch stay in the store."""
        store.upsert_events([event_factory("1"), event_factory("2")])
        store.upsert_events([event_factory("2")])
        assert store.get_event("sympla", "1") is not None


class TestUpsertCoordinator:
    """Tests for batch upsert coordination."""

    def test_empty_batch_skips_store(self):
        class ExplodingStore:
            def upsert_events(self, events):
                raise AssertionError("store must not be called")

        assert UpsertCoordinator(ExplodingStore()).upsert([]) == 0

    def test_upsert_returns_count(self, store, event_factory):
        count = UpsertCoordinator(store).upsert([event_factory("1"), event_factory("2")])
        assert count == 2

    def test_repeated_keys_collapse_last_wins(self, event_factory):
        events = [
            event_factory("1", title="Primeiro"),
            event_factory("2"),
            event_factory("1", title="Último"),
        ]
        collapsed = collapse_by_key(events)
        assert [e.external_id for e in collapsed] == ["2", "1"]
        assert collapsed[1].title == "Último"

    def test_store_failure_propagates(self, event_factory):
        class BrokenStore:
            def upsert_events(self, events):
                raise StoreError("database is down")

        with pytest.raises(StoreError):
            UpsertCoordinator(BrokenStore()).upsert([event_factory("1")])
