"""Tests for scrape run lifecycle tracking."""

import pytest

from scrapers.agenda_sync.errors import RunStateError
from scrapers.agenda_sync.models import RunMetrics, RunStatus
from scrapers.agenda_sync.tracker import MAX_ERROR_LENGTH, RunTracker, error_summary


class TestRunTracker:
    """Tests for run creation and finalization."""

    def test_success_records_counters(self, store):
        """Test the documented 10/8/2/8 counter example."""
        tracker = RunTracker(store)
        run = tracker.start("sympla", "salvador")
        metrics = RunMetrics(items_fetched=10, items_valid=8, items_invalid=2, items_upserted=8)

        finalized = tracker.succeed(run, metrics)

        assert finalized.status is RunStatus.SUCCESS
        assert finalized.items_fetched == 10
        assert finalized.items_valid == 8
        assert finalized.items_invalid == 2
        assert finalized.items_upserted == 8
        assert finalized.ended_at is not None

    def test_failure_records_message(self, store):
        tracker = RunTracker(store)
        run = tracker.start("elcabong", "salvador")

        finalized = tracker.fail(run, RunMetrics(items_fetched=3), ValueError("layout changed"))

        assert finalized.status is RunStatus.FAILED
        assert finalized.error_message == "layout changed"
        assert finalized.items_fetched == 3
        assert finalized.items_upserted == 0

    def test_failure_message_never_empty(self, store):
        tracker = RunTracker(store)
        run = tracker.start("elcabong", "salvador")
        finalized = tracker.fail(run, RunMetrics(), RuntimeError())
        assert finalized.error_message == "RuntimeError"

    def test_finalized_run_cannot_transition(self, store):
        """Test that a terminal run object is refused before hitting the store."""
        tracker = RunTracker(store)
        run = tracker.start("sympla", "salvador")
        finalized = tracker.succeed(run, RunMetrics())

        with pytest.raises(RunStateError):
            tracker.fail(finalized, RunMetrics(), "late failure")

    def test_stale_run_object_rejected_by_store(self, store):
        tracker = RunTracker(store)
        run = tracker.start("sympla", "salvador")
        tracker.succeed(run, RunMetrics())

        with pytest.raises(RunStateError):
            tracker.succeed(run, RunMetrics())


class TestErrorSummary:
    """Tests for run error messages."""

    def test_first_line_only(self):
        error = ValueError("boom\nTraceback (most recent call last):\n  ...")
        assert error_summary(error) == "boom"

    def test_truncated(self):
        message = error_summary(ValueError("x" * 2000))
        assert len(message) == MAX_ERROR_LENGTH
        assert message.endswith("...")
