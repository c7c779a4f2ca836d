"""Store interface the pipeline depends on."""

from typing import Optional, Protocol, Sequence

from ..models import Event, RunMetrics, RunStatus, ScrapeRun


class EventStore(Protocol):
    """Upsert-capable store keyed on (source, external_id)."""

    def create_run(self, source: str, city: str) -> ScrapeRun:
        """Insert a run in the running state."""
        ...

    def finalize_run(
        self,
        run_id: str,
        status: RunStatus,
        metrics: RunMetrics,
        error_message: Optional[str] = None,
    ) -> ScrapeRun:
        """Move a running run to a terminal state with its final counters."""
        ...

    def upsert_events(self, events: Sequence[Event]) -> int:
        """Insert or overwrite events by conflict key; returns rows written."""
        ...

    def get_run(self, run_id: str) -> Optional[ScrapeRun]:
        ...

    def get_event(self, source: str, external_id: str) -> Optional[Event]:
        ...

    def count_events(self, source: Optional[str] = None) -> int:
        ...
