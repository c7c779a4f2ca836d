"""Batch upsert of canonical events keyed on (source, external_id)."""

from typing import Sequence

import structlog

from .models import Event
from .storage.base import EventStore

logger = structlog.get_logger()


def collapse_by_key(events: Sequence[Event]) -> list[Event]:
    """
    Keep one event per conflict key, the last one winning.

    A single INSERT ... ON CONFLICT statement cannot touch the same row
    twice, so repeated keys inside one batch are merged first.
    """
    by_key: dict[tuple[str, str], Event] = {}
    for event in events:
        by_key.pop(event.conflict_key, None)
        by_key[event.conflict_key] = event
    return list(by_key.values())


class UpsertCoordinator:
    """Writes a run's final batch to the store."""

    def __init__(self, store: EventStore):
        self.store = store

    def upsert(self, events: Sequence[Event]) -> int:
        """Upsert a batch; an empty batch is a no-op returning 0."""
        if not events:
            return 0

        batch = collapse_by_key(events)
        if len(batch) < len(events):
            logger.info("batch_keys_collapsed", before=len(events), after=len(batch))

        count = self.store.upsert_events(batch)
        logger.info("batch_upserted", count=count)
        return count
