"""
Per-run deduplication of canonical events.

The same listing often shows up on several paginated pages (and on the
category and main pages of the marketplace). Within one run, only the
first occurrence of an external_id is kept. Identity across runs is the
store's conflict key, not this set.
"""

from typing import Iterable

from .models import Event


class Deduplicator:
    """Seen-id set scoped to one run of one source."""

    def __init__(self):
        self._seen: set[str] = set()

    def accept(self, event: Event) -> bool:
        """Record the event's id; False if it was already accepted this run."""
        return self.accept_id(event.external_id)

    def accept_id(self, external_id: str) -> bool:
        if external_id in self._seen:
            return False
        self._seen.add(external_id)
        return True

    def filter(self, events: Iterable[Event]) -> list[Event]:
        """Keep first occurrences, preserving order."""
        return [event for event in events if self.accept(event)]

    @property
    def seen(self) -> frozenset[str]:
        return frozenset(self._seen)

    def __contains__(self, external_id: object) -> bool:
        return external_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)
