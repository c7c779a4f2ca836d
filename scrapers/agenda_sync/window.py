"""Time-window filtering for sources that list far-future events."""

from datetime import datetime, timedelta
from typing import Iterable, Union

from .dates import parse_canonical
from .models import Event


def in_window(start: Union[str, datetime, None], now: datetime, until_days: int) -> bool:
    """
    Check whether an event starts within [now, now + until_days].

    Both ends are inclusive. A start that cannot be parsed is never in
    the window.
    """
    if until_days < 1:
        raise ValueError(f"until_days must be at least 1, got {until_days}")

    start_dt = parse_canonical(start)
    if start_dt is None:
        return False

    reference = parse_canonical(now)
    return reference <= start_dt <= reference + timedelta(days=until_days)


def filter_window(
    events: Iterable[Event], now: datetime, until_days: int
) -> tuple[list[Event], list[Event]]:
    """Split events into (kept, dropped) by the window."""
    kept: list[Event] = []
    dropped: list[Event] = []
    for event in events:
        if in_window(event.start_datetime, now, until_days):
            kept.append(event)
        else:
            dropped.append(event)
    return kept, dropped
