"""
Run orchestration.

One run of one source:

    create run -> extract pages -> normalize + dedup per page
               -> window filter -> upsert -> finalize

Sources run sequentially and in isolation; a failing source never stops
the next one.
"""

import time
from datetime import date, datetime
from typing import Mapping, Optional, Sequence

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars

from .config import Settings
from .dates import LOCAL_TZ
from .dedup import Deduplicator
from .errors import AgendaSyncError, UnknownSourceError
from .models import Event, RawCandidate, RunMetrics, RunOutcome, RunStatus, ScraperInput
from .normalizer import SourceStrategy, get_strategy, normalize
from .sources.base import Extractor
from .sources.http import PageFetcher
from .storage.base import EventStore
from .tracker import RunTracker, error_summary
from .upsert import UpsertCoordinator
from .window import filter_window

logger = structlog.get_logger()


def local_now() -> datetime:
    """Current naive local time."""
    return datetime.now(LOCAL_TZ).replace(tzinfo=None)


class RunContext:
    """
    Per-run state shared between an extractor and the pipeline.

    Extractors call the context (or ``accept_page``) once per parsed page;
    the return value is how many candidates on that page were new
    identities for this run.
    """

    def __init__(
        self,
        run_input: ScraperInput,
        strategy: SourceStrategy,
        now: Optional[datetime] = None,
        today: Optional[date] = None,
    ):
        self.run_input = run_input
        self.strategy = strategy
        self.now = now or local_now()
        self.today = today or self.now.date()
        self.dedup = Deduplicator()
        self.metrics = RunMetrics()
        self.events: list[Event] = []
        self.duplicates = 0

    def accept_page(self, candidates: Sequence[RawCandidate]) -> int:
        new = 0
        for raw in candidates:
            self.metrics.items_fetched += 1
            event = normalize(raw, self.run_input, today=self.today)
            if event is None:
                self.metrics.items_invalid += 1
                continue
            if not self.dedup.accept(event):
                self.duplicates += 1
                continue
            self.events.append(event)
            new += 1
        return new

    __call__ = accept_page

    def final_batch(self) -> list[Event]:
        """Unique events, window-filtered when the source requires it."""
        if not self.strategy.apply_window:
            return list(self.events)

        kept, dropped = filter_window(self.events, self.now, self.run_input.until_days)
        if dropped:
            logger.info(
                "events_out_of_window",
                dropped=len(dropped),
                kept=len(kept),
                until_days=self.run_input.until_days,
            )
        return kept


async def run_source(
    run_input: ScraperInput,
    store: EventStore,
    extractor: Extractor,
    fetcher: Optional[PageFetcher] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> RunOutcome:
    """
    Execute one run of one source.

    Extraction and upsert failures finalize the run as failed with whatever
    counters were accumulated. Failures creating the run propagate.

    Args:
        run_input: Source key, city and window length
        store: Durable store for runs and events
        extractor: Async callable producing pages of raw candidates
        fetcher: Shared HTTP fetcher handed to the extractor
        settings: Tunables handed to the extractor
        now: Reference time for the window filter (naive local)

    Returns:
        RunOutcome for the run
    """
    settings = settings or Settings()
    strategy = get_strategy(run_input.source)
    tracker = RunTracker(store)
    coordinator = UpsertCoordinator(store)

    started = time.monotonic()
    run = tracker.start(run_input.source, run_input.city)
    context = RunContext(run_input, strategy, now=now)
    bind_contextvars(source=run_input.source, run_id=run.id)

    try:
        await extractor(run_input, fetcher, context, settings)
        batch = context.final_batch()
        context.metrics.items_valid = len(batch)
        context.metrics.items_upserted = coordinator.upsert(batch)
        tracker.succeed(run, context.metrics)
        status, error_message = RunStatus.SUCCESS, None
    except Exception as e:
        status, error_message = RunStatus.FAILED, error_summary(e)
        logger.error("scrape_failed", error=error_message, error_type=type(e).__name__)
        try:
            tracker.fail(run, context.metrics, e)
        except AgendaSyncError as finalize_error:
            logger.error("run_finalize_failed", error=str(finalize_error))
    finally:
        unbind_contextvars("source", "run_id")

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(
        "source_completed",
        source=run_input.source,
        run_id=run.id,
        status=status.value,
        duplicates=context.duplicates,
        duration_ms=duration_ms,
    )
    return RunOutcome(
        source=run_input.source,
        run_id=run.id,
        status=status,
        metrics=context.metrics,
        error_message=error_message,
        duration_ms=duration_ms,
    )


async def run_all(
    inputs: Sequence[ScraperInput],
    store: EventStore,
    extractors: Mapping[str, Extractor],
    fetcher: Optional[PageFetcher] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> list[RunOutcome]:
    """Run each source in turn; never raises, one outcome per input."""
    outcomes = []
    for run_input in inputs:
        try:
            extractor = extractors.get(run_input.source)
            if extractor is None:
                raise UnknownSourceError(run_input.source)
            outcome = await run_source(
                run_input, store, extractor, fetcher=fetcher, settings=settings, now=now
            )
        except Exception as e:
            message = error_summary(e)
            logger.error("source_failed", source=run_input.source, error=message)
            outcome = RunOutcome(
                source=run_input.source,
                status=RunStatus.FAILED,
                error_message=message,
            )
        outcomes.append(outcome)
    return outcomes
