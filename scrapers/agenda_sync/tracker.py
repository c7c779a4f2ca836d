"""
Scrape run lifecycle tracking.

running -> success | failed, exactly once. Counters are written once at
finalize time. A run that never finalizes (crash) stays running.
"""

from typing import Optional

import structlog

from .errors import RunStateError
from .models import RunMetrics, RunStatus, ScrapeRun
from .storage.base import EventStore

logger = structlog.get_logger()

MAX_ERROR_LENGTH = 500


def error_summary(error: BaseException) -> str:
    """Short diagnostic for a failed run: the message only, never a traceback."""
    message = str(error).strip() or type(error).__name__
    message = message.splitlines()[0]
    if len(message) > MAX_ERROR_LENGTH:
        message = message[: MAX_ERROR_LENGTH - 3] + "..."
    return message


class RunTracker:
    """Records one run per source invocation in the store."""

    def __init__(self, store: EventStore):
        self.store = store

    def start(self, source: str, city: str) -> ScrapeRun:
        run = self.store.create_run(source, city)
        logger.info("run_started", source=source, city=city, run_id=run.id)
        return run

    def succeed(self, run: ScrapeRun, metrics: RunMetrics) -> ScrapeRun:
        return self._finalize(run, RunStatus.SUCCESS, metrics, None)

    def fail(
        self,
        run: ScrapeRun,
        metrics: RunMetrics,
        error: BaseException | str,
    ) -> ScrapeRun:
        message = error if isinstance(error, str) else error_summary(error)
        return self._finalize(run, RunStatus.FAILED, metrics, message or "unknown error")

    def _finalize(
        self,
        run: ScrapeRun,
        status: RunStatus,
        metrics: RunMetrics,
        error_message: Optional[str],
    ) -> ScrapeRun:
        if run.status.is_terminal:
            raise RunStateError(f"Run {run.id} already finalized as {run.status.value}")

        finalized = self.store.finalize_run(run.id, status, metrics, error_message)
        logger.info(
            "run_finalized",
            source=run.source,
            run_id=run.id,
            status=status.value,
            error=error_message,
            **metrics.model_dump(),
        )
        return finalized
