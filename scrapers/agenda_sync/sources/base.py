"""
Extractor contract and the shared listing paginator.

An extractor is an async callable:

    async def extract(run_input, fetcher, sink, settings) -> None

It pushes each page of raw candidates into ``sink`` as soon as the page is
parsed. The sink returns how many of them were new identities for the run,
which is what drives early termination of a listing sequence.
"""

from typing import Awaitable, Callable, Iterable, Optional, Sequence

import structlog

from ..config import Settings
from ..errors import FetchError
from ..models import RawCandidate, ScraperInput
from .http import PageFetcher

logger = structlog.get_logger()

PageSink = Callable[[list[RawCandidate]], int]
PageParser = Callable[[str, str], list[RawCandidate]]
PageEnricher = Callable[[list[RawCandidate]], Awaitable[list[RawCandidate]]]
Extractor = Callable[
    [ScraperInput, Optional[PageFetcher], PageSink, Settings], Awaitable[None]
]


async def paginate(
    fetcher: PageFetcher,
    urls: Iterable[str],
    parse: PageParser,
    sink: PageSink,
    enrich: Optional[PageEnricher] = None,
) -> int:
    """
    Walk a listing sequence page by page.

    Stops at the first page that contributes no new identity, at the first
    page that cannot be fetched, or when ``urls`` is exhausted (the page cap).
    Candidates already handed to the sink are kept in every case.

    Returns:
        Number of pages fetched successfully
    """
    pages = 0
    for url in urls:
        try:
            body = await fetcher.get_text(url)
        except FetchError as e:
            logger.warning("page_fetch_failed", url=url, error=str(e))
            break

        pages += 1
        candidates = parse(body, url)
        if enrich is not None and candidates:
            candidates = await enrich(candidates)

        new = sink(candidates)
        logger.info("page_processed", url=url, candidates=len(candidates), new=new)
        if new == 0:
            break

    return pages


def static_extractor(candidates: Sequence[RawCandidate]) -> Extractor:
    """Extractor replaying candidates captured elsewhere (files, fixtures)."""

    async def extract(
        run_input: ScraperInput,
        fetcher: Optional[PageFetcher],
        sink: PageSink,
        settings: Settings,
    ) -> None:
        sink([dict(candidate) for candidate in candidates])

    return extract
