"""El Cabong agenda extractor (WP Event Manager markup)."""

from typing import Optional

import structlog
from bs4 import BeautifulSoup, Tag

from ..config import Settings
from ..models import RawCandidate, ScraperInput
from .base import PageSink, paginate
from .http import PageFetcher

logger = structlog.get_logger()

AGENDA_URL = "https://elcabong.com.br/agenda/"

TITLE_SELECTOR = "h3.wpem-heading-text"
DATE_SELECTOR = "span.wpem-event-date-time-text"
LOCATION_SELECTOR = "span.wpem-event-location-text"


def agenda_urls(max_pages: int = 10) -> list[str]:
    """Agenda page URLs in crawl order: /agenda/, /agenda/page/2/, ..."""
    return [AGENDA_URL] + [f"{AGENDA_URL}page/{page}/" for page in range(2, max_pages + 1)]


def parse_agenda_page(html: str, url: str = "") -> list[RawCandidate]:
    """
    Extract raw candidates from one agenda page.

    Event boxes are parsed individually. If none yields a candidate, titles,
    dates and locations found anywhere on the page are paired by position.
    """
    soup = BeautifulSoup(html, "html.parser")

    candidates = [
        candidate
        for candidate in (_parse_event_box(box) for box in soup.select("article.wpem-event-box"))
        if candidate
    ]

    if not candidates:
        candidates = _parse_parallel_lists(soup)

    logger.debug("agenda_parsed", url=url, candidates=len(candidates))
    return candidates


async def extract(
    run_input: ScraperInput,
    fetcher: PageFetcher,
    sink: PageSink,
    settings: Settings,
) -> None:
    pages = await paginate(
        fetcher, agenda_urls(settings.elcabong_max_pages), parse_agenda_page, sink
    )
    logger.info("agenda_crawled", pages=pages)


def _text(node: Optional[Tag]) -> Optional[str]:
    if node is None:
        return None
    text = " ".join(node.get_text(" ").split())
    return text or None


def _parse_event_box(box: Tag) -> Optional[RawCandidate]:
    title = _text(box.select_one(TITLE_SELECTOR) or box.find("h3"))
    date_str = _text(box.select_one(DATE_SELECTOR))
    if not title and not date_str:
        return None

    link = None
    for anchor in box.find_all("a", href=True):
        href = anchor["href"]
        if "elcabong" in href and "evento" in href:
            link = href
            break
        if link is None:
            link = href

    img = box.find("img")
    image = img.get("src") if img is not None else None

    return {
        "title": title,
        "dateStr": date_str,
        "location": _text(box.select_one(LOCATION_SELECTOR)),
        "eventUrl": link,
        "imageUrl": image or None,
    }


def _parse_parallel_lists(soup: BeautifulSoup) -> list[RawCandidate]:
    titles = [_text(node) for node in soup.select(TITLE_SELECTOR)]
    dates = [_text(node) for node in soup.select(DATE_SELECTOR)]
    locations = [_text(node) for node in soup.select(LOCATION_SELECTOR)]

    candidates = []
    for index, title in enumerate(titles):
        if not title:
            continue
        candidates.append({
            "title": title,
            "dateStr": dates[index] if index < len(dates) else None,
            "location": locations[index] if index < len(locations) else None,
        })
    return candidates
