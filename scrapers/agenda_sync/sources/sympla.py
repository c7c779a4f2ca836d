"""
Sympla listing extractor.

Walks every category listing for the city (up to a page cap each), then
the city's main listing. Candidates come from the embedded __NEXT_DATA__
JSON when present and from the rendered event cards otherwise. Events
missing a venue are enriched from their detail page, a bounded number of
times per run.
"""

import json
import re
from datetime import datetime
from functools import partial
from typing import Any, Optional
from urllib.parse import unquote

import structlog
from bs4 import BeautifulSoup, Tag

from ..config import Settings
from ..dates import days_from_now
from ..errors import FetchError
from ..models import RawCandidate, ScraperInput
from ..normalizer import STRATEGIES, SYMPLA_CATEGORIES, first_text
from .base import PageSink, paginate
from .http import PageFetcher

logger = structlog.get_logger()

BASE_URL = "https://www.sympla.com.br"

CITY_SLUGS = {"salvador": "salvador-ba"}

# Containers that may hold event lists inside __NEXT_DATA__
_CONTAINER_KEYS = ("events", "items", "data", "results", "list", "pageProps", "props")

_URL_ID_RE = re.compile(r"(\d+)(?:\?|$)")
_SRCSET_URL_RE = re.compile(r"url=([^&\"\s]+)")
_ASSET_RE = re.compile(r"https://assets\.bileto\.sympla\.com\.br[^\"'\s]+")
_CARD_DATE_RE = re.compile(r"\w+,\s*\d{1,2}\s+de\s+\w+\s+às?\s*\d{1,2}:\d{2}", re.IGNORECASE)
_DETAIL_DATE_RE = re.compile(
    r"\d{1,2}\s+de\s+(?:jan|fev|mar|abr|mai|jun|jul|ago|set|out|nov|dez)[a-zç]*"
    r"(?:\s+(?:de\s+)?\d{4})?(?:\s+às?\s*\d{1,2}:\d{2})?",
    re.IGNORECASE,
)
_DETAIL_ISO_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2})?")
_TITLE_SUFFIX_RE = re.compile(r"\s*(?:-|\|)\s*Sympla$", re.IGNORECASE)


def city_slug(city: str) -> str:
    return CITY_SLUGS.get(city, f"{city}-ba")


def listing_urls(city: str, category: Optional[str] = None, max_pages: int = 20) -> list[str]:
    """Listing URLs for one category (or the main listing) in page order."""
    root = f"{BASE_URL}/eventos/{city_slug(city)}"
    if category is None:
        return [root]
    base = f"{root}/{category}"
    return [base] + [f"{base}?page={page}" for page in range(2, max_pages + 1)]


def extract_next_data(soup: BeautifulSoup) -> Optional[dict[str, Any]]:
    """Parse the __NEXT_DATA__ script payload, if present."""
    tag = soup.find("script", id="__NEXT_DATA__")
    if tag is None or not tag.string:
        return None
    try:
        data = json.loads(tag.string)
    except ValueError:
        logger.debug("next_data_invalid")
        return None
    return data if isinstance(data, dict) else None


def find_events_in_object(obj: Any, found: Optional[list[dict]] = None) -> list[dict]:
    """Collect event-like dicts (title plus url or id) from nested JSON."""
    if found is None:
        found = []

    if isinstance(obj, list):
        first = obj[0] if obj else None
        if isinstance(first, dict) and _looks_like_event(first):
            found.extend(item for item in obj if isinstance(item, dict))
        else:
            for item in obj:
                find_events_in_object(item, found)
    elif isinstance(obj, dict):
        for key in _CONTAINER_KEYS:
            if obj.get(key):
                find_events_in_object(obj[key], found)

    return found


def parse_listing_page(
    html: str, url: str = "", category: Optional[str] = None
) -> list[RawCandidate]:
    """
    Extract raw candidates from a Sympla listing page.

    Args:
        html: Page body
        url: Page URL (logging only)
        category: Listing slug the page belongs to, attached to every candidate

    Returns:
        Raw candidates, possibly repeating the same event from both JSON and cards
    """
    soup = BeautifulSoup(html, "html.parser")
    candidates: list[RawCandidate] = []

    data = extract_next_data(soup)
    if data:
        candidates.extend(dict(event) for event in find_events_in_object(data))

    for card in soup.select('a[href*="/evento/"], a[href*="/event/"]'):
        candidate = _parse_card(card)
        if candidate:
            candidates.append(candidate)

    if category:
        for candidate in candidates:
            candidate["listing_category"] = category

    logger.debug("listing_parsed", url=url, candidates=len(candidates))
    return candidates


def parse_detail_page(
    html: str, event_id: str, url: str, now: Optional[datetime] = None
) -> Optional[RawCandidate]:
    """
    Extract event details from a single event page.

    Prefers the page's __NEXT_DATA__ event object; falls back to meta tags
    and text patterns. When no date can be found at all the candidate gets a
    placeholder 30 days ahead, flagged with ``date_placeholder``.
    """
    soup = BeautifulSoup(html, "html.parser")

    data = extract_next_data(soup)
    if data:
        page_props = (data.get("props") or {}).get("pageProps") or {}
        event_data = page_props.get("event") or page_props.get("data") or page_props
        if isinstance(event_data, dict):
            title = event_data.get("name") or event_data.get("title")
            start = (
                event_data.get("start_date")
                or event_data.get("startDate")
                or event_data.get("date")
            )
            if title and start:
                return {**event_data, "id": event_id, "url": url}

    title = _meta(soup, "og:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string
    title = _TITLE_SUFFIX_RE.sub("", title).strip() if title else None
    if not title:
        return None

    text = soup.get_text(" ", strip=True)
    candidate: RawCandidate = {"id": event_id, "title": title, "url": url}

    match = _DETAIL_ISO_RE.search(html) or _DETAIL_DATE_RE.search(text)
    if match:
        candidate["dateStr"] = match.group(0)
    else:
        candidate["dateStr"] = days_from_now(now, 30)
        candidate["date_placeholder"] = True

    venue = soup.find(class_=re.compile("venue")) or soup.find(class_=re.compile("location"))
    if venue is not None and venue.get_text(strip=True):
        candidate["venue"] = venue.get_text(" ", strip=True)

    image = _meta(soup, "og:image")
    if image:
        candidate["image"] = image

    return candidate


def merge_detail(candidate: RawCandidate, detail: RawCandidate) -> RawCandidate:
    """Overlay detail-page fields on a listing candidate."""
    merged = dict(candidate)
    for key, value in detail.items():
        if value is None or value == "":
            continue
        if key in ("dateStr", "date_placeholder") and detail.get("date_placeholder"):
            # Keep a real listing date over a placeholder
            if first_text(candidate, STRATEGIES["sympla"].date_fields):
                continue
        merged[key] = value
    return merged


class DetailEnricher:
    """Fetches detail pages for candidates missing a venue, up to a per-run limit."""

    def __init__(self, fetcher: PageFetcher, limit: int = 50, now: Optional[datetime] = None):
        self.fetcher = fetcher
        self.limit = limit
        self.now = now
        self.fetched = 0
        self.visited: set[str] = set()

    def needs_details(self, candidate: RawCandidate) -> bool:
        strategy = STRATEGIES["sympla"]
        title = first_text(candidate, strategy.title_fields) or ""
        venue = first_text(candidate, strategy.venue_fields)
        return not venue or title.startswith("Event ")

    async def enrich(self, candidates: list[RawCandidate]) -> list[RawCandidate]:
        strategy = STRATEGIES["sympla"]
        enriched = []
        for candidate in candidates:
            event_id = first_text(candidate, strategy.id_fields, numbers=True)
            if (
                self.fetched >= self.limit
                or not event_id
                or event_id in self.visited
                or not self.needs_details(candidate)
            ):
                enriched.append(candidate)
                continue

            self.visited.add(event_id)
            self.fetched += 1
            url = first_text(candidate, strategy.url_fields) or strategy.url_template.format(
                id=event_id
            )
            if url.startswith("/"):
                url = BASE_URL + url
            try:
                html = await self.fetcher.get_text(url)
            except FetchError as e:
                logger.warning("detail_fetch_failed", event_id=event_id, error=str(e))
                enriched.append(candidate)
                continue

            detail = parse_detail_page(html, event_id, url, now=self.now)
            if detail and "Sympla - Ingressos" not in str(detail.get("title") or detail.get("name")):
                candidate = merge_detail(candidate, detail)
            enriched.append(candidate)
        return enriched


async def extract(
    run_input: ScraperInput,
    fetcher: PageFetcher,
    sink: PageSink,
    settings: Settings,
) -> None:
    """Crawl category listings, then the main listing, feeding pages to the sink."""
    enricher = DetailEnricher(fetcher, limit=settings.sympla_detail_limit)

    for category in SYMPLA_CATEGORIES:
        pages = await paginate(
            fetcher,
            listing_urls(run_input.city, category, settings.sympla_max_pages),
            partial(parse_listing_page, category=category),
            sink,
            enrich=enricher.enrich,
        )
        logger.info("category_crawled", category=category, pages=pages)

    await paginate(
        fetcher,
        listing_urls(run_input.city),
        parse_listing_page,
        sink,
        enrich=enricher.enrich,
    )
    logger.info("details_fetched", count=enricher.fetched)


def _looks_like_event(obj: dict) -> bool:
    has_title = bool(obj.get("name") or obj.get("title"))
    has_ref = bool(obj.get("url") or obj.get("link") or obj.get("id"))
    return has_title and has_ref


def _meta(soup: BeautifulSoup, prop: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"property": prop})
    content = tag.get("content") if tag is not None else None
    return content.strip() if isinstance(content, str) and content.strip() else None


def _parse_card(card: Tag) -> Optional[RawCandidate]:
    href = card.get("href")
    if not isinstance(href, str):
        return None

    heading = card.select_one("h3.pn67h1e") or card.find("h3")
    title = heading.get_text(strip=True) if heading else None
    if not title or "Sympla" in title:
        return None

    id_match = _URL_ID_RE.search(href)
    if not id_match:
        return None

    venue_tag = card.select_one("p.pn67h1g") or card.find("p", string=re.compile("Salvador"))
    date_tag = card.find("div", class_=re.compile(r"qtfy\d+"))
    date_str = date_tag.get_text(" ", strip=True) if date_tag else None
    if not date_str:
        date_match = _CARD_DATE_RE.search(card.get_text(" ", strip=True))
        date_str = date_match.group(0) if date_match else None

    return {
        "id": id_match.group(1),
        "title": title,
        "venue": venue_tag.get_text(strip=True) if venue_tag else None,
        "dateStr": date_str,
        "image": _card_image(card),
        "url": href,
    }


def _card_image(card: Tag) -> Optional[str]:
    img = card.find("img")
    if img is not None:
        srcset = img.get("srcset")
        if isinstance(srcset, str):
            match = _SRCSET_URL_RE.search(srcset)
            if match:
                return unquote(match.group(1))
        src = img.get("src")
        if isinstance(src, str) and src:
            match = _SRCSET_URL_RE.search(src)
            return unquote(match.group(1)) if match else src
    asset = _ASSET_RE.search(str(card))
    return asset.group(0) if asset else None
