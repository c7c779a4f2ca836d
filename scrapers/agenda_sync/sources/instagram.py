"""
Instagram agenda extractor.

Reads the latest post of the agenda profile through an RSSHub feed and
splits its caption into one candidate per listed event. A caption looks
like:

    ♫ Agenda de Sexta, 16 de Janeiro ♫
    Projeto: Noite Instrumental
    Atrações: Trio X
    Local: Teatro Gamboa
    Quanto: R$ 30
    Horário: 20h
    _____
    Atrações: Banda Y
    ...
"""

import re
from dataclasses import dataclass
from typing import Optional

import feedparser
import structlog
from bs4 import BeautifulSoup

from ..config import Settings
from ..dates import find_date_anchor
from ..models import RawCandidate, ScraperInput
from .base import PageSink, paginate
from .http import PageFetcher

logger = structlog.get_logger()

BLOCK_SEPARATOR_RE = re.compile(r"_{5,}|─{5,}")

# Caption label -> candidate key
FIELD_PATTERNS = (
    ("projeto", re.compile(r"^Projeto:\s*", re.IGNORECASE)),
    ("atracoes", re.compile(r"^Atra[çc](?:[õo]es|[ãa]o):\s*", re.IGNORECASE)),
    ("local", re.compile(r"^Local:\s*", re.IGNORECASE)),
    ("quanto", re.compile(r"^Quanto:\s*", re.IGNORECASE)),
    ("horario", re.compile(r"^Hor[áa]rio:\s*", re.IGNORECASE)),
)

EVENT_START_RE = re.compile(r"^(?:Projeto:|Atra[çc](?:[õo]es|[ãa]o):|Local:)", re.IGNORECASE)

# Header blocks carry these markers
HEADER_MARKERS = ("♫", "#")


@dataclass
class FeedItem:
    """One post as exposed by the feed."""

    guid: str
    link: str
    title: str = ""
    pub_date: str = ""
    content: str = ""


def feed_url(settings: Settings) -> str:
    return f"{settings.rsshub_url.rstrip('/')}/instagram/user/{settings.instagram_handle}"


def parse_feed(xml_text: str) -> list[FeedItem]:
    """Parse RSS items, newest first as served."""
    # Bytes, so feedparser never treats the body as a URL or path
    feed = feedparser.parse(xml_text.encode("utf-8"))
    if feed.bozo and not feed.entries:
        logger.warning("feed_parse_failed", error=str(feed.get("bozo_exception", "")))
        return []

    items = []
    for entry in feed.entries:
        link = entry.get("link", "").strip()
        items.append(FeedItem(
            guid=(entry.get("id") or link).strip(),
            link=link,
            title=entry.get("title", "").strip(),
            pub_date=entry.get("published", "").strip(),
            content=entry.get("summary") or entry.get("description") or "",
        ))
    return items


def caption_text(html: str) -> str:
    """Turn a feed description (HTML) into plain caption text, one line per <br>."""
    soup = BeautifulSoup(html, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    return soup.get_text().replace("\xa0", " ").strip()


def parse_block(block: str) -> Optional[RawCandidate]:
    """Read labelled lines from one event block; needs a projeto or atracoes line."""
    fields: RawCandidate = {}
    for line in block.splitlines():
        cleaned = line.strip()
        if not cleaned:
            continue
        for key, pattern in FIELD_PATTERNS:
            if pattern.match(cleaned):
                fields[key] = pattern.sub("", cleaned, count=1).strip()
                break

    if not fields.get("projeto") and not fields.get("atracoes"):
        return None
    return fields


def parse_caption(text: str, post_url: str) -> list[RawCandidate]:
    """
    Split a caption into raw candidates.

    Every candidate carries the caption's date anchor ("16 de Janeiro") as
    ``date`` and the post link as ``post_url``. A caption without a date
    anchor yields nothing.
    """
    anchor = find_date_anchor(text)
    if not anchor:
        logger.warning("caption_without_date", post_url=post_url)
        return []

    candidates = []
    for block in BLOCK_SEPARATOR_RE.split(text):
        if not block.strip():
            continue

        if any(marker in block for marker in HEADER_MARKERS):
            # Header block; an event may follow the title lines
            lines = block.split("\n")
            start = next(
                (i for i, line in enumerate(lines) if EVENT_START_RE.match(line.strip())), None
            )
            if not start:
                continue
            block = "\n".join(lines[start:])

        fields = parse_block(block)
        if fields:
            candidates.append({**fields, "date": anchor, "post_url": post_url})

    return candidates


def parse_latest_post(xml_text: str, url: str = "") -> list[RawCandidate]:
    """Candidates from the newest feed item."""
    items = parse_feed(xml_text)
    if not items:
        logger.info("feed_empty", url=url)
        return []

    latest = items[0]
    logger.info("post_selected", guid=latest.guid, published=latest.pub_date)
    text = caption_text(latest.content or latest.title)
    return parse_caption(text, latest.link)


async def extract(
    run_input: ScraperInput,
    fetcher: PageFetcher,
    sink: PageSink,
    settings: Settings,
) -> None:
    await paginate(fetcher, [feed_url(settings)], parse_latest_post, sink)
