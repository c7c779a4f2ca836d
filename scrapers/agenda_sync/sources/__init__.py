"""Source extractors, keyed by source name."""

from . import elcabong, instagram, sympla
from .base import Extractor, PageSink, paginate, static_extractor
from .http import PageFetcher

EXTRACTORS: dict[str, Extractor] = {
    "sympla": sympla.extract,
    "elcabong": elcabong.extract,
    "instagram": instagram.extract,
}

__all__ = [
    "EXTRACTORS",
    "Extractor",
    "PageFetcher",
    "PageSink",
    "paginate",
    "static_extractor",
]
