"""
Event normalization.

Maps loosely-typed source candidates onto the canonical Event model.
Each source gets one SourceStrategy describing, per field, the ordered
list of extraction attempts (first non-empty value wins), its date
profile, identity rule and category vocabulary.
"""

import hashlib
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional, Union
from urllib.parse import urljoin

import structlog
from pydantic import ValidationError

from .dates import DateFormat, DateProfile, normalize_date
from .errors import UnknownSourceError
from .models import CATEGORIES, DEFAULT_CATEGORY, Event, RawCandidate, ScraperInput

logger = structlog.get_logger()

# A dotted path into the candidate ("venue.name") or a function of it
Attempt = Union[str, Callable[[RawCandidate], Any]]

EXTERNAL_ID_LENGTH = 16

FREE_MARKERS = ("gratuito", "gratuita", "grátis", "gratis", "free", "entrada franca")

# Third-party checkout brands -> placeholder shown instead of a price
CHECKOUT_MARKERS = {
    "sympla": "Ver Sympla",
}

NO_PRICE_MARKERS = ("consulte",)

_AMOUNT_RE = re.compile(r"R\$\s*(\d{1,3}(?:\.\d{3})+(?:,\d{1,2})?|\d+(?:,\d{1,2})?)")

# Keyword groups for free-text classification, in priority order
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Shows e Festas", ("show", "música", "musica", "festival", "concert", "samba",
                        "pagode", "rock", "jazz", "mpb")),
    ("Teatro", ("teatro", "peça", "espetáculo", "espetaculo", "drama", "comédia", "comedia")),
    ("Arte e Cultura", ("arte", "exposição", "exposicao", "galeria", "museu", "cultura")),
    ("Gastronomia", ("gastronomia", "culinária", "culinaria", "restaurante", "food", "comida")),
    ("Cursos", ("curso", "workshop", "aula", "treinamento")),
    ("Palestras", ("palestra", "conferência", "conferencia", "seminário", "seminario", "talk")),
)

# Sympla listing slugs
SYMPLA_CATEGORIES = {
    "show-musica-festa": "Shows e Festas",
    "teatro-espetaculo": "Teatro",
    "gastronomico": "Gastronomia",
    "curso-workshop": "Cursos",
    "congresso-palestra": "Palestras",
    "experiencias": "Experiências",
    "infantil": "Infantil",
    "religioso-espiritual": "Religioso",
    "saude-e-bem-estar": "Bem-estar",
    "arte-e-cultura": "Arte e Cultura",
    "games-e-geek": "Games e Geek",
    "gratis": "Gratuito",
}

INSTAGRAM_PROFILE_URL = "https://www.instagram.com/agendaalternativasalvador/"

_SYMPLA_URL_ID_RE = re.compile(r"(\d+)(?:\?|$)")


@dataclass(frozen=True)
class PriceInfo:
    """Normalized price hints."""

    is_free: bool = False
    price_text: Optional[str] = None
    min_price: Optional[float] = None


@dataclass(frozen=True)
class SourceStrategy:
    """How one source's candidates map onto Event fields."""

    key: str
    source: str
    date_profile: DateProfile
    title_fields: tuple[Attempt, ...]
    date_fields: tuple[Attempt, ...]
    time_fields: tuple[Attempt, ...] = ()
    id_fields: tuple[Attempt, ...] = ()
    venue_fields: tuple[Attempt, ...] = ()
    image_fields: tuple[Attempt, ...] = ()
    is_free_fields: tuple[Attempt, ...] = ()
    price_fields: tuple[Attempt, ...] = ()
    min_price_fields: tuple[Attempt, ...] = ()
    category_fields: tuple[Attempt, ...] = ()
    description_fields: tuple[Attempt, ...] = ()
    url_fields: tuple[Attempt, ...] = ()
    derive_id: bool = False
    identity_fields: tuple[Attempt, ...] = ()
    id_prefix: str = ""
    url_template: Optional[str] = None
    listing_url: Optional[str] = None
    base_url: Optional[str] = None
    default_category: Optional[str] = DEFAULT_CATEGORY
    category_vocabulary: dict[str, str] = field(default_factory=dict)
    infer_category: bool = False
    apply_window: bool = False


def _sympla_id_from_url(raw: RawCandidate) -> Optional[str]:
    url = raw.get("url") or raw.get("link")
    if not isinstance(url, str):
        return None
    match = _SYMPLA_URL_ID_RE.search(url)
    return match.group(1) if match else None


STRATEGIES: dict[str, SourceStrategy] = {
    "sympla": SourceStrategy(
        key="sympla",
        source="sympla",
        date_profile=DateProfile((DateFormat.ISO, DateFormat.NAMED_MONTH), default_time="19:00"),
        id_fields=("id", "eventId", "slug", _sympla_id_from_url),
        title_fields=("name", "title"),
        date_fields=("start_date", "startDate", "date", "dateStr"),
        venue_fields=("venue.name", "venueName", "location.name", "address.name",
                      "venue", "location"),
        image_fields=("image", "imageUrl", "banner", "cover"),
        is_free_fields=("is_free", "isFree", "free"),
        price_fields=("price_text", "priceText", "price"),
        min_price_fields=("min_price", "minPrice", "price"),
        category_fields=("listing_category", "category"),
        url_fields=("url", "link"),
        url_template="https://www.sympla.com.br/evento/{id}",
        listing_url="https://www.sympla.com.br/eventos/salvador-ba",
        base_url="https://www.sympla.com.br",
        default_category=None,
        category_vocabulary=SYMPLA_CATEGORIES,
        apply_window=True,
    ),
    "elcabong": SourceStrategy(
        key="elcabong",
        source="elcabong",
        date_profile=DateProfile((DateFormat.SLASH,), default_time="20:00"),
        title_fields=("title",),
        date_fields=("dateStr", "date"),
        venue_fields=("location", "venue"),
        image_fields=("imageUrl", "image"),
        price_fields=("price",),
        url_fields=("eventUrl", "url"),
        derive_id=True,
        id_prefix="elcabong",
        listing_url="https://elcabong.com.br/agenda/",
        base_url="https://elcabong.com.br",
    ),
    "instagram": SourceStrategy(
        key="instagram",
        source="instagram",
        date_profile=DateProfile((DateFormat.NAMED_MONTH,), default_time="20:00"),
        title_fields=("projeto", "atracoes"),
        date_fields=("date",),
        time_fields=("horario",),
        venue_fields=("local",),
        price_fields=("quanto",),
        url_fields=("post_url", "link"),
        derive_id=True,
        identity_fields=("horario", "local"),
        id_prefix="instagram",
        listing_url=INSTAGRAM_PROFILE_URL,
    ),
    "instagram_vision": SourceStrategy(
        key="instagram_vision",
        source="instagram",
        date_profile=DateProfile((DateFormat.SLASH,), default_time="19:00"),
        title_fields=("title",),
        date_fields=("date",),
        time_fields=("time",),
        venue_fields=("venue",),
        price_fields=("price",),
        description_fields=("description",),
        url_fields=("post_url", "url"),
        derive_id=True,
        id_prefix="instagram-vision",
        listing_url=INSTAGRAM_PROFILE_URL,
        infer_category=True,
    ),
}


def get_strategy(key: str) -> SourceStrategy:
    """Look up the normalization strategy for a source key."""
    try:
        return STRATEGIES[key]
    except KeyError:
        raise UnknownSourceError(key) from None


def resolve_path(raw: RawCandidate, path: str) -> Any:
    """Follow a dotted path through nested dicts."""
    value: Any = raw
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def first_value(raw: RawCandidate, attempts: tuple[Attempt, ...]) -> Any:
    """Return the first attempt that yields something other than None or ""."""
    for attempt in attempts:
        value = attempt(raw) if callable(attempt) else resolve_path(raw, attempt)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        return value
    return None


def first_text(
    raw: RawCandidate,
    attempts: tuple[Attempt, ...],
    numbers: bool = False,
    strip: bool = True,
) -> Optional[str]:
    """Return the first attempt yielding a non-blank string (or number, if allowed)."""
    for attempt in attempts:
        value = attempt(raw) if callable(attempt) else resolve_path(raw, attempt)
        if numbers and isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if isinstance(value, str) and value.strip():
            return value.strip() if strip else value
    return None


def derive_external_id(
    title: str, raw_date: str, prefix: str = "", extra: tuple[str, ...] = ()
) -> str:
    """
    Stable id for sources without a natural identifier.

    Depends only on the exact title and raw date strings as scraped (plus
    any ``extra`` parts the source needs to tell occurrences apart), so
    re-scraping the same listing yields the same id.
    """
    basis = f"{title}{raw_date}" + "".join(f"|{part}" for part in extra)
    digest = hashlib.md5(basis.encode("utf-8")).hexdigest()[:EXTERNAL_ID_LENGTH]
    return f"{prefix}-{digest}" if prefix else digest


def normalize_price(text: Optional[str]) -> PriceInfo:
    """Interpret a free-text price hint."""
    if not text or not text.strip():
        return PriceInfo()

    lower = text.lower()

    if any(marker in lower for marker in FREE_MARKERS):
        return PriceInfo(is_free=True)

    for marker, placeholder in CHECKOUT_MARKERS.items():
        if marker in lower:
            return PriceInfo(price_text=placeholder)

    if lower.strip() in NO_PRICE_MARKERS:
        return PriceInfo()

    return PriceInfo(price_text=text.strip(), min_price=parse_amount(text))


def parse_amount(text: Optional[str]) -> Optional[float]:
    """Extract the first "R$ 40,00"-style amount."""
    if not text:
        return None
    match = _AMOUNT_RE.search(text)
    if not match:
        return None
    return float(match.group(1).replace(".", "").replace(",", "."))


def infer_category(title: str, description: Optional[str] = None) -> str:
    """Classify free text by keyword group; music wins ties."""
    text = f"{title} {description or ''}".lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(re.search(rf"\b{re.escape(keyword)}", text) for keyword in keywords):
            return category
    return CATEGORY_KEYWORDS[0][0]


def map_category(value: Optional[str], strategy: SourceStrategy) -> Optional[str]:
    """Map a listing category onto the controlled taxonomy."""
    if value:
        if value in CATEGORIES:
            return value
        mapped = strategy.category_vocabulary.get(value.strip().lower())
        if mapped:
            return mapped
    return strategy.default_category


def normalize(
    raw: RawCandidate, run_input: ScraperInput, today: Optional[date] = None
) -> Optional[Event]:
    """
    Validate a raw candidate and map it to a canonical Event.

    Args:
        raw: Candidate as produced by the source extractor
        run_input: Run context (source key, city)
        today: Reference date for year defaulting

    Returns:
        Event, or None when a required field cannot be resolved
    """
    strategy = get_strategy(run_input.source)

    title = first_text(raw, strategy.title_fields)
    if not title:
        return _reject(strategy, "missing_title", raw)

    raw_date = first_text(raw, strategy.date_fields)
    time_text = first_text(raw, strategy.time_fields)
    start_datetime = normalize_date(raw_date, strategy.date_profile, time_text, today)
    if start_datetime is None:
        return _reject(strategy, "unparseable_date", raw, raw_date=raw_date)

    natural_id = first_text(raw, strategy.id_fields, numbers=True)
    if natural_id:
        external_id = f"{strategy.id_prefix}{natural_id}"
    elif strategy.derive_id:
        extra = tuple(
            first_text(raw, (attempt,), strip=False) or "" for attempt in strategy.identity_fields
        )
        external_id = derive_external_id(
            first_text(raw, strategy.title_fields, strip=False),
            first_text(raw, strategy.date_fields, strip=False) or "",
            strategy.id_prefix,
            extra,
        )
    else:
        return _reject(strategy, "missing_identity", raw)

    url = _resolve_url(raw, strategy, natural_id)
    if not url:
        return _reject(strategy, "missing_url", raw)

    price = normalize_price(first_text(raw, strategy.price_fields))
    is_free = _as_bool(first_value(raw, strategy.is_free_fields)) or price.is_free
    min_price = _as_amount(first_value(raw, strategy.min_price_fields))
    if min_price is None:
        min_price = price.min_price

    category = _resolve_category(raw, strategy, title)

    image_url = first_text(raw, strategy.image_fields)
    if image_url and strategy.base_url:
        image_url = urljoin(strategy.base_url + "/", image_url)

    try:
        return Event(
            source=strategy.source,
            external_id=external_id,
            title=title,
            start_datetime=start_datetime,
            city=run_input.city,
            venue_name=first_text(raw, strategy.venue_fields),
            image_url=image_url,
            category=category,
            is_free=is_free,
            min_price=None if is_free else min_price,
            price_text=None if is_free else price.price_text,
            url=url,
            raw_payload=dict(raw),
        )
    except ValidationError as e:
        return _reject(strategy, "invalid_event", raw, error=str(e))


def _resolve_url(
    raw: RawCandidate, strategy: SourceStrategy, natural_id: Optional[str]
) -> Optional[str]:
    link = first_text(raw, strategy.url_fields)
    if link:
        return urljoin(strategy.base_url + "/", link) if strategy.base_url else link
    if natural_id and strategy.url_template:
        return strategy.url_template.format(id=natural_id)
    return strategy.listing_url


def _resolve_category(raw: RawCandidate, strategy: SourceStrategy, title: str) -> Optional[str]:
    listed = first_text(raw, strategy.category_fields)
    if listed:
        return map_category(listed, strategy)
    if strategy.infer_category:
        return infer_category(title, first_text(raw, strategy.description_fields))
    return strategy.default_category


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "sim")
    return bool(value)


def _as_amount(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else None
    return None


def _reject(strategy: SourceStrategy, reason: str, raw: RawCandidate, **fields: Any) -> None:
    logger.debug(
        "candidate_rejected",
        strategy=strategy.key,
        reason=reason,
        title=raw.get("title") or raw.get("name"),
        **fields,
    )
    return None
