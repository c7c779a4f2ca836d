"""
Pydantic models for event data structures.

These models define the core data types used throughout the pipeline:
- ScraperInput: What a single source run is asked to do
- Event: Canonical, validated event ready for upsert
- ScrapeRun: Audit row for one invocation of one source
- RunMetrics / RunOutcome: Counters and per-source report
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, NonNegativeInt, field_validator


# Origins an Event can carry (closed set)
SOURCES = ("sympla", "elcabong", "instagram")

SourceName = Literal["sympla", "elcabong", "instagram"]

# Canonical naive local timestamp, e.g. 2025-12-11T21:00:00
CANONICAL_DATETIME_PATTERN = r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}$"

RawCandidate = dict[str, Any]


class ScraperInput(BaseModel):
    """Input for one run of one source."""

    source: str  # strategy key: sympla, elcabong, instagram, instagram_vision
    city: str = "salvador"
    until_days: int = Field(default=90, ge=1)


class Event(BaseModel):
    """Represents a canonical event as stored."""

    # Source tracking
    source: SourceName
    external_id: str = Field(min_length=1)
    url: str = Field(min_length=1)

    # Core event info
    title: str
    start_datetime: str = Field(pattern=CANONICAL_DATETIME_PATTERN)
    city: str

    # Details
    venue_name: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    is_free: bool = False
    min_price: Optional[float] = Field(default=None, ge=0)
    price_text: Optional[str] = None

    # Audit snapshot of the originating candidate, never interpreted
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value

    @field_validator("category")
    @classmethod
    def _known_category(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in CATEGORIES:
            raise ValueError(f"unknown category: {value}")
        return value

    @property
    def conflict_key(self) -> tuple[str, str]:
        """Identity of the real-world event across all runs."""
        return (self.source, self.external_id)


class RunStatus(str, Enum):
    """Lifecycle states of a scrape run."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class RunMetrics(BaseModel):
    """Counters assigned once when a run is finalized."""

    items_fetched: NonNegativeInt = 0
    items_valid: NonNegativeInt = 0
    items_invalid: NonNegativeInt = 0
    items_upserted: NonNegativeInt = 0


class ScrapeRun(BaseModel):
    """One invocation of one source's scraper."""

    id: str
    source: str
    city: str
    status: RunStatus = RunStatus.RUNNING
    started_at: datetime
    ended_at: Optional[datetime] = None
    items_fetched: NonNegativeInt = 0
    items_valid: NonNegativeInt = 0
    items_invalid: NonNegativeInt = 0
    items_upserted: NonNegativeInt = 0
    error_message: Optional[str] = None

    @property
    def metrics(self) -> RunMetrics:
        return RunMetrics(
            items_fetched=self.items_fetched,
            items_valid=self.items_valid,
            items_invalid=self.items_invalid,
            items_upserted=self.items_upserted,
        )


class RunOutcome(BaseModel):
    """Per-source result reported by the orchestrator."""

    source: str
    run_id: Optional[str] = None
    status: RunStatus
    metrics: RunMetrics = Field(default_factory=RunMetrics)
    error_message: Optional[str] = None
    duration_ms: Optional[int] = None


# Controlled category taxonomy
CATEGORIES = (
    "Shows e Festas",
    "Teatro",
    "Gastronomia",
    "Cursos",
    "Palestras",
    "Experiências",
    "Infantil",
    "Religioso",
    "Bem-estar",
    "Arte e Cultura",
    "Games e Geek",
    "Gratuito",
)

DEFAULT_CATEGORY = "Shows e Festas"
