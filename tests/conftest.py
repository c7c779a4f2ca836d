"""Shared pytest fixtures for agenda sync tests."""

from datetime import date, datetime

import pytest

from scrapers.agenda_sync.config import Settings
from scrapers.agenda_sync.models import Event, ScraperInput
from scrapers.agenda_sync.storage import SqlStore


@pytest.fixture
def store():
    """Provide an in-memory SQLite store."""
    store = SqlStore("sqlite://")
    yield store
    store.close()


@pytest.fixture
def now() -> datetime:
    """Fixed reference time (naive local)."""
    return datetime(2026, 1, 1, 0, 0, 0)


@pytest.fixture
def today() -> date:
    return date(2026, 1, 10)


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with no inter-request delay or retry pauses."""
    return Settings(
        request_delay_ms=1,
        rate_limit_pause_ms=1,
        retry_max=2,
        sympla_max_pages=3,
        elcabong_max_pages=3,
        sympla_detail_limit=2,
    )


@pytest.fixture
def elcabong_input() -> ScraperInput:
    return ScraperInput(source="elcabong", city="salvador", until_days=90)


@pytest.fixture
def sympla_input() -> ScraperInput:
    return ScraperInput(source="sympla", city="salvador", until_days=90)


@pytest.fixture
def instagram_input() -> ScraperInput:
    return ScraperInput(source="instagram", city="salvador")


@pytest.fixture
def elcabong_candidate() -> dict:
    """Provide a raw El Cabong candidate as scraped."""
    return {
        "title": "Samba de Roda no Pelô",
        "dateStr": "11/12/2025 - 21:00",
        "location": "Largo do Pelourinho",
        "eventUrl": "https://elcabong.com.br/evento/samba-de-roda/",
        "imageUrl": "https://elcabong.com.br/wp-content/uploads/samba.jpg",
    }


@pytest.fixture
def sympla_candidate() -> dict:
    """Provide a raw Sympla candidate from __NEXT_DATA__."""
    return {
        "id": 2781234,
        "name": "Festival de Verão Salvador",
        "start_date": "2026-01-20T18:00:00-03:00",
        "venue": {"name": "Parque de Exposições"},
        "image": "https://assets.bileto.sympla.com.br/eventmanager/festival.png",
        "url": "https://www.sympla.com.br/evento/festival-de-verao/2781234",
        "is_free": False,
    }


@pytest.fixture
def sample_event() -> Event:
    """Provide a canonical event."""
    return Event(
        source="elcabong",
        external_id="elcabong-0123456789abcdef",
        title="Samba de Roda no Pelô",
        start_datetime="2025-12-11T21:00:00",
        city="salvador",
        venue_name="Largo do Pelourinho",
        category="Shows e Festas",
        url="https://elcabong.com.br/evento/samba-de-roda/",
        raw_payload={"title": "Samba de Roda no Pelô"},
    )


def make_event(external_id: str, start: str = "2026-01-15T20:00:00", **overrides) -> Event:
    """Build an Event with sensible defaults."""
    values = {
        "source": "sympla",
        "external_id": external_id,
        "title": f"Evento {external_id}",
        "start_datetime": start,
        "city": "salvador",
        "url": f"https://www.sympla.com.br/evento/{external_id}",
    }
    values.update(overrides)
    return Event(**values)


@pytest.fixture
def event_factory():
    """Provide the make_event helper."""
    return make_event
