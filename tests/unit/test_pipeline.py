"""End-to-end tests for run orchestration."""

import httpx
import pytest

from scrapers.agenda_sync.errors import StoreError
from scrapers.agenda_sync.models import RunMetrics, RunStatus, ScraperInput
from scrapers.agenda_sync.pipeline import RunContext, run_all, run_source
from scrapers.agenda_sync.normalizer import get_strategy
from scrapers.agenda_sync.sources import elcabong, instagram
from scrapers.agenda_sync.sources.base import static_extractor
from scrapers.agenda_sync.sources.http import PageFetcher


def agenda_page(*events: tuple[str, str]) -> str:
    boxes = "".join(
        f'<article class="wpem-event-box"><h3 class="wpem-heading-text">{title}</h3>'
        f'<span class="wpem-event-date-time-text">{date_str}</span></article>'
        for title, date_str in events
    )
    return f"<html><body>{boxes}</body></html>"


def mock_fetcher(pages: dict[str, str], requested: list[str]) -> PageFetcher:
    def handler(request):
        url = str(request.url)
        requested.append(url)
        if url in pages:
            return httpx.Response(200, text=pages[url])
        return httpx.Response(404)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PageFetcher(client, request_delay_s=0, retry_max=1)


def valid_candidates(count: int) -> list[dict]:
    return [
        {"title": f"Show {i}", "dateStr": f"{10 + i:02d}/01/2026 - 20:00"}
        for i in range(count)
    ]


class TestRunContext:
    """Tests for the per-page sink."""

    def test_counts_new_identities(self, elcabong_input):
        context = RunContext(elcabong_input, get_strategy("elcabong"))
        page = valid_candidates(3) + [{"title": "Sem data"}]

        assert context.accept_page(page) == 3
        assert context.accept_page(page) == 0
        assert context.metrics.items_fetched == 8
        assert context.metrics.items_invalid == 2
        assert context.duplicates == 3
        assert len(context.events) == 3


class TestRunSource:
    """Tests for a single source run."""

    @pytest.mark.asyncio
    async def test_metrics_example(self, store, fast_settings, elcabong_input, now):
        """10 candidates, 2 invalid, 8 valid, 8 upserted."""
        candidates = valid_candidates(8) + [{"title": "Sem data"}, {"dateStr": "11/01/2026"}]

        outcome = await run_source(
            elcabong_input, store, static_extractor(candidates), settings=fast_settings, now=now
        )

        assert outcome.status is RunStatus.SUCCESS
        assert outcome.metrics == RunMetrics(
            items_fetched=10, items_valid=8, items_invalid=2, items_upserted=8
        )
        run = store.get_run(outcome.run_id)
        assert run.status is RunStatus.SUCCESS
        assert run.metrics == outcome.metrics
        assert store.count_events("elcabong") == 8

    @pytest.mark.asyncio
    async def test_duplicate_across_pages(self, store, fast_settings, elcabong_input):
        """Two pages listing the same title and date yield exactly one event."""
        pages = {
            "https://elcabong.com.br/agenda/": agenda_page(
                ("Samba de Roda", "11/12/2025 - 21:00"), ("Forró", "12/12/2025 - 20:00")
            ),
            "https://elcabong.com.br/agenda/page/2/": agenda_page(
                ("Samba de Roda", "11/12/2025 - 21:00"), ("Jazz", "13/12/2025 - 19:00")
            ),
        }
        requested: list[str] = []

        async with mock_fetcher(pages, requested) as fetcher:
            outcome = await run_source(
                elcabong_input, store, elcabong.extract, fetcher=fetcher, settings=fast_settings
            )

        assert outcome.status is RunStatus.SUCCESS
        assert outcome.metrics.items_fetched == 4
        assert outcome.metrics.items_valid == 3
        assert outcome.metrics.items_upserted == 3
        assert store.count_events("elcabong") == 3
        # page 3 returned 404, which stops the listing without failing the run
        assert requested[-1] == "https://elcabong.com.br/agenda/page/3/"

    @pytest.mark.asyncio
    async def test_stops_on_page_without_new_events(self, store, fast_settings, elcabong_input):
        same = agenda_page(("Samba de Roda", "11/12/2025 - 21:00"))
        pages = {
            "https://elcabong.com.br/agenda/": same,
            "https://elcabong.com.br/agenda/page/2/": same,
            "https://elcabong.com.br/agenda/page/3/": agenda_page(("Outro", "12/12/2025")),
        }
        requested: list[str] = []

        async with mock_fetcher(pages, requested) as fetcher:
            await run_source(
                elcabong_input, store, elcabong.extract, fetcher=fetcher, settings=fast_settings
            )

        assert requested == [
            "https://elcabong.com.br/agenda/",
            "https://elcabong.com.br/agenda/page/2/",
        ]

    @pytest.mark.asyncio
    async def test_rerun_upserts_same_rows(self, store, fast_settings, elcabong_input, now):
        """Two runs over the same listing leave one row per event."""
        extractor = static_extractor(valid_candidates(4))
        await run_source(elcabong_input, store, extractor, settings=fast_settings, now=now)
        await run_source(elcabong_input, store, extractor, settings=fast_settings, now=now)
        assert store.count_events() == 4

    @pytest.mark.asyncio
    async def test_window_applied_to_sympla(self, store, fast_settings, sympla_input, now):
        candidates = [
            {"id": 1, "name": "Hoje", "start_date": "2026-01-01T00:00:00"},
            {"id": 2, "name": "Limite", "start_date": "2026-04-01T00:00:00"},
            {"id": 3, "name": "Longe", "start_date": "2026-04-01T00:00:01"},
            {"id": 4, "name": "Passado", "start_date": "2025-12-31T23:59:59"},
        ]

        outcome = await run_source(
            sympla_input, store, static_extractor(candidates), settings=fast_settings, now=now
        )

        assert outcome.metrics.items_fetched == 4
        assert outcome.metrics.items_valid == 2
        assert outcome.metrics.items_invalid == 0
        assert store.get_event("sympla", "1") is not None
        assert store.get_event("sympla", "2") is not None
        assert store.get_event("sympla", "3") is None

    @pytest.mark.asyncio
    async def test_window_not_applied_to_elcabong(self, store, fast_settings, elcabong_input, now):
        candidates = [{"title": "Antigo", "dateStr": "01/01/2020 - 20:00"}]
        outcome = await run_source(
            elcabong_input, store, static_extractor(candidates), settings=fast_settings, now=now
        )
        assert outcome.metrics.items_upserted == 1

    @pytest.mark.asyncio
    async def test_extractor_failure_marks_run_failed(self, store, fast_settings, elcabong_input):
        """A crash mid-extraction finalizes the run as failed with partial counts."""

        async def broken(run_input, fetcher, sink, settings):
            sink(valid_candidates(2))
            raise RuntimeError("layout changed\nmore details")

        outcome = await run_source(elcabong_input, store, broken, settings=fast_settings)

        assert outcome.status is RunStatus.FAILED
        assert outcome.error_message == "layout changed"
        run = store.get_run(outcome.run_id)
        assert run.status is RunStatus.FAILED
        assert run.error_message == "layout changed"
        assert run.items_fetched == 2
        assert run.items_upserted == 0
        assert store.count_events() == 0

    @pytest.mark.asyncio
    async def test_empty_listing_succeeds(self, store, fast_settings, elcabong_input):
        outcome = await run_source(
            elcabong_input, store, static_extractor([]), settings=fast_settings
        )
        assert outcome.status is RunStatus.SUCCESS
        assert outcome.metrics == RunMetrics()

    @pytest.mark.asyncio
    async def test_instagram_feed(self, store, fast_settings, instagram_input):
        feed = (
            "<rss><channel><item><link>https://www.instagram.com/p/abc/</link>"
            "<description><![CDATA[♫ 16 de Janeiro ♫<br>Atrações: Banda Y<br>"
            "__________<br>Projeto: Sarau<br>Horário: 19h]]></description></item></channel></rss>"
        )
        pages = {"https://rsshub.app/instagram/user/agendaalternativasalvador": feed}
        requested: list[str] = []

        async with mock_fetcher(pages, requested) as fetcher:
            outcome = await run_source(
                instagram_input, store, instagram.extract, fetcher=fetcher, settings=fast_settings
            )

        assert outcome.metrics.items_upserted == 2
        assert store.count_events("instagram") == 2


class TestRunAll:
    """Tests for multi-source orchestration."""

    @pytest.mark.asyncio
    async def test_sources_are_isolated(self, store, fast_settings, now):
        """A failing source does not stop the next one."""

        async def broken(run_input, fetcher, sink, settings):
            raise RuntimeError("boom")

        inputs = [ScraperInput(source="sympla"), ScraperInput(source="elcabong")]
        extractors = {"sympla": broken, "elcabong": static_extractor(valid_candidates(2))}

        outcomes = await run_all(inputs, store, extractors, settings=fast_settings, now=now)

        assert [o.status for o in outcomes] == [RunStatus.FAILED, RunStatus.SUCCESS]
        assert outcomes[1].metrics.items_upserted == 2

    @pytest.mark.asyncio
    async def test_unknown_source_reported(self, store, fast_settings):
        outcomes = await run_all(
            [ScraperInput(source="eventbrite")], store, {}, settings=fast_settings
        )
        assert outcomes[0].status is RunStatus.FAILED
        assert outcomes[0].run_id is None
        assert "eventbrite" in outcomes[0].error_message

    @pytest.mark.asyncio
    async def test_store_failure_never_raises(self, fast_settings):
        """Store failures while creating a run are reported, not raised."""

        class DownStore:
            def create_run(self, source, city):
                raise StoreError("database is down")

        outcomes = await run_all(
            [ScraperInput(source="elcabong")],
            DownStore(),
            {"elcabong": static_extractor([])},
            settings=fast_settings,
        )
        assert outcomes[0].status is RunStatus.FAILED
        assert outcomes[0].error_message == "database is down"
