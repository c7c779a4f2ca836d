"""
Command-line entry point for the agenda sync.

Runs one or more sources in sequence and records a scrape run for each:
- sympla: marketplace listings (category pages + main city page)
- elcabong: venue agenda pages
- instagram: latest post of the agenda profile
- instagram_vision: only with --candidates-file (externally extracted)

Run with: python -m scrapers.agenda_sync --source elcabong
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import structlog

from .config import Settings, load_settings
from .errors import ConfigError, StoreError
from .logconfig import configure_logging
from .models import RunOutcome, RunStatus, ScraperInput
from .normalizer import STRATEGIES
from .pipeline import run_all
from .sources import EXTRACTORS, PageFetcher, static_extractor
from .storage import SqlStore

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agenda-sync",
        description="Collect Salvador event listings and upsert them into the event store.",
    )
    parser.add_argument(
        "--source",
        action="append",
        choices=sorted(STRATEGIES),
        help="Source to run (repeatable; default: all crawlable sources)",
    )
    parser.add_argument("--until-days", type=int, help="Window length in days (default 90)")
    parser.add_argument("--database-url", help="SQLAlchemy database URL")
    parser.add_argument(
        "--candidates-file",
        type=Path,
        help="JSON list of raw candidates to ingest instead of crawling (one --source only)",
    )
    parser.add_argument("--log-format", choices=("json", "console"))
    return parser


def load_candidates(path: Path) -> list[dict]:
    """Read a JSON list of candidate objects."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read candidates file {path}: {e}") from e
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ConfigError(f"Candidates file {path} must contain a JSON list of objects")
    return data


def format_outcome(outcome: RunOutcome) -> str:
    metrics = outcome.metrics
    line = (
        f"{outcome.source}: {outcome.status.value} "
        f"fetched={metrics.items_fetched} valid={metrics.items_valid} "
        f"invalid={metrics.items_invalid} upserted={metrics.items_upserted}"
    )
    if outcome.error_message:
        line += f" error={outcome.error_message}"
    return line


def exit_code(outcomes: list[RunOutcome]) -> int:
    """Non-zero only when a single source was requested and it failed."""
    if len(outcomes) == 1 and outcomes[0].status is RunStatus.FAILED:
        return EXIT_FAILED
    return EXIT_OK


async def run(args: argparse.Namespace, settings: Settings) -> list[RunOutcome]:
    sources = args.source or list(EXTRACTORS)

    extractors = dict(EXTRACTORS)
    if args.candidates_file:
        if len(sources) != 1:
            raise ConfigError("--candidates-file requires exactly one --source")
        extractors[sources[0]] = static_extractor(load_candidates(args.candidates_file))

    # instagram_vision has no crawler; its candidates come from a file
    for source in sources:
        if source not in extractors:
            raise ConfigError(f"source '{source}' requires --candidates-file")

    inputs = [
        ScraperInput(source=source, city=settings.city, until_days=settings.until_days)
        for source in sources
    ]

    try:
        store = SqlStore(settings.database_url)
    except StoreError as e:
        raise ConfigError(str(e)) from e

    try:
        async with PageFetcher.from_settings(settings) as fetcher:
            return await run_all(inputs, store, extractors, fetcher=fetcher, settings=settings)
    finally:
        store.close()


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(
            until_days=args.until_days,
            database_url=args.database_url,
            log_format=args.log_format,
        )
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    configure_logging(settings.log_level, settings.log_format)

    try:
        outcomes = asyncio.run(run(args, settings))
    except ConfigError as e:
        logger.error("config_error", error=str(e))
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    for outcome in outcomes:
        print(format_outcome(outcome))
    return exit_code(outcomes)


if __name__ == "__main__":
    sys.exit(main())
