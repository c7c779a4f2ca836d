"""
Agenda Sync

Collects Salvador event listings from:
- Sympla (ticketing marketplace)
- El Cabong (venue agenda)
- Instagram agenda posts

and normalizes, deduplicates and upserts them as canonical events,
recording one scrape run per source invocation.
"""

__version__ = "1.0.0"
