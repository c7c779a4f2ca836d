"""Durable storage for events and scrape runs."""

from .base import EventStore
from .sql import SqlStore

__all__ = ["EventStore", "SqlStore"]
