"""Resilience helpers for source requests."""

from .retry import retry_call

__all__ = ["retry_call"]
