"""Exception types shared across the pipeline."""


class AgendaSyncError(Exception):
    """Base class for pipeline errors."""


class ConfigError(AgendaSyncError):
    """Raised when run configuration cannot be used."""


class UnknownSourceError(AgendaSyncError):
    """Raised when no normalization strategy exists for a source key."""

    def __init__(self, source: str):
        super().__init__(f"Unknown source '{source}'")
        self.source = source


class FetchError(AgendaSyncError):
    """Raised when a page could not be fetched after all retries."""

    def __init__(self, url: str, attempts: int, reason: str):
        super().__init__(f"Failed to fetch {url} after {attempts} attempts: {reason}")
        self.url = url
        self.attempts = attempts
        self.reason = reason


class RateLimitedError(AgendaSyncError):
    """Raised by a request that hit a rate limit response."""

    def __init__(self, url: str, status_code: int = 429):
        super().__init__(f"Rate limited by {url} (HTTP {status_code})")
        self.url = url
        self.status_code = status_code


class RunStateError(AgendaSyncError):
    """Raised on an illegal scrape run transition."""


class StoreError(AgendaSyncError):
    """Raised when the durable store rejects an operation."""
