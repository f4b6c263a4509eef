from __future__ import annotations


class CurrencyCacheError(RuntimeError):
    pass


class ConfigError(CurrencyCacheError):
    """Required configuration (e.g. the upstream URL) is missing."""


class UpstreamError(CurrencyCacheError):
    """The exchange-rate provider failed or returned an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CacheError(CurrencyCacheError):
    pass


class CacheReadError(CacheError):
    pass


class CacheWriteError(CacheError):
    pass


class ConnectionExhausted(CacheError):
    """The store stayed unreachable after the bounded reconnect attempts."""


class NotFoundError(CurrencyCacheError):
    """Expected empty-cache state; surfaced as 404, never as a fault."""
