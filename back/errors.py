"""
Typed failures raised by provider adapters.

Adapters never let raw transport exceptions escape: every failure reaching
the aggregator is one of these.
"""


class ProviderError(Exception):
    """Base class for provider failures."""

    kind = "ProviderError"

    def __init__(self, message: str = "", provider: str = ""):
        super().__init__(message)
        self.provider = provider

    def __str__(self) -> str:
        msg = super().__str__()
        return f"[{self.provider}] {msg}" if self.provider else msg


class NotFound(ProviderError):
    """The upstream explicitly reported the resource as missing. Never retried."""

    kind = "NotFound"


class ProviderUnavailable(ProviderError):
    """Retries exhausted, or the upstream refused the request."""

    kind = "ProviderUnavailable"

    def __init__(self, message: str = "", provider: str = "", attempts: int = 0, cause: Exception | None = None):
        super().__init__(message, provider)
        self.attempts = attempts
        self.cause = cause


class MalformedResponse(ProviderError):
    """The upstream answered, but not with the shape we expect (HTML page, bad JSON...)."""

    kind = "MalformedResponse"
