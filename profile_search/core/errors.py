"""Error taxonomy shared by providers, the store and the orchestrator.

There is no NotFound error. A valid absence (no contact match, zero search
hits) is returned as None or [].
"""


class ProviderError(Exception):
    """Base class for failures reported by an external provider."""

    def __init__(self, message: str, provider: str) -> None:
        super().__init__(message)
        self.provider = provider


class NotConfiguredError(ProviderError):
    """Credentials are missing or were rejected. Never retried."""


class RateLimitedError(ProviderError):
    """The provider's token bucket is empty, or upstream answered 429."""

    def __init__(
        self,
        message: str,
        provider: str,
        retry_after_s: float | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.retry_after_s = retry_after_s


class TransientError(ProviderError):
    """Network failure, timeout or upstream error. Caller may skip or fall back."""

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, provider)
        self.status_code = status_code


class StoreError(Exception):
    """Persistence failure. Escalates an operation to 'failed'."""

    def __init__(self, message: str, operation: str) -> None:
        super().__init__(message)
        self.operation = operation
