"""Typed exception hierarchy for provider errors.

Separates bad credentials from transient network trouble and from
malformed provider data, so the orchestrator and the API layer can react
differently to each.
"""


class ProviderError(Exception):
    """Base exception for anything that goes wrong inside a provider call.

    Carries the provider name so fan-out logs can say which provider failed.
    """

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)

    @property
    def retriable(self) -> bool:
        return False


class ProviderAuthError(ProviderError):
    """Credentials missing, expired, or rejected (HTTP 401/403)."""

    pass


class ProviderConnectionError(ProviderError):
    """Timeouts, DNS failures, refused connections. Retriable by default."""

    def __init__(self, message: str, provider_name: str = "", retriable: bool = True):
        self._retriable = retriable
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        return self._retriable


class ProviderAPIError(ProviderError):
    """Non-auth HTTP 4xx/5xx responses from the provider API."""

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        """429 (rate limit) and 5xx errors are generally retriable."""
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500


class ProviderDataError(ProviderError):
    """Input or response data the provider can't work with.

    Covers malformed provider responses as well as invalid link input
    (e.g. a wallet address in the wrong format).
    """

    pass


def error_for_status(status_code: int, message: str, provider_name: str) -> ProviderError:
    """Pick the exception class for an HTTP error status."""
    if status_code in (401, 403):
        return ProviderAuthError(message, provider_name=provider_name)
    return ProviderAPIError(message, provider_name=provider_name, status_code=status_code)
