"""Domain exceptions raised by the service layer.

Provider failures use :mod:`integrations.exceptions`; these cover the
remaining cases the API layer maps to HTTP statuses.
"""


class ServiceError(Exception):
    """Base exception for service-layer errors."""

    pass


class NotFoundError(ServiceError):
    """A requested entity (provider, bank link, account, transaction) does not exist.

    Also raised when the entity exists but belongs to another user.
    """

    pass


class UnauthorizedError(ServiceError):
    """The caller could not be authenticated."""

    pass


class WebhookVerificationError(UnauthorizedError):
    """A provider webhook failed signature verification."""

    def __init__(self, provider_name: str):
        self.provider_name = provider_name
        super().__init__(f"Invalid webhook signature for provider '{provider_name}'")


class BalanceLedgerError(ServiceError):
    """Account and snapshot balances could not be updated for a transaction change."""

    def __init__(self, message: str, transaction_id: str | None = None):
        self.transaction_id = transaction_id
        super().__init__(message)
