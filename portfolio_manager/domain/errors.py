"""Errors raised by the portfolio accounting core."""


class PortfolioError(Exception):
    """Base class for user-visible portfolio errors."""

    status_code = 500

    def __init__(self, msg: str):
        self.msg = msg
        super().__init__(msg)


class ValidationError(PortfolioError):
    """Raised when input is missing or malformed."""

    status_code = 400


class InsufficientBalanceError(PortfolioError):
    """Raised when a withdrawal or trade exceeds the available balance."""

    status_code = 400


class NotFoundError(PortfolioError):
    """Raised when a referenced entity does not exist."""

    status_code = 404


class NoHoldingsError(NotFoundError):
    """Raised when selling an asset with no ledger row."""

    status_code = 400


class PriceUnavailableError(PortfolioError):
    """Raised when a live price is required but the provider failed."""

    status_code = 502


class StorageError(PortfolioError):
    """Raised when a storage transaction fails. The transaction is rolled back."""

    status_code = 500
