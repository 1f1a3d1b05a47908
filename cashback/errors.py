"""
Service-level errors.

Services raise these; cashback.main turns them into JSON responses with the
status code carried on each class.
"""
from fastapi import status


class CashbackError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidInputError(CashbackError):
    """Bad input, reported before any write."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(CashbackError):
    status_code = status.HTTP_404_NOT_FOUND


class StateConflictError(CashbackError):
    """The item is no longer pending."""
    status_code = status.HTTP_409_CONFLICT


class InsufficientFundsError(CashbackError):
    status_code = status.HTTP_409_CONFLICT


class StoreUnavailableError(CashbackError):
    """The store call failed; nothing was committed and the call is safe to retry."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
