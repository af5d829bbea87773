class StockError(Exception):
    status_code = 500


class StockValidationError(StockError, ValueError):
    status_code = 400


class InvalidDateError(StockValidationError):
    pass


class FutureDateError(StockValidationError):
    pass


class ScopeError(StockValidationError):
    pass


class CascadeLimitError(StockValidationError):
    pass


class InsufficientStockError(StockValidationError):
    pass


class ItemInUseError(StockValidationError):
    status_code = 409


class ActorNotFoundError(StockError, LookupError):
    status_code = 403


class PermissionDeniedError(StockError):
    status_code = 403


class NotFoundError(StockError, LookupError):
    status_code = 404


class CascadeInProgressError(StockError):
    status_code = 409


class CascadeInterruptedError(StockError):
    """A cascade stopped on a failed write; earlier days stay committed."""

    def __init__(self, message, *, updates, failed_date, cause=None):
        super().__init__(message)
        self.updates = list(updates)
        self.failed_date = failed_date
        self.cause = cause


__all__ = [
    "ActorNotFoundError",
    "CascadeInProgressError",
    "CascadeInterruptedError",
    "CascadeLimitError",
    "FutureDateError",
    "InsufficientStockError",
    "InvalidDateError",
    "ItemInUseError",
    "NotFoundError",
    "PermissionDeniedError",
    "ScopeError",
    "StockError",
    "StockValidationError",
]
