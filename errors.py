"""Failures raised by the expense ledger and mapped to HTTP responses in main.py."""

from typing import List, Optional


class LedgerError(Exception):
    """Base class for expense ledger failures."""

    status_code = 500
    message = "Request failed"


class ValidationError(LedgerError):
    """The payload was rejected; the caller can fix it and retry."""

    status_code = 400
    message = "Validation failed"

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class InvalidIdentifier(LedgerError):
    status_code = 400
    message = "Invalid expense id"


class NotFound(LedgerError):
    """No record with this id belongs to the caller."""

    status_code = 404
    message = "Expense not found"


class PersistenceError(LedgerError):
    """The store failed. The cause is logged and only shown outside production."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
