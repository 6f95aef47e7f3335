"""
Tailor Ops Exceptions

Custom exception classes for order and customer error handling.
"""

from typing import Optional


class TailorOpsError(Exception):
    """Base exception for tailor ops errors"""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(TailorOpsError):
    """Missing or malformed required input"""
    status_code = 400


class NotFoundError(TailorOpsError):
    """Referenced customer or order does not exist"""
    status_code = 404


class NotificationError(TailorOpsError):
    """SMS delivery failure. Contained by the notification dispatcher."""
    pass


class StorageConflictError(TailorOpsError):
    """Transaction read-set was modified by a concurrent commit"""
    status_code = 409


class TransactionRetryExhaustedError(TailorOpsError):
    """Conflicting commits persisted past the configured number of attempts"""
    pass
