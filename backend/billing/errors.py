"""
Billing and AI generation errors.

Each error carries an ``error_code`` that keys into ``config.ERROR_CODES``.
"""

from typing import Optional

from .config import ERROR_CODES


class BillingError(Exception):
    """Base class for errors raised by the billing and generation layers."""

    error_code = "BILLING_ERROR"

    def __init__(self, message: Optional[str] = None, store_id: Optional[str] = None):
        self.store_id = store_id
        self.message = message or ERROR_CODES.get(self.error_code, self.error_code)
        super().__init__(self.message)

    def to_dict(self):
        """Convert to API response format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "store_id": self.store_id,
        }


class NoActiveStore(BillingError):
    error_code = "NO_ACTIVE_STORE"


class SettingsUnavailable(BillingError):
    error_code = "SETTINGS_UNAVAILABLE"


class DebitFailed(BillingError):
    """Balance debit rejected (insufficient tokens or unknown store)."""

    error_code = "DEBIT_FAILED"

    def __init__(
        self,
        message: Optional[str] = None,
        store_id: Optional[str] = None,
        remaining_balance: Optional[float] = None,
    ):
        self.remaining_balance = remaining_balance
        super().__init__(message, store_id)

    def to_dict(self):
        data = super().to_dict()
        data["remaining_balance"] = self.remaining_balance
        return data


class InsufficientTokens(DebitFailed):
    """Store balance does not cover the fee."""

    error_code = "INSUFFICIENT_TOKENS"


class ReversalFailed(BillingError):
    """Compensating credit could not be applied after an operation failure."""

    error_code = "REVERSAL_FAILED"


class GenerationFailed(BillingError):
    error_code = "GENERATION_FAILED"


class FetchFailed(BillingError):
    """Settings fetch failed. Always recovered locally with defaults."""

    error_code = "FETCH_FAILED"


class StoreNotFound(BillingError):
    error_code = "STORE_NOT_FOUND"
