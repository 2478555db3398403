"""
Billing Configuration and Constants

Default fee settings, endpoint configuration and error messages are defined here.
Fees are expressed in Pradana tokens; tariffs in Rupiah.
"""

import os

# ==================== DEFAULT FEE SETTINGS ====================
# Used whenever the remote settings endpoint is unavailable or malformed
DEFAULT_FEE_SETTINGS = {
    "tokenValueRp": 1000,
    "feePercentage": 0.005,
    "minFeeRp": 500,
    "maxFeeRp": 2500,
    "aiUsageFee": 1,
    "newStoreBonusTokens": 50,
    "aiBusinessPlanFee": 25,
    "aiSessionFee": 5,
    "aiSessionDurationMinutes": 30,
}

# ==================== SETTINGS ENDPOINT ====================
APP_SETTINGS_URL = os.environ.get("APP_SETTINGS_URL", "http://localhost:8000/api/app-settings")
APP_SETTINGS_TIMEOUT_SECONDS = float(os.environ.get("APP_SETTINGS_TIMEOUT_SECONDS", "10"))

# Document id of the fee settings record in the app_settings collection
FEE_SETTINGS_DOC_ID = "transaction_fees"

# ==================== ROLES ====================
SUPERADMIN_ROLE = "superadmin"

# ==================== ERROR CODES ====================
ERROR_CODES = {
    "NO_ACTIVE_STORE": "No active store selected.",
    "SETTINGS_UNAVAILABLE": "Fee settings are not available.",
    "DEBIT_FAILED": "The token fee could not be charged.",
    "INSUFFICIENT_TOKENS": "Not enough tokens. Please top up your store balance.",
    "OPERATION_FAILED": "The operation failed. The token fee has been refunded.",
    "REVERSAL_FAILED": "The token fee could not be refunded automatically.",
    "GENERATION_FAILED": "The AI model did not return a valid result.",
    "FETCH_FAILED": "Failed to fetch app settings, using defaults.",
    "STORE_NOT_FOUND": "Store not found.",
}

# Notification titles for a rejected debit, by error code
DEBIT_ERROR_TITLES = {
    "INSUFFICIENT_TOKENS": "Insufficient tokens",
    "STORE_NOT_FOUND": "Store not found",
    "DEBIT_FAILED": "Token fee not charged",
}
