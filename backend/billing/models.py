"""
Billing Data Models

Pydantic models for fee settings, gate results and ledger documents.
These define the structure of documents stored in MongoDB collections.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Generic, Literal, Optional, TypeVar

T = TypeVar("T")


# ==================== SETTINGS MODELS ====================

class FeeSettings(BaseModel):
    """Global transaction and AI fee tariffs (camelCase on the wire)"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    token_value_rp: float = Field(1000, alias="tokenValueRp")
    fee_percentage: float = Field(0.005, alias="feePercentage")
    min_fee_rp: float = Field(500, alias="minFeeRp")
    max_fee_rp: float = Field(2500, alias="maxFeeRp")
    ai_usage_fee: float = Field(1, alias="aiUsageFee")
    new_store_bonus_tokens: float = Field(50, alias="newStoreBonusTokens")
    ai_business_plan_fee: float = Field(25, alias="aiBusinessPlanFee")
    ai_session_fee: float = Field(5, alias="aiSessionFee")
    ai_session_duration_minutes: int = Field(30, alias="aiSessionDurationMinutes")

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True)


# ==================== GATE RESULT MODELS ====================

class GuardedOperationResult(BaseModel, Generic[T]):
    """Outcome of an operation wrapped by the usage-fee gate"""
    success: bool
    payload: Optional[T] = None
    fee_charged: float = 0
    fee_refunded: bool = False
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    request_id: Optional[str] = None


# ==================== LEDGER MODELS ====================

class TokenLedgerEntry(BaseModel):
    """Immutable ledger entry for token balance changes"""
    store_id: str
    action: str  # AI feature name, TOKEN_REVERSAL, etc.
    tokens_total: float
    source: Literal["usage", "reversal", "top_up", "bonus"]
    request_id: str
    timestamp: str  # ISO datetime string
    balance_after: Optional[float] = None
    details: Optional[dict] = None


class UnresolvedReversal(BaseModel):
    """Refund that failed after an operation failure; needs manual reconciliation"""
    id: str
    store_id: str
    tokens: float
    original_request_id: str
    feature_name: str
    operation_error: str
    reversal_error: str
    status: Literal["open", "resolved"] = "open"
    created_at: str
    resolved_at: Optional[str] = None
