"""
Token Balance Service

Core balance operations for per-store Pradana tokens:
- Balance reads and refreshes
- Signed debit/credit adjustments (atomic, conditional)
- Ledger entries for every adjustment
- Unresolved-reversal records for manual reconciliation

CRITICAL: Debits use MongoDB conditional updates so a store balance can
never be driven below zero by a debit, even under concurrent requests.
The remote document is the source of truth; nothing here decrements an
in-process copy.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pymongo import ReturnDocument

from .errors import DebitFailed, InsufficientTokens, StoreNotFound
from .models import TokenLedgerEntry, UnresolvedReversal

logger = logging.getLogger(__name__)

BALANCE_FIELD = "pradana_token_balance"


class TokenBalanceService:
    """Service for reading and adjusting store token balances."""

    def __init__(self, db):
        self.db = db
        # Last balance read per store, published to listeners on refresh
        self._balances: Dict[str, float] = {}
        self._listeners: List[Callable[[str, float], None]] = []

    def add_listener(self, callback: Callable[[str, float], None]) -> Callable[[], None]:
        """Register a callback for balance refreshes. Returns a remover."""
        self._listeners.append(callback)

        def remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def last_known_balance(self, store_id: str) -> Optional[float]:
        return self._balances.get(store_id)

    async def get_balance(self, store_id: str) -> float:
        store = await self.db.stores.find_one(
            {"id": store_id},
            {"_id": 0, BALANCE_FIELD: 1}
        )
        if store is None:
            raise StoreNotFound(store_id=store_id)
        return store.get(BALANCE_FIELD, 0)

    async def refresh_balance(self, store_id: str) -> Optional[float]:
        """
        Re-read the store balance and publish it to listeners.

        Refreshes are advisory; a failed read is logged and returns None.
        """
        try:
            balance = await self.get_balance(store_id)
        except Exception as e:
            logger.error(f"Balance refresh failed for store {store_id}: {e}")
            return None

        self._balances[store_id] = balance
        for listener in list(self._listeners):
            listener(store_id, balance)
        return balance

    async def adjust_balance(
        self,
        store_id: str,
        delta: float,
        action: str,
        request_id: Optional[str] = None,
        details: Optional[Dict] = None
    ) -> float:
        """
        Apply a signed token adjustment to a store balance.

        Negative deltas are debits and only succeed when the balance covers
        them; positive deltas are credits (refunds, top-ups).

        Returns:
            The balance after the adjustment

        Raises:
            InsufficientTokens: debit rejected, balance too low
            DebitFailed: debit rejected (unknown store, or the rejection could not be read)
            StoreNotFound: credit to a store that does not exist
        """
        request_id = request_id or str(uuid.uuid4())
        now = datetime.now(timezone.utc)

        query = {"id": store_id}
        if delta < 0:
            query[BALANCE_FIELD] = {"$gte": -delta}

        updated = await self.db.stores.find_one_and_update(
            query,
            {
                "$inc": {BALANCE_FIELD: delta},
                "$set": {"updated_at": now.isoformat()}
            },
            projection={"_id": 0, BALANCE_FIELD: 1},
            return_document=ReturnDocument.AFTER
        )

        if updated is None:
            if delta >= 0:
                raise StoreNotFound(store_id=store_id)
            return await self._reject_debit(store_id, delta)

        balance_after = updated.get(BALANCE_FIELD, 0)

        # The balance has changed: a lost ledger entry must not turn this into a failure
        try:
            await self._write_ledger_entry(
                store_id=store_id,
                action=action,
                tokens_total=delta,
                source="usage" if delta < 0 else "reversal",
                request_id=request_id,
                balance_after=balance_after,
                details=details
            )
        except Exception as e:
            logger.error(
                f"Ledger entry lost for store {store_id} adjustment {delta} ({action}, request_id={request_id}): {e}"
            )

        logger.info(f"Adjusted store {store_id} balance by {delta} ({action}), now {balance_after}")
        return balance_after

    async def _reject_debit(self, store_id: str, delta: float):
        try:
            store = await self.db.stores.find_one({"id": store_id}, {"_id": 0, BALANCE_FIELD: 1})
        except Exception as e:
            raise DebitFailed(f"Debit of {-delta} tokens rejected for store {store_id}: {e}", store_id=store_id) from e
        if store is None:
            raise DebitFailed(f"Store {store_id} not found", store_id=store_id)

        balance = store.get(BALANCE_FIELD, 0)
        logger.warning(f"Debit of {-delta} tokens rejected for store {store_id}, balance {balance}")
        raise InsufficientTokens(
            f"Insufficient token balance: {balance} available, {-delta} required",
            store_id=store_id,
            remaining_balance=balance
        )

    async def record_unresolved_reversal(
        self,
        store_id: str,
        tokens: float,
        original_request_id: str,
        feature_name: str,
        operation_error: str,
        reversal_error: str
    ) -> str:
        """Persist a refund that could not be applied so it can be reconciled manually."""
        record = UnresolvedReversal(
            id=str(uuid.uuid4()),
            store_id=store_id,
            tokens=tokens,
            original_request_id=original_request_id,
            feature_name=feature_name,
            operation_error=operation_error,
            reversal_error=reversal_error,
            created_at=datetime.now(timezone.utc).isoformat()
        )
        await self.db.unresolved_reversals.insert_one(record.model_dump())
        return record.id

    async def get_unresolved_reversals(self, store_id: Optional[str] = None, limit: int = 50) -> list:
        query = {"status": "open"}
        if store_id:
            query["store_id"] = store_id
        cursor = self.db.unresolved_reversals.find(query, {"_id": 0}).sort("created_at", -1).limit(limit)
        return await cursor.to_list(length=limit)

    async def _write_ledger_entry(
        self,
        store_id: str,
        action: str,
        tokens_total: float,
        source: str,
        request_id: str,
        balance_after: Optional[float] = None,
        details: Optional[Dict] = None
    ):
        """Write an immutable ledger entry."""
        entry = TokenLedgerEntry(
            store_id=store_id,
            action=action,
            tokens_total=tokens_total,
            source=source,
            request_id=request_id,
            timestamp=datetime.now(timezone.utc).isoformat(),
            balance_after=balance_after,
            details=details or {}
        )
        await self.db.token_ledger.insert_one(entry.model_dump())

    async def get_ledger(self, store_id: str, limit: int = 50) -> list:
        """Get recent ledger entries for a store."""
        cursor = self.db.token_ledger.find(
            {"store_id": store_id},
            {"_id": 0}
        ).sort("timestamp", -1).limit(limit)

        return await cursor.to_list(length=limit)
