"""
Balance Routes

Endpoints:
- GET /api/billing/balance - Active store token balance
- GET /api/billing/ledger - Token history for the active store
- GET /api/billing/unresolved-reversals - Refunds awaiting manual reconciliation (superadmin)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db
from utils.auth import get_session, get_superadmin_user
from billing.balance_service import TokenBalanceService
from billing.errors import StoreNotFound
from services.dashboard_provider import Session

logger = logging.getLogger(__name__)

balance_router = APIRouter(prefix="/billing", tags=["Billing"])


def _require_store(session: Session) -> str:
    if not session.active_store_id:
        raise HTTPException(status_code=400, detail="No active store selected")
    return session.active_store_id


@balance_router.get("/balance")
async def get_balance(session: Session = Depends(get_session), db=Depends(get_db)):
    store_id = _require_store(session)
    try:
        balance = await TokenBalanceService(db).get_balance(store_id)
    except StoreNotFound as e:
        raise HTTPException(status_code=404, detail=e.to_dict())
    return {"store_id": store_id, "pradana_token_balance": balance}


@balance_router.get("/ledger")
async def get_ledger(
    limit: int = Query(50, ge=1, le=200),
    session: Session = Depends(get_session),
    db=Depends(get_db)
):
    store_id = _require_store(session)
    entries = await TokenBalanceService(db).get_ledger(store_id, limit)
    return {"entries": entries, "count": len(entries)}


@balance_router.get("/unresolved-reversals")
async def get_unresolved_reversals(
    store_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    user: dict = Depends(get_superadmin_user),
    db=Depends(get_db)
):
    records = await TokenBalanceService(db).get_unresolved_reversals(store_id, limit)
    return {"records": records, "count": len(records)}
