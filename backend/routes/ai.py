"""
AI Routes - AI-powered catalog features (token-gated)

Endpoints:
- POST /api/ai/product-description - Generate a product description
- POST /api/ai/catalog-assistant - Answer a question about the store menu

Every call goes through the usage-fee gate: the store is charged before the
model runs and refunded if generation fails.
"""
from fastapi import APIRouter, Depends, HTTPException
from typing import Optional
import logging

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db
from utils.auth import get_session
from services.dashboard_provider import Session
from billing.balance_service import TokenBalanceService
from billing.errors import DebitFailed, NoActiveStore, SettingsUnavailable
from billing.guard import UsageFeeGate
from billing.notifications import BufferedNotifier
from ai_flows.catalog_assistant import CatalogAssistantInput, build_catalog_assistant
from ai_flows.description_generator import DescriptionGeneratorInput, build_description_generator
from routes.app_settings import load_fee_settings

logger = logging.getLogger(__name__)

ai_router = APIRouter(tags=["AI"])


async def run_gated_flow(flow, payload, session: Session, db, feature_name: str, fee: Optional[float] = None):
    """Run a generation flow through the usage-fee gate and shape the API response."""
    notifier = BufferedNotifier()
    balance_service = TokenBalanceService(db)
    gate = UsageFeeGate(balance_service, notifier)
    fee_settings = await load_fee_settings(db)

    try:
        result = await gate.execute_guarded(
            lambda: flow.run(payload),
            store_id=session.active_store_id,
            fee_settings=fee_settings,
            fee=fee,
            feature_name=feature_name
        )
    except NoActiveStore as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    except SettingsUnavailable as e:
        raise HTTPException(status_code=503, detail=e.to_dict())
    except DebitFailed as e:
        raise HTTPException(status_code=402, detail=e.to_dict())

    if not result.success:
        logger.warning(f"AI_FLOW_FAILED | feature={feature_name} | store={session.active_store_id} | refunded={result.fee_refunded}")
        raise HTTPException(
            status_code=502,
            detail={
                "error_code": result.error_code,
                "message": result.error_message,
                "fee_refunded": result.fee_refunded,
                "request_id": result.request_id,
                "notifications": notifier.messages
            }
        )

    return {
        "result": result.payload.model_dump(),
        "fee_charged": result.fee_charged,
        "request_id": result.request_id,
        "remaining_balance": balance_service.last_known_balance(session.active_store_id),
        "notifications": notifier.messages
    }


@ai_router.post("/product-description")
async def generate_product_description(
    request: DescriptionGeneratorInput,
    session: Session = Depends(get_session),
    db=Depends(get_db)
):
    """Generate a short product description (uses store tokens)"""
    return await run_gated_flow(
        build_description_generator(), request, session, db, "Product description"
    )


@ai_router.post("/catalog-assistant")
async def catalog_assistant(
    request: CatalogAssistantInput,
    session: Session = Depends(get_session),
    db=Depends(get_db)
):
    """Answer a customer question about the store menu (uses store tokens)"""
    return await run_gated_flow(
        build_catalog_assistant(), request, session, db, "Catalog assistant"
    )
