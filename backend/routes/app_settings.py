"""
App Settings Routes

Endpoints:
- GET /api/app-settings - Global fee settings (defaults if none stored)
- PUT /api/app-settings - Update fee settings (superadmin)
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db
from utils.auth import get_superadmin_user
from billing.config import FEE_SETTINGS_DOC_ID
from billing.errors import FetchFailed
from billing.models import FeeSettings
from billing.settings_fetcher import default_fee_settings, parse_fee_settings

logger = logging.getLogger(__name__)

app_settings_router = APIRouter(prefix="/app-settings", tags=["App Settings"])


async def load_fee_settings(db) -> FeeSettings:
    """Stored fee settings merged over the defaults; defaults if missing or invalid."""
    doc = await db.app_settings.find_one({"id": FEE_SETTINGS_DOC_ID}, {"_id": 0, "id": 0, "updated_at": 0})
    if not doc:
        return default_fee_settings()
    try:
        return parse_fee_settings(doc)
    except FetchFailed as e:
        logger.error(f"Stored fee settings are invalid, serving defaults: {e}")
        return default_fee_settings()


@app_settings_router.get("")
async def get_app_settings(db=Depends(get_db)):
    """Get global transaction and AI fee settings."""
    settings = await load_fee_settings(db)
    return settings.to_api()


@app_settings_router.put("")
async def update_app_settings(
    settings: FeeSettings,
    user: dict = Depends(get_superadmin_user),
    db=Depends(get_db)
):
    """Replace global fee settings (superadmin only)."""
    await db.app_settings.update_one(
        {"id": FEE_SETTINGS_DOC_ID},
        {
            "$set": {
                **settings.to_api(),
                "updated_at": datetime.now(timezone.utc).isoformat()
            }
        },
        upsert=True
    )
    logger.info(f"Fee settings updated by {user.get('id')}")
    return settings.to_api()
