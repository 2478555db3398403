"""
MongoDB Index Definitions
=========================
Creates the indexes the dashboard queries and billing writes rely on.
Run this once during application startup.
"""
import logging
from typing import Dict, Any

logger = logging.getLogger(__name__)

# collection -> list of (keys, options)
INDEXES = {
    "stores": [([("id", 1)], {"unique": True}), ([("admin_uids", 1)], {})],
    "users": [([("id", 1)], {"unique": True})],
    "products": [([("store_id", 1), ("name", 1)], {})],
    "customers": [([("store_id", 1), ("join_date", -1)], {})],
    "tables": [([("store_id", 1), ("name", 1)], {})],
    "redemption_options": [([("store_id", 1)], {})],
    "challenge_periods": [([("store_id", 1), ("created_at", -1)], {})],
    "transactions": [([("store_id", 1), ("created_at", -1)], {})],
    "pending_orders": [([("store_id", 1), ("created_at", -1)], {})],
    "token_ledger": [([("store_id", 1), ("timestamp", -1)], {}), ([("request_id", 1)], {})],
    "unresolved_reversals": [([("id", 1)], {"unique": True}), ([("status", 1), ("created_at", -1)], {})],
    "app_settings": [([("id", 1)], {"unique": True})],
}


async def create_all_indexes(db) -> Dict[str, Any]:
    """
    Create all required indexes.

    Returns:
        Summary of indexes created per collection ("OK" or the error)
    """
    results = {}

    for collection, indexes in INDEXES.items():
        try:
            for keys, options in indexes:
                await db[collection].create_index(keys, **options)
            results[collection] = "OK"
        except Exception as e:
            results[collection] = f"ERROR: {e}"
            logger.error(f"Index creation failed for {collection}: {e}")

    logger.info(f"Index creation complete: {results}")
    return results
