from routes.ai import ai_router
from routes.app_settings import app_settings_router
from routes.balance import balance_router
from routes.dashboard import dashboard_router
from fastapi import FastAPI, APIRouter
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path
from datetime import datetime, timezone

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Create the main app
app = FastAPI(title="Store Dashboard - POS & AI Billing")

api_router = APIRouter(prefix="/api")


@api_router.get("/")
async def root():
    return {"message": "Store Dashboard API", "version": "1.0.0"}


@api_router.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


api_router.include_router(app_settings_router)
api_router.include_router(dashboard_router)
api_router.include_router(balance_router)
api_router.include_router(ai_router, prefix="/ai")

app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=[origin.strip() for origin in os.environ.get(
        'CORS_ORIGINS', 'http://localhost:3000').split(',')],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def startup():
    # Check database connection first - fail fast if database is unavailable
    from database import check_db_connection, get_db
    from services.db_indexes import create_all_indexes

    db_ok, db_error = await check_db_connection()
    if not db_ok:
        logger.critical(f"Database connection failed on startup: {db_error}")
        raise RuntimeError(
            f"Cannot start application - database connection failed: {db_error}")

    await create_all_indexes(get_db())
    logger.info("Store dashboard API started")


@app.on_event("shutdown")
async def shutdown_db_client():
    from database import close_db
    close_db()
