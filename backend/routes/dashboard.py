"""
Dashboard Routes

Endpoints:
- GET /api/dashboard - One refresh of the dashboard view model
- WS  /api/dashboard/stream - Live view models (refresh + transactions and
  pending orders as they change)
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from database import get_db
from utils.auth import get_session, resolve_session, user_from_token
from billing.balance_service import TokenBalanceService
from billing.notifications import BufferedNotifier
from billing.settings_fetcher import SettingsFetcher
from services.dashboard_provider import DashboardProvider, DashboardViewModel, Session
from services.document_store import MotorDocumentStore

logger = logging.getLogger(__name__)

dashboard_router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


def build_provider(db, notifier) -> DashboardProvider:
    return DashboardProvider(
        MotorDocumentStore(db),
        SettingsFetcher(),
        TokenBalanceService(db),
        notifier
    )


def serialize_view_model(view_model: DashboardViewModel, balance: Optional[float] = None) -> dict:
    data = view_model.model_dump(mode="json", exclude={"fee_settings"})
    data["fee_settings"] = view_model.fee_settings.to_api()
    data["pradana_token_balance"] = balance
    return data


@dashboard_router.get("")
async def get_dashboard(session: Session = Depends(get_session), db=Depends(get_db)):
    """
    Load the dashboard working set for the caller's active store.

    Superadmins without an active store get all stores and users with empty
    store-scoped collections.
    """
    if not session.is_superadmin and not session.active_store_id:
        raise HTTPException(status_code=409, detail="Select an active store first")

    notifier = BufferedNotifier()
    provider = build_provider(db, notifier)
    view_model = await provider.refresh(session)

    if view_model is None:
        raise HTTPException(
            status_code=503,
            detail={"message": "Dashboard data unavailable", "notifications": notifier.messages}
        )

    balance = None
    if session.active_store_id:
        balance = provider.balance_service.last_known_balance(session.active_store_id)
    return serialize_view_model(view_model, balance)


def latest_only(queue: asyncio.Queue):
    """Listener that keeps only the newest view model in a size-1 queue."""
    def push(view_model: DashboardViewModel):
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(view_model)
    return push


async def send_updates(websocket: WebSocket, queue: asyncio.Queue, provider: DashboardProvider, session: Session):
    while True:
        view_model = await queue.get()
        balance = None
        if session.active_store_id:
            balance = provider.balance_service.last_known_balance(session.active_store_id)
        await websocket.send_json(serialize_view_model(view_model, balance))


async def wait_for_disconnect(websocket: WebSocket):
    # Client messages are ignored; this only notices the close
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@dashboard_router.websocket("/stream")
async def dashboard_stream(
    websocket: WebSocket,
    token: str = Query(...),
    store_id: Optional[str] = Query(None),
    db=Depends(get_db)
):
    """Push a new view model every time the dashboard data changes."""
    try:
        user = await user_from_token(token)
        session = await resolve_session(user, store_id)
    except HTTPException as e:
        await websocket.close(code=1008, reason=str(e.detail))
        return

    await websocket.accept()

    queue: asyncio.Queue = asyncio.Queue(maxsize=1)
    provider = build_provider(db, BufferedNotifier())
    remove = provider.add_listener(latest_only(queue))
    tasks = []
    try:
        await provider.activate(session)
        tasks = [
            asyncio.create_task(send_updates(websocket, queue, provider, session)),
            asyncio.create_task(wait_for_disconnect(websocket)),
        ]
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"Dashboard stream failed for user {session.user_id}: {error}")
    finally:
        for task in tasks:
            task.cancel()
        remove()
        provider.close()
        logger.info(f"Dashboard stream closed for user {session.user_id}")
