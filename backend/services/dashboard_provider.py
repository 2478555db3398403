"""
Dashboard Aggregation Provider
==============================

Builds the dashboard working set for one operator session:
- refresh(): one concurrent batch of one-shot reads (stores, store-scoped
  collections, users, fee settings), applied as a single new view model
- activate(): binds the provider to a session and installs the two live
  queries (store transactions, pending orders)

The view model is immutable; every refresh or live emission publishes a new
DashboardViewModel with the affected collections replaced wholesale.

A monotonic generation counter guards refresh(): a batch is applied only if
no newer refresh() started while it was in flight.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from billing.config import SUPERADMIN_ROLE
from billing.models import FeeSettings
from billing.notifications import LoggingNotifier, Notifier
from billing.settings_fetcher import default_fee_settings
from services.document_store import DocumentStore, Subscription, store_collection

logger = logging.getLogger(__name__)

Entity = Dict[str, Any]

# (collection, order_by, descending) for the store-scoped one-shot reads
STORE_SCOPED_QUERIES = (
    ("products", "name", False),
    ("customers", "join_date", True),
    ("tables", "name", False),
    ("redemption_options", None, False),
    ("challenge_periods", "created_at", True),
)

GLOBAL_PENDING_ORDERS = ("pending_orders",)


def global_pending_orders_path(session: "Session") -> Sequence[str]:
    """
    Pending orders across ALL stores.

    The dashboard has always listened to the global collection rather than
    the active store's orders. Kept as-is; swap in store_pending_orders_path
    to scope it.
    """
    return GLOBAL_PENDING_ORDERS


def store_pending_orders_path(session: "Session") -> Sequence[str]:
    return store_collection(session.active_store_id, "pending_orders")


@dataclass(frozen=True)
class Session:
    """The operator and store a dashboard call is made for."""
    user_id: Optional[str]
    role: Optional[str] = None
    active_store_id: Optional[str] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == SUPERADMIN_ROLE

    @classmethod
    def from_user(cls, user: Optional[dict], active_store_id: Optional[str] = None) -> "Session":
        if not user:
            return cls(user_id=None)
        return cls(
            user_id=user.get("id"),
            role=user.get("role"),
            active_store_id=active_store_id or user.get("store_id"),
        )


class DashboardViewModel(BaseModel):
    """Immutable snapshot of everything the dashboard renders"""
    model_config = ConfigDict(frozen=True)

    stores: List[Entity] = Field(default_factory=list)
    products: List[Entity] = Field(default_factory=list)
    customers: List[Entity] = Field(default_factory=list)
    transactions: List[Entity] = Field(default_factory=list)
    pending_orders: List[Entity] = Field(default_factory=list)
    users: List[Entity] = Field(default_factory=list)
    redemption_options: List[Entity] = Field(default_factory=list)
    tables: List[Entity] = Field(default_factory=list)
    challenge_periods: List[Entity] = Field(default_factory=list)
    fee_settings: FeeSettings = Field(default_factory=default_fee_settings)
    generation: int = 0


class DashboardProvider:
    """
    Aggregates dashboard data from the document store.

    Usage:
        provider = DashboardProvider(MotorDocumentStore(db), SettingsFetcher(),
                                     TokenBalanceService(db))
        remove = provider.add_listener(render)
        await provider.activate(Session.from_user(user, store_id))
        ...
        await provider.refresh(session)
        provider.close()
    """

    def __init__(
        self,
        store: DocumentStore,
        settings_fetcher,
        balance_service=None,
        notifier: Optional[Notifier] = None,
        pending_orders_path: Callable[[Session], Sequence[str]] = global_pending_orders_path,
    ):
        self.store = store
        self.settings_fetcher = settings_fetcher
        self.balance_service = balance_service
        self.notifier = notifier or LoggingNotifier()
        self.pending_orders_path = pending_orders_path

        self.is_loading = False
        self._view_model = DashboardViewModel()
        self._listeners: List[Callable[[DashboardViewModel], None]] = []

        # Latest refresh() request; older batches are discarded
        self._generation = 0

        # Live query scope: bumping the token silences emissions from old scopes
        self._scope: Optional[Session] = None
        self._scope_token = 0
        self._subscriptions: Dict[str, Subscription] = {}

    # ==================== VIEW MODEL ====================

    @property
    def view_model(self) -> DashboardViewModel:
        return self._view_model

    def add_listener(self, callback: Callable[[DashboardViewModel], None]) -> Callable[[], None]:
        """Receive every newly published view model. Returns a remover."""
        self._listeners.append(callback)

        def remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def _publish(self, **collections) -> DashboardViewModel:
        self._view_model = self._view_model.model_copy(update=collections)
        for listener in list(self._listeners):
            listener(self._view_model)
        return self._view_model

    # ==================== ONE-SHOT REFRESH ====================

    async def refresh(self, session: Session) -> Optional[DashboardViewModel]:
        """
        Reload stores, store-scoped collections, users and fee settings.

        No-op (returns None) without a user, or for a non-superadmin without
        an active store. On any read error the whole batch is dropped, the
        error is notified and the previous view model is kept.
        """
        if not session.user_id:
            return None
        if not session.is_superadmin and not session.active_store_id:
            return None

        self._generation += 1
        generation = self._generation
        store_id = session.active_store_id
        self.is_loading = True

        try:
            stores, users, fee_settings, *scoped = await asyncio.gather(
                self.store.get_all(("stores",)),
                self.store.get_all(("users",)),
                self.settings_fetcher.fetch_fee_settings(),
                *[
                    self._read_store_scoped(store_id, name, order_by, descending)
                    for name, order_by, descending in STORE_SCOPED_QUERIES
                ]
            )
        except Exception as e:
            logger.error(f"Error fetching dashboard data (generation={generation}): {e}")
            if generation == self._generation:
                self.notifier.notify(
                    "Failed to load dashboard data",
                    "An error occurred while loading base data. Some features may not work.",
                    "destructive"
                )
            return None
        finally:
            if generation == self._generation:
                self.is_loading = False

        if generation != self._generation:
            logger.info(f"Discarding stale dashboard batch generation={generation} (latest={self._generation})")
            return None

        update = {name: docs for (name, _, _), docs in zip(STORE_SCOPED_QUERIES, scoped)}
        view_model = self._publish(
            stores=stores,
            users=users,
            fee_settings=fee_settings,
            generation=generation,
            **update
        )

        if store_id and self.balance_service is not None:
            await self.balance_service.refresh_balance(store_id)

        return view_model

    async def _read_store_scoped(
        self, store_id: Optional[str], name: str, order_by: Optional[str], descending: bool
    ) -> List[Entity]:
        # Superadmin without an active store: store-scoped data is simply empty
        if not store_id:
            return []
        return await self.store.get_all(store_collection(store_id, name), order_by, descending)

    # ==================== LIVE QUERIES ====================

    async def activate(self, session: Session) -> DashboardViewModel:
        """
        Bind the provider to a session.

        Tears down the previous live queries when the user or active store
        changed or a live query has ended, installs new ones (non-superadmin
        with an active store) or clears transactions and pending orders
        (superadmin), then refreshes.
        """
        if session != self._scope or self._live_query_ended():
            self._rebind(session)

        await self.refresh(session)
        return self._view_model

    def _live_query_ended(self) -> bool:
        return any(not subscription.active for subscription in self._subscriptions.values())

    def _rebind(self, session: Session):
        self._teardown()
        self._scope = session
        self._scope_token += 1
        token = self._scope_token

        if not session.user_id:
            return

        if not session.is_superadmin and session.active_store_id:
            # Never show the previous store's live data under the new scope
            self._publish(transactions=[], pending_orders=[])
            self._subscriptions["transactions"] = self.store.subscribe(
                store_collection(session.active_store_id, "transactions"),
                on_next=lambda docs: self._on_emission(token, "transactions", docs),
                on_error=lambda e: self._on_subscription_error(token, "transactions", e),
                order_by="created_at",
                descending=True,
            )
            self._subscriptions["pending_orders"] = self.store.subscribe(
                self.pending_orders_path(session),
                on_next=lambda docs: self._on_emission(token, "pending_orders", docs),
                on_error=lambda e: self._on_subscription_error(token, "pending_orders", e),
            )
        elif session.is_superadmin:
            self._publish(transactions=[], pending_orders=[])

    def _on_emission(self, token: int, name: str, docs: List[Entity]):
        if token != self._scope_token:
            return
        self._publish(**{name: list(docs)})

    def _on_subscription_error(self, token: int, name: str, error: Exception):
        logger.error(f"Error listening to {name}: {error}")
        if token != self._scope_token:
            return
        self.notifier.notify(
            f"Real-time {name.replace('_', ' ')} error",
            f"Failed to update {name.replace('_', ' ')} data.",
            "destructive"
        )

    def _teardown(self):
        for subscription in self._subscriptions.values():
            subscription.unsubscribe()
        self._subscriptions = {}

    def close(self):
        """Stop all live queries. Safe to call more than once."""
        self._teardown()
        self._scope = None
        self._scope_token += 1
