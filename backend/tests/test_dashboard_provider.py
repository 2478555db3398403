"""
Unit Tests for the Dashboard Aggregation Provider
=================================================

Tests:
1. Refresh preconditions and full replacement of the view model
2. Superadmin without a store gets empty store-scoped collections
3. Read failures keep the previous view model and notify
4. Stale refresh batches are discarded
5. Live queries: binding, store switch teardown, stale emissions, errors
"""

import asyncio

import pytest

from conftest import FakeBalanceService, FakeDocumentStore, StaticSettingsFetcher
from billing.settings_fetcher import default_fee_settings, parse_fee_settings
from services.dashboard_provider import (
    DashboardProvider,
    Session,
    global_pending_orders_path,
    store_pending_orders_path,
)

CASHIER = Session(user_id="u1", role="cashier", active_store_id="s1")
SUPERADMIN = Session(user_id="admin", role="superadmin")


def seeded_store():
    return FakeDocumentStore({
        ("stores",): [{"id": "s1", "name": "Kopi Senja"}, {"id": "s2", "name": "Warung Dua"}],
        ("users",): [{"id": "u1", "role": "cashier"}],
        ("stores", "s1", "products"): [{"id": "p2", "name": "Teh"}, {"id": "p1", "name": "Kopi"}],
        ("stores", "s1", "customers"): [
            {"id": "c1", "join_date": "2024-01-01"},
            {"id": "c2", "join_date": "2024-06-01"},
        ],
        ("stores", "s1", "tables"): [{"id": "t1", "name": "A1"}],
        ("stores", "s1", "redemption_options"): [{"id": "r1"}],
        ("stores", "s1", "challenge_periods"): [{"id": "cp1", "created_at": "2024-05-01"}],
        ("stores", "s2", "products"): [{"id": "p9", "name": "Roti"}],
    })


def make_provider(store=None, settings=None, notifier=None, **kwargs):
    return DashboardProvider(
        store or seeded_store(),
        StaticSettingsFetcher(settings),
        FakeBalanceService({"s1": 10, "s2": 20}),
        notifier,
        **kwargs
    )


class TestSession:

    def test_from_user_uses_assigned_store(self):
        session = Session.from_user({"id": "u1", "role": "cashier", "store_id": "s1"})
        assert session.active_store_id == "s1"
        assert not session.is_superadmin

    def test_from_user_explicit_store_wins(self):
        session = Session.from_user({"id": "a", "role": "admin", "store_id": "s1"}, "s2")
        assert session.active_store_id == "s2"

    def test_from_no_user(self):
        assert Session.from_user(None).user_id is None


class TestRefresh:

    @pytest.mark.asyncio
    async def test_no_user_is_noop(self):
        store = seeded_store()
        provider = make_provider(store)

        assert await provider.refresh(Session(user_id=None)) is None
        assert store.reads == []

    @pytest.mark.asyncio
    async def test_non_superadmin_without_store_is_noop(self):
        store = seeded_store()
        provider = make_provider(store)

        result = await provider.refresh(Session(user_id="u1", role="admin"))

        assert result is None
        assert store.reads == []
        assert provider.view_model.generation == 0

    @pytest.mark.asyncio
    async def test_refresh_populates_view_model(self):
        settings = parse_fee_settings({"aiUsageFee": 3})
        provider = make_provider(settings=settings)

        view_model = await provider.refresh(CASHIER)

        assert [s["id"] for s in view_model.stores] == ["s1", "s2"]
        assert [p["name"] for p in view_model.products] == ["Kopi", "Teh"]
        assert [c["id"] for c in view_model.customers] == ["c2", "c1"]
        assert view_model.tables == [{"id": "t1", "name": "A1"}]
        assert view_model.redemption_options == [{"id": "r1"}]
        assert view_model.challenge_periods == [{"id": "cp1", "created_at": "2024-05-01"}]
        assert view_model.users == [{"id": "u1", "role": "cashier"}]
        assert view_model.fee_settings.ai_usage_fee == 3
        assert view_model.generation == 1
        assert provider.is_loading is False

    @pytest.mark.asyncio
    async def test_refresh_refreshes_balance(self):
        provider = make_provider()

        await provider.refresh(CASHIER)

        assert provider.balance_service.refreshes == ["s1"]

    @pytest.mark.asyncio
    async def test_refresh_replaces_collections_wholesale(self):
        store = seeded_store()
        provider = make_provider(store)
        await provider.refresh(CASHIER)

        store.collections[("stores", "s1", "products")] = [{"id": "p3", "name": "Susu"}]
        view_model = await provider.refresh(CASHIER)

        assert view_model.products == [{"id": "p3", "name": "Susu"}]

    @pytest.mark.asyncio
    async def test_superadmin_without_store(self):
        store = seeded_store()
        provider = make_provider(store)

        view_model = await provider.refresh(SUPERADMIN)

        assert len(view_model.stores) == 2
        assert view_model.users == [{"id": "u1", "role": "cashier"}]
        assert view_model.products == []
        assert view_model.customers == []
        assert view_model.tables == []
        assert view_model.redemption_options == []
        assert view_model.challenge_periods == []
        assert [path for path, _, _ in store.reads] == [("stores",), ("users",)]
        assert provider.balance_service.refreshes == []

    @pytest.mark.asyncio
    async def test_read_failure_keeps_previous_view_model(self, notifier):
        store = seeded_store()
        provider = make_provider(store, notifier=notifier)
        before = await provider.refresh(CASHIER)

        store.fail_on = ("stores", "s1", "customers")
        result = await provider.refresh(CASHIER)

        assert result is None
        assert provider.view_model is before
        assert notifier.last("destructive")["title"] == "Failed to load dashboard data"
        assert provider.is_loading is False

    @pytest.mark.asyncio
    async def test_listeners_receive_new_view_models(self):
        provider = make_provider()
        seen = []
        remove = provider.add_listener(seen.append)

        await provider.refresh(CASHIER)
        remove()
        await provider.refresh(CASHIER)

        assert len(seen) == 1
        assert seen[0].generation == 1


class SlowFirstReadStore(FakeDocumentStore):
    """Blocks the first stores read until release is set."""

    def __init__(self, collections):
        super().__init__(collections)
        self.release = asyncio.Event()
        self._blocked = False

    async def get_all(self, path, order_by=None, descending=False):
        if tuple(path) == ("stores",) and not self._blocked:
            self._blocked = True
            await self.release.wait()
            return [{"id": "old"}]
        return await super().get_all(path, order_by, descending)


class TestStaleRefresh:

    @pytest.mark.asyncio
    async def test_older_batch_is_discarded(self):
        store = SlowFirstReadStore(seeded_store().collections)
        provider = make_provider(store)

        first = asyncio.create_task(provider.refresh(CASHIER))
        await asyncio.sleep(0)

        second = await provider.refresh(CASHIER)
        store.release.set()
        stale = await first

        assert stale is None
        assert second.generation == 2
        assert provider.view_model.generation == 2
        assert [s["id"] for s in provider.view_model.stores] == ["s1", "s2"]


class TestLiveQueries:

    @pytest.mark.asyncio
    async def test_activate_installs_two_subscriptions(self):
        store = seeded_store()
        provider = make_provider(store)

        await provider.activate(CASHIER)

        paths = sorted(s.path for s in store.active_subscriptions())
        assert paths == [("pending_orders",), ("stores", "s1", "transactions")]

    @pytest.mark.asyncio
    async def test_store_scoped_pending_orders(self):
        store = seeded_store()
        provider = make_provider(store, pending_orders_path=store_pending_orders_path)

        await provider.activate(CASHIER)

        assert store.active_subscriptions(("stores", "s1", "pending_orders"))

    def test_global_pending_orders_path(self):
        assert tuple(global_pending_orders_path(CASHIER)) == ("pending_orders",)

    @pytest.mark.asyncio
    async def test_emissions_replace_collection(self):
        store = seeded_store()
        provider = make_provider(store)
        await provider.activate(CASHIER)

        store.emit(("stores", "s1", "transactions"), [{"id": "tx2"}, {"id": "tx1"}])
        store.emit(("pending_orders",), [{"id": "o1"}])

        assert [t["id"] for t in provider.view_model.transactions] == ["tx2", "tx1"]
        assert provider.view_model.pending_orders == [{"id": "o1"}]

        store.emit(("stores", "s1", "transactions"), [])
        assert provider.view_model.transactions == []

    @pytest.mark.asyncio
    async def test_store_switch_unsubscribes_once(self):
        store = seeded_store()
        provider = make_provider(store)
        await provider.activate(CASHIER)
        old = list(store.subscriptions)
        store.emit(("stores", "s1", "transactions"), [{"id": "tx1"}])

        await provider.activate(Session(user_id="u1", role="admin", active_store_id="s2"))

        assert [s.unsubscribe_calls for s in old] == [1, 1]
        assert sorted(s.path for s in store.active_subscriptions()) == [
            ("pending_orders",), ("stores", "s2", "transactions")
        ]
        assert provider.view_model.transactions == []
        assert provider.view_model.products == [{"id": "p9", "name": "Roti"}]

    @pytest.mark.asyncio
    async def test_same_session_keeps_subscriptions(self):
        store = seeded_store()
        provider = make_provider(store)

        await provider.activate(CASHIER)
        await provider.activate(CASHIER)

        assert len(store.subscriptions) == 2

    @pytest.mark.asyncio
    async def test_emissions_after_teardown_are_ignored(self):
        store = seeded_store()
        provider = make_provider(store)
        await provider.activate(CASHIER)

        provider.close()
        store.emit(("stores", "s1", "transactions"), [{"id": "late"}])

        assert provider.view_model.transactions == []
        assert store.active_subscriptions() == []
        provider.close()
        assert all(s.unsubscribe_calls == 1 for s in store.subscriptions)

    @pytest.mark.asyncio
    async def test_superadmin_has_no_live_queries(self):
        store = seeded_store()
        provider = make_provider(store)
        await provider.activate(CASHIER)
        store.emit(("pending_orders",), [{"id": "o1"}])

        await provider.activate(SUPERADMIN)

        assert store.active_subscriptions() == []
        assert provider.view_model.transactions == []
        assert provider.view_model.pending_orders == []

    @pytest.mark.asyncio
    async def test_subscription_error_notifies(self, notifier):
        store = seeded_store()
        provider = make_provider(store, notifier=notifier)
        await provider.activate(CASHIER)
        store.emit(("stores", "s1", "transactions"), [{"id": "tx1"}])

        store.fail(("stores", "s1", "transactions"), ConnectionError("stream closed"))

        assert notifier.last("destructive")["title"] == "Real-time transactions error"
        assert provider.view_model.transactions == [{"id": "tx1"}]

    @pytest.mark.asyncio
    async def test_default_fee_settings_before_first_refresh(self):
        provider = make_provider()
        assert provider.view_model.fee_settings == default_fee_settings()

    @pytest.mark.asyncio
    async def test_failed_live_query_is_reinstalled_on_activate(self, notifier):
        store = seeded_store()
        provider = make_provider(store, notifier=notifier)
        await provider.activate(CASHIER)
        failed = store.active_subscriptions(("stores", "s1", "transactions"))[0]

        store.fail(("stores", "s1", "transactions"), ConnectionError("stream closed"))
        assert not failed.active

        await provider.activate(CASHIER)

        assert len(store.active_subscriptions()) == 2
        assert len(store.subscriptions) == 4
        store.emit(("stores", "s1", "transactions"), [{"id": "tx9"}])
        assert provider.view_model.transactions == [{"id": "tx9"}]
