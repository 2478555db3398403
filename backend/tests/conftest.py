"""
Shared fixtures and in-memory collaborators for the unit tests.
"""

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add backend to path for direct imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from billing.errors import DebitFailed, InsufficientTokens, StoreNotFound
from billing.notifications import BufferedNotifier
from billing.settings_fetcher import default_fee_settings


class FakeSubscription:
    def __init__(self, path):
        self.path = tuple(path)
        self.unsubscribe_calls = 0
        self.ended = False

    @property
    def active(self):
        return self.unsubscribe_calls == 0 and not self.ended

    def unsubscribe(self):
        self.unsubscribe_calls += 1
        return self.unsubscribe_calls == 1


class FakeDocumentStore:
    """In-memory DocumentStore; live queries emit only when a test calls emit()."""

    def __init__(self, collections: Optional[Dict[tuple, List[dict]]] = None):
        self.collections = {tuple(k): list(v) for k, v in (collections or {}).items()}
        self.reads: List[tuple] = []
        self.subscriptions: List[FakeSubscription] = []
        self._handlers = {}
        self.fail_on: Optional[tuple] = None

    async def get_all(self, path, order_by=None, descending=False):
        path = tuple(path)
        self.reads.append((path, order_by, descending))
        if self.fail_on == path:
            raise RuntimeError(f"read failed: {'/'.join(path)}")
        docs = list(self.collections.get(path, []))
        if order_by:
            docs.sort(key=lambda d: d.get(order_by), reverse=descending)
        return docs

    def subscribe(self, path, on_next, on_error, order_by=None, descending=False):
        subscription = FakeSubscription(path)
        self.subscriptions.append(subscription)
        self._handlers[id(subscription)] = (subscription, on_next, on_error)
        return subscription

    def active_subscriptions(self, path=None):
        return [
            s for s in self.subscriptions
            if s.active and (path is None or s.path == tuple(path))
        ]

    def emit(self, path, docs):
        for subscription, on_next, _ in list(self._handlers.values()):
            if subscription.path == tuple(path):
                on_next(docs)

    def fail(self, path, error):
        for subscription, _, on_error in list(self._handlers.values()):
            if subscription.path == tuple(path) and subscription.active:
                subscription.ended = True
                on_error(error)


class FakeBalanceService:
    """In-memory TokenBalanceService with call recording."""

    def __init__(self, balances: Optional[Dict[str, float]] = None):
        self.balances = dict(balances or {})
        self.adjustments: List[tuple] = []
        self.refreshes: List[str] = []
        self.unresolved: List[dict] = []
        self.fail_credits = False
        self.debit_error: Optional[Exception] = None

    async def adjust_balance(self, store_id, delta, action, request_id=None, details=None):
        if delta < 0 and self.debit_error is not None:
            raise self.debit_error
        if store_id not in self.balances:
            if delta < 0:
                raise DebitFailed(store_id=store_id)
            raise StoreNotFound(store_id=store_id)
        if delta < 0 and self.balances[store_id] < -delta:
            raise InsufficientTokens(store_id=store_id, remaining_balance=self.balances[store_id])
        if delta > 0 and self.fail_credits:
            raise ConnectionError("credit failed")
        self.adjustments.append((store_id, delta, action))
        self.balances[store_id] += delta
        return self.balances[store_id]

    async def refresh_balance(self, store_id):
        self.refreshes.append(store_id)
        return self.balances.get(store_id)

    def last_known_balance(self, store_id):
        return self.balances.get(store_id)

    async def record_unresolved_reversal(self, **record):
        self.unresolved.append(record)
        return f"unresolved-{len(self.unresolved)}"


class StaticSettingsFetcher:
    def __init__(self, settings=None):
        self.settings = settings or default_fee_settings()
        self.calls = 0

    async def fetch_fee_settings(self):
        self.calls += 1
        return self.settings


@pytest.fixture
def notifier():
    return BufferedNotifier()


@pytest.fixture
def fee_settings():
    return default_fee_settings()


@pytest.fixture
def balance_service():
    return FakeBalanceService({"store-1": 100})
