"""
Document Store Adapter
======================

Narrow read interface over the MongoDB document store used by the dashboard:
- get_all: one-shot read of a collection, optionally ordered by one field
- subscribe: live query that re-emits the full ordered result on every change

Paths follow the store hierarchy:
- ("stores",), ("users",), ("pending_orders",)      -> top-level collections
- ("stores", <store_id>, "products")                -> store sub-collection,
  stored in the "products" collection filtered by store_id

Documents are returned as plain dicts with an opaque string "id".
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

Path = Sequence[str]
OnNext = Callable[[List[Dict[str, Any]]], None]
OnError = Callable[[Exception], None]


def store_collection(store_id: str, name: str) -> Tuple[str, str, str]:
    """Path of a store-scoped sub-collection."""
    return ("stores", store_id, name)


def resolve_path(path: Path) -> Tuple[str, Dict[str, Any]]:
    """Map a collection path to (mongo collection name, filter)."""
    if len(path) == 1:
        return path[0], {}
    if len(path) == 3 and path[0] == "stores":
        return path[2], {"store_id": path[1]}
    raise ValueError(f"Unsupported collection path: {'/'.join(path)}")


def to_entity(doc: Dict[str, Any]) -> Dict[str, Any]:
    entity = dict(doc)
    raw_id = entity.pop("_id", None)
    if "id" not in entity:
        entity["id"] = str(raw_id)
    return entity


class Subscription:
    """Handle for a live query. unsubscribe() is idempotent.

    A subscription whose watch task has ended (after an error) is no longer
    active.
    """

    def __init__(self, name: str, task: Optional[asyncio.Task] = None):
        self.name = name
        self._task = task
        self._closed = False

    @property
    def active(self) -> bool:
        if self._closed:
            return False
        return self._task is None or not self._task.done()

    def unsubscribe(self) -> bool:
        """Stop the live query. Returns False if it was already stopped."""
        if self._closed:
            return False
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.debug(f"Unsubscribed from {self.name}")
        return True


class DocumentStore(Protocol):
    async def get_all(
        self, path: Path, order_by: Optional[str] = None, descending: bool = False
    ) -> List[Dict[str, Any]]:
        ...

    def subscribe(
        self,
        path: Path,
        on_next: OnNext,
        on_error: OnError,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        ...


class MotorDocumentStore:
    """DocumentStore backed by a motor AsyncIOMotorDatabase."""

    def __init__(self, db):
        self.db = db

    async def get_all(
        self, path: Path, order_by: Optional[str] = None, descending: bool = False
    ) -> List[Dict[str, Any]]:
        name, query = resolve_path(path)
        cursor = self.db[name].find(query)
        if order_by:
            cursor = cursor.sort(order_by, -1 if descending else 1)
        docs = await cursor.to_list(length=None)
        return [to_entity(doc) for doc in docs]

    def subscribe(
        self,
        path: Path,
        on_next: OnNext,
        on_error: OnError,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        """
        Start a live query (requires a replica set for change streams).

        Emits the initial snapshot, then the full re-queried snapshot after
        every change to the underlying collection. Errors are reported once
        through on_error and end the subscription.
        """
        label = "/".join(path)
        task = asyncio.create_task(
            self._watch(path, on_next, on_error, order_by, descending),
            name=f"subscription:{label}"
        )
        return Subscription(label, task)

    async def _watch(
        self,
        path: Path,
        on_next: OnNext,
        on_error: OnError,
        order_by: Optional[str],
        descending: bool,
    ):
        name, _ = resolve_path(path)
        try:
            # Open the stream before the first read so no change is missed
            async with self.db[name].watch() as stream:
                on_next(await self.get_all(path, order_by, descending))
                async for _change in stream:
                    on_next(await self.get_all(path, order_by, descending))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Live query on {'/'.join(path)} failed: {e}")
            on_error(e)
