"""Optimistic, undoable deletes over a cached view of the ledger.

A delete is applied to the cached view at once and committed to the record
store only after a grace period. Undo within the window restores the cached
view and never touches the store.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List

from errors import PendingDeleteError
from logger import get_logger
from models.transaction import ENTRY_ENTITIES

logger = get_logger("deletes")

DEFAULT_GRACE_SECONDS = 8.0


class CollectionCache:
    """In-memory cached view of ledger collections, one list per kind.

    Kinds are the transaction types ("income", "expense", "transfer"). Items
    are anything with an ``id`` attribute. While a kind has pending deletes
    only the DeferredDeleteCoordinator may change its list.
    """

    def __init__(self):
        self._collections: Dict[str, List] = {}
        self._locks: Dict[str, set] = {}

    def get(self, kind: str) -> List:
        """Current items of a kind (a copy)."""
        return list(self._collections.get(kind, []))

    def find(self, kind: str, item_id: str):
        for item in self._collections.get(kind, []):
            if item.id == item_id:
                return item
        return None

    def replace(self, kind: str, items: List) -> None:
        """Replace a kind's items, e.g. after re-reading the store.

        Raises:
            PendingDeleteError: If a delete of this kind is awaiting its undo window.
        """
        locked = self._locks.get(kind)
        if locked:
            raise PendingDeleteError(kind, sorted(locked))
        self._collections[kind] = list(items)

    def snapshot(self, kind: str) -> List:
        return self.get(kind)

    def restore(self, kind: str, snapshot: List) -> None:
        self._collections[kind] = list(snapshot)

    def hold(self, kind: str, key: str) -> None:
        self._locks.setdefault(kind, set()).add(key)

    def release(self, kind: str, key: str) -> None:
        self._locks.get(kind, set()).discard(key)

    def held(self, kind: str) -> bool:
        return bool(self._locks.get(kind))


@dataclass
class PendingDelete:
    kind: str
    item_id: str
    task: asyncio.Task


def delete_key(kind: str, item_id: str) -> str:
    return f"{kind}:{item_id}"


class DeferredDeleteCoordinator:
    """Schedules grace-period deletes with undo.

    At most one delete is pending per (kind, id); timers of different keys
    are independent and expire in no particular relative order. While a kind
    has pending deletes the coordinator remembers the view as it was before
    the first of them, so undoing any subset restores exactly the items the
    remaining deletes do not hide.
    """

    def __init__(
        self,
        records,
        cache: CollectionCache,
        grace_seconds: float = DEFAULT_GRACE_SECONDS,
    ):
        """Initialize the coordinator.

        Args:
            records: RecordStore the real deletes are issued against.
            cache: Cached view the optimistic deletes are applied to.
            grace_seconds: Length of the undo window.
        """
        self.records = records
        self.cache = cache
        self.grace_seconds = grace_seconds
        self._pending: Dict[str, PendingDelete] = {}
        self._bases: Dict[str, List] = {}
        self._commits: set = set()

    def pending_keys(self) -> List[str]:
        return sorted(self._pending)

    async def schedule_delete(self, kind: str, item_id: str) -> bool:
        """Start an undoable delete.

        Args:
            kind: "income", "expense" or "transfer".
            item_id: Identifier of the entry.

        Returns:
            True if a delete was scheduled; False if a delete for it is
            already pending (request ignored) or the item was not cached
            (deleted from the store immediately, no undo).
        """
        entity_type = ENTRY_ENTITIES[kind]
        key = delete_key(kind, item_id)

        if key in self._pending:
            logger.debug(f"Delete already pending for {key} - ignoring")
            return False

        if self.cache.find(kind, item_id) is None:
            logger.info(f"{key} not in cached view - deleting immediately")
            await self.records.delete(entity_type, item_id)
            return False

        if kind not in self._bases:
            self._bases[kind] = self.cache.snapshot(kind)
        self.cache.restore(
            kind, [item for item in self.cache.get(kind) if item.id != item_id]
        )
        self.cache.hold(kind, key)

        task = asyncio.ensure_future(self._expire(key))
        self._pending[key] = PendingDelete(kind, item_id, task)
        logger.info(f"Scheduled delete of {key} in {self.grace_seconds}s")
        return True

    def undo(self, kind: str, item_id: str) -> bool:
        """Cancel a pending delete and restore the cached view.

        Returns:
            True if a pending delete was undone, False if there was none
            (never scheduled, already undone, or already committed).
        """
        key = delete_key(kind, item_id)
        pending = self._pending.pop(key, None)
        if pending is None:
            return False

        pending.task.cancel()
        self.cache.release(kind, key)

        # Items hidden by other deletes still pending on this kind stay hidden
        hidden = self._hidden(kind)
        self.cache.restore(
            kind, [item for item in self._bases.get(kind, []) if item.id not in hidden]
        )
        self._forget_base(kind)
        logger.info(f"Undid delete of {key}")
        return True

    async def flush(self) -> None:
        """Commit every pending delete now, skipping the rest of the window."""
        for key in list(self._pending):
            pending = self._pending.pop(key)
            pending.task.cancel()
            await self._commit(pending)
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait for commits already past their grace period to finish."""
        if self._commits:
            await asyncio.gather(*list(self._commits))

    def _hidden(self, kind: str) -> set:
        return {p.item_id for p in self._pending.values() if p.kind == kind}

    def _forget_base(self, kind: str) -> None:
        if not self._hidden(kind):
            self._bases.pop(kind, None)

    async def _expire(self, key: str) -> None:
        await asyncio.sleep(self.grace_seconds)
        pending = self._pending.pop(key, None)
        if pending is None:
            return
        commit = asyncio.ensure_future(self._commit(pending))
        self._commits.add(commit)
        commit.add_done_callback(self._commits.discard)

    async def _commit(self, pending: PendingDelete) -> bool:
        kind = pending.kind
        key = delete_key(kind, pending.item_id)
        self.cache.release(kind, key)
        if kind in self._bases:
            self._bases[kind] = [i for i in self._bases[kind] if i.id != pending.item_id]
        self._forget_base(kind)
        try:
            await self.records.delete(ENTRY_ENTITIES[kind], pending.item_id)
        except Exception as e:
            logger.error(f"Failed to delete {key}: {e}")
            return False
        logger.info(f"Committed delete of {key}")
        return True
