"""Record store: generic async CRUD over JSON documents keyed by entity type.

This is the only persistence layer the ledger engine talks to. It has no
multi-record transactions and enforces no foreign keys; every call yields to
the event loop once before it touches SQLite, so each CRUD call is a
suspension point for the coroutines driving it.
"""

import asyncio
import json
import uuid
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from errors import RecordNotFoundError

ENTITY_TYPES = (
    "Account",
    "Income",
    "Expense",
    "Transfer",
    "IncomeCategory",
    "ExpenseCategory",
    "UserSettings",
    "RecurringRule",
)

# Keys owned by the store; a patch cannot overwrite them
_RESERVED_KEYS = ("id", "created_at", "updated_at")


def _sort_value(value):
    """Sort key that orders None first, then numbers, then strings."""
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, int(value))
    if isinstance(value, (int, float)):
        return (1, value)
    return (2, str(value))


class RecordStore:
    """Async CRUD for every entity type, backed by the records table."""

    def __init__(self, db_manager):
        """Initialize the record store.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager
        self._last_stamp: Optional[datetime] = None

    async def list(self, entity_type: str, sort: Optional[str] = None) -> List[dict]:
        """List every record of a type.

        Args:
            entity_type: Entity type, e.g. "Expense".
            sort: Optional field name to sort by; prefix with "-" for descending.

        Returns:
            List of record dicts, in insertion order unless sort is given.
        """
        await asyncio.sleep(0)
        _check_entity_type(entity_type)
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                "SELECT id, data, created_at, updated_at FROM records "
                "WHERE entity_type = ? ORDER BY seq",
                (entity_type,),
            )
            rows = [_row_to_record(row) for row in cursor.fetchall()]

        if not sort:
            return rows

        descending = sort.startswith("-")
        field = sort[1:] if descending else sort
        return sorted(
            rows, key=lambda r: _sort_value(r.get(field)), reverse=descending
        )

    async def get(self, entity_type: str, record_id: str) -> Optional[dict]:
        """Get a single record by ID, or None if it does not exist."""
        await asyncio.sleep(0)
        _check_entity_type(entity_type)
        with self.db_manager.connect() as conn:
            row = _fetch_row(conn, entity_type, record_id)
        return _row_to_record(row) if row else None

    async def create(self, entity_type: str, fields: dict) -> dict:
        """Create a record, assigning its ID and creation timestamp.

        Returns:
            The stored record including id and created_at.
        """
        created = await self.create_many(entity_type, [fields])
        return created[0]

    async def create_many(self, entity_type: str, fields_list: List[dict]) -> List[dict]:
        """Create several records in one call.

        Returns:
            The stored records, in the order given.
        """
        await asyncio.sleep(0)
        _check_entity_type(entity_type)
        created = []
        with self.db_manager.connect() as conn:
            for fields in fields_list:
                record_id = uuid.uuid4().hex
                created_at = self._next_stamp()
                data = _strip_reserved(fields)
                conn.execute(
                    "INSERT INTO records (entity_type, id, data, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (entity_type, record_id, json.dumps(data), created_at),
                )
                created.append(
                    {"id": record_id, "created_at": created_at, "updated_at": None, **data}
                )
            conn.commit()
        return created

    async def update(self, entity_type: str, record_id: str, patch: dict) -> dict:
        """Merge a patch into an existing record and stamp updated_at.

        Raises:
            RecordNotFoundError: If no record has this ID.
        """
        await asyncio.sleep(0)
        _check_entity_type(entity_type)
        with self.db_manager.connect() as conn:
            row = _fetch_row(conn, entity_type, record_id)
            if row is None:
                raise RecordNotFoundError(entity_type, record_id)
            updated = self._apply_patch(conn, entity_type, row, patch)
            conn.commit()
        return updated

    async def update_many(self, entity_type: str, patches: List[dict]) -> List[dict]:
        """Apply several patches, each carrying the target "id".

        Patches whose ID does not exist are skipped.

        Returns:
            The updated records.
        """
        await asyncio.sleep(0)
        _check_entity_type(entity_type)
        updated = []
        with self.db_manager.connect() as conn:
            for patch in patches:
                row = _fetch_row(conn, entity_type, patch.get("id"))
                if row is None:
                    continue
                updated.append(self._apply_patch(conn, entity_type, row, patch))
            conn.commit()
        return updated

    async def delete(self, entity_type: str, record_id: str) -> bool:
        """Delete a record by ID.

        Returns:
            True if a record was deleted, False if not found.
        """
        await asyncio.sleep(0)
        _check_entity_type(entity_type)
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM records WHERE entity_type = ? AND id = ?",
                (entity_type, record_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    async def delete_many(self, entity_type: str, record_ids: Iterable[str]) -> int:
        """Delete several records.

        Returns:
            Number of records deleted.
        """
        await asyncio.sleep(0)
        _check_entity_type(entity_type)
        with self.db_manager.connect() as conn:
            cursor = conn.executemany(
                "DELETE FROM records WHERE entity_type = ? AND id = ?",
                [(entity_type, record_id) for record_id in record_ids],
            )
            conn.commit()
            return cursor.rowcount

    def _apply_patch(self, conn, entity_type: str, row: tuple, patch: dict) -> dict:
        record = _row_to_record(row)
        data = {k: v for k, v in record.items() if k not in _RESERVED_KEYS}
        data.update(_strip_reserved(patch))
        updated_at = self._next_stamp()
        conn.execute(
            "UPDATE records SET data = ?, updated_at = ? WHERE entity_type = ? AND id = ?",
            (json.dumps(data), updated_at, entity_type, record["id"]),
        )
        return {
            "id": record["id"],
            "created_at": record["created_at"],
            "updated_at": updated_at,
            **data,
        }

    def _next_stamp(self) -> str:
        """Current time as ISO string, strictly increasing across calls."""
        now = datetime.now()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now.isoformat(timespec="microseconds")


def _check_entity_type(entity_type: str) -> None:
    if entity_type not in ENTITY_TYPES:
        raise ValueError(f"Unknown entity type: {entity_type}")


def _strip_reserved(fields: dict) -> dict:
    return {k: v for k, v in fields.items() if k not in _RESERVED_KEYS}


def _fetch_row(conn, entity_type: str, record_id: Optional[str]):
    cursor = conn.execute(
        "SELECT id, data, created_at, updated_at FROM records "
        "WHERE entity_type = ? AND id = ?",
        (entity_type, record_id),
    )
    return cursor.fetchone()


def _row_to_record(row: tuple) -> dict:
    """Convert a database row to a record dict."""
    return {
        "id": row[0],
        "created_at": row[2],
        "updated_at": row[3],
        **json.loads(row[1]),
    }
