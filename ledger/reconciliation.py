"""Starting balance reconciliation.

Every account with a non-zero starting balance owns exactly one synthetic
Income or Expense entry: reserved category label, dated 1970-01-01, cleared
and projected, amount equal to the absolute starting balance, variant chosen
by its sign. Accounts with a zero starting balance own none.

reconcile() makes the record store match that state. It is idempotent and
self-healing: duplicates left behind by earlier runs, entries of the wrong
variant after a sign flip and stale amounts are all repaired, and a second
run over unchanged accounts writes nothing.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from logger import get_logger
from ledger.balances import sort_ascending
from models.account import Account
from models.transaction import (
    ENTRY_ENTITIES,
    STARTING_BALANCE_CATEGORY,
    STARTING_BALANCE_DATE,
    STARTING_BALANCE_NOTES,
    Transaction,
    is_starting_balance_label,
)

logger = get_logger("reconciliation")


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation pass.

    Attributes:
        applied: Account ID -> starting balance now reflected in the store.
        created: IDs of synthetic entries created.
        updated: IDs of synthetic entries updated in place.
        deleted: IDs of synthetic entries deleted.
        unchanged: Accounts that needed no write.
        errors: Account ID -> error message for accounts that failed.
    """

    applied: Dict[str, Decimal] = field(default_factory=dict)
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def writes(self) -> int:
        return len(self.created) + len(self.updated) + len(self.deleted)

    @property
    def ok(self) -> bool:
        return not self.errors


def desired_type(starting_balance: Decimal) -> Optional[str]:
    """Variant of the synthetic entry for a starting balance, None for zero."""
    if starting_balance > 0:
        return "income"
    if starting_balance < 0:
        return "expense"
    return None


class ReconciliationEngine:
    """Keeps synthetic starting balance entries consistent with accounts.

    One engine is constructed per process (see services.base.Services) and
    owns the in-flight pass and the advisory cache of applied balances.

    Only one pass runs at a time. A caller arriving while a pass is in flight
    does not start a second one; its accounts are merged into the queued
    follow-up pass (by account ID, later snapshots winning, first-seen order)
    and every queued caller awaits that follow-up.
    """

    def __init__(self, records):
        """Initialize the engine.

        Args:
            records: RecordStore the synthetic entries live in.
        """
        self.records = records
        # Advisory: account ID -> starting balance last applied. Never trusted
        # to skip a store read.
        self.applied: Dict[str, Decimal] = {}
        self._in_flight: Optional[asyncio.Future] = None
        self._follow_up: Optional[asyncio.Future] = None
        self._queued: Optional[List[Account]] = None

    @property
    def running(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def reconcile(self, accounts: Sequence[Account]) -> ReconciliationResult:
        """Reconcile synthetic entries for the given accounts.

        Args:
            accounts: Accounts to reconcile, processed in this order.

        Returns:
            The result of the pass that covered this caller's snapshot.
        """
        snapshot = list(accounts)

        if self._follow_up is not None:
            self._enqueue(snapshot)
            return await asyncio.shield(self._follow_up)

        if self.running:
            logger.debug("Reconciliation in flight - queueing follow-up pass")
            self._enqueue(snapshot)
            self._follow_up = asyncio.ensure_future(self._run_after(self._in_flight))
            return await asyncio.shield(self._follow_up)

        self._in_flight = asyncio.ensure_future(self._run(snapshot))
        return await asyncio.shield(self._in_flight)

    def _enqueue(self, snapshot: List[Account]) -> None:
        """Merge a snapshot into the queued one, latest account state per ID."""
        queued = {account.id: account for account in self._queued or []}
        for account in snapshot:
            queued[account.id] = account
        self._queued = list(queued.values())

    async def _run_after(self, previous: asyncio.Future) -> ReconciliationResult:
        await asyncio.wait([previous])
        self._in_flight, self._follow_up = self._follow_up, None
        snapshot, self._queued = self._queued, None
        return await self._run(snapshot)

    async def _run(self, accounts: List[Account]) -> ReconciliationResult:
        result = ReconciliationResult()
        logger.info(f"Reconciling starting balances for {len(accounts)} account(s)")

        for account in accounts:
            try:
                await self._reconcile_account(account, result)
            except Exception as e:
                logger.error(
                    f"Failed to reconcile starting balance for '{account.name}': {e}"
                )
                result.errors[account.id] = str(e)
                self.applied.pop(account.id, None)

        logger.info(
            f"Reconciliation finished: {len(result.created)} created, "
            f"{len(result.updated)} updated, {len(result.deleted)} deleted, "
            f"{len(result.errors)} failed"
        )
        return result

    async def _reconcile_account(self, account: Account, result: ReconciliationResult):
        starting_balance = Decimal(account.starting_balance)
        matches = await self._find_synthetic_entries(account.id)
        wanted = desired_type(starting_balance)

        if self.applied.get(account.id) == starting_balance:
            logger.debug(f"'{account.name}': cached starting balance unchanged, verifying")

        writes_before = result.writes

        if wanted is None:
            for entry in matches:
                await self._delete(entry, result)
            self._record_applied(account, Decimal("0"), result, writes_before)
            return

        keep = [e for e in matches if e.type == wanted]
        wrong_variant = [e for e in matches if e.type != wanted]

        for entry in wrong_variant:
            await self._delete(entry, result)

        desired = self._desired_fields(account, wanted, abs(starting_balance))

        if not keep:
            record = await self.records.create(ENTRY_ENTITIES[wanted], desired)
            result.created.append(record["id"])
            logger.info(
                f"Created {wanted} starting balance {abs(starting_balance)} "
                f"for '{account.name}'"
            )
        else:
            first, duplicates = keep[0], keep[1:]
            for entry in duplicates:
                await self._delete(entry, result)
            if not self._matches(first, desired):
                await self.records.update(ENTRY_ENTITIES[wanted], first.id, desired)
                result.updated.append(first.id)
                logger.info(
                    f"Updated starting balance for '{account.name}' "
                    f"to {abs(starting_balance)}"
                )

        self._record_applied(account, starting_balance, result, writes_before)

    async def _find_synthetic_entries(self, account_id: str) -> List[Transaction]:
        """All synthetic entries for an account, both variants, oldest first."""
        matches = []
        for type in ("income", "expense"):
            for record in await self.records.list(ENTRY_ENTITIES[type]):
                if record.get("account_id") != account_id:
                    continue
                if is_starting_balance_label(record.get("category")):
                    matches.append(Transaction.from_record(type, record))
        return sort_ascending(matches)

    async def _delete(self, entry: Transaction, result: ReconciliationResult):
        await self.records.delete(ENTRY_ENTITIES[entry.type], entry.id)
        result.deleted.append(entry.id)
        logger.info(f"Deleted {entry.type} starting balance entry {entry.id}")

    def _record_applied(self, account, value, result, writes_before):
        self.applied[account.id] = value
        result.applied[account.id] = value
        if result.writes == writes_before:
            result.unchanged.append(account.id)

    @staticmethod
    def _desired_fields(account: Account, type: str, amount: Decimal) -> dict:
        return Transaction(
            id=None,
            type=type,
            account_id=account.id,
            amount=amount,
            date=STARTING_BALANCE_DATE,
            category=STARTING_BALANCE_CATEGORY,
            notes=STARTING_BALANCE_NOTES,
            cleared=True,
            projected=True,
        ).to_fields()

    @staticmethod
    def _matches(entry: Transaction, desired: dict) -> bool:
        return (
            entry.amount == Decimal(desired["amount"])
            and entry.date == STARTING_BALANCE_DATE
            and entry.category == STARTING_BALANCE_CATEGORY
            and entry.cleared
            and entry.projected
        )
