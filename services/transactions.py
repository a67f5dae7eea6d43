"""Transaction service: income, expense and transfer entries."""

import math
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional

from errors import RecordNotFoundError, ValidationError
from ledger.balances import sort_descending
from logger import get_logger
from models.transaction import (
    ENTRY_ENTITIES,
    TRANSACTION_TYPES,
    LedgerEntry,
    Transaction,
    Transfer,
    entry_from_record,
)

logger = get_logger("transactions")

ProgressCallback = Callable[[int], None]


def percent(done: int, total: int) -> int:
    """Whole percentage, halves rounded up."""
    if total <= 0:
        return 100
    return math.floor(100 * done / total + 0.5)


class TransactionService:
    """Service for managing ledger entries."""

    def __init__(self, records):
        """Initialize the transaction service.

        Args:
            records: RecordStore instance.
        """
        self.records = records

    async def create(self, transaction: Transaction) -> Transaction:
        """Create an income or expense entry.

        Args:
            transaction: Transaction to store; its id is ignored.

        Returns:
            The stored Transaction with id and timestamps populated.

        Raises:
            ValidationError: If the entry is incomplete or its amount negative.
        """
        self._validate_transaction(transaction)
        record = await self.records.create(
            ENTRY_ENTITIES[transaction.type], transaction.to_fields()
        )
        return Transaction.from_record(transaction.type, record)

    async def create_transfer(self, transfer: Transfer) -> Transfer:
        """Create a transfer between two accounts.

        Raises:
            ValidationError: If the accounts are equal or missing, the amount
                is negative, or the accounts' currencies differ and no
                destination amount is given.
        """
        await self._validate_transfer(transfer)
        record = await self.records.create(ENTRY_ENTITIES["transfer"], transfer.to_fields())
        return Transfer.from_record(record)

    async def find(self, type: str, entry_id: str) -> Optional[LedgerEntry]:
        record = await self.records.get(_entity(type), entry_id)
        return entry_from_record(type, record) if record else None

    async def find_all(self) -> List[LedgerEntry]:
        """Get every income, expense and transfer entry (unordered)."""
        entries = []
        for type in TRANSACTION_TYPES:
            records = await self.records.list(ENTRY_ENTITIES[type])
            entries.extend(entry_from_record(type, r) for r in records)
        return entries

    async def find_by_account(self, account_id: str) -> List[LedgerEntry]:
        """Get all entries touching an account, newest first.

        Transfers are included on both their source and destination account.
        """
        entries = [
            e
            for e in await self.find_all()
            if (e.type == "transfer" and account_id in (e.from_account_id, e.to_account_id))
            or (e.type != "transfer" and e.account_id == account_id)
        ]
        return sort_descending(entries)

    async def update(self, type: str, entry_id: str, **fields) -> LedgerEntry:
        """Update fields of an entry.

        Raises:
            RecordNotFoundError: If the entry does not exist.
            ValidationError: If the updated entry is invalid.
        """
        current = await self.find(type, entry_id)
        if current is None:
            raise RecordNotFoundError(_entity(type), entry_id)

        if "type" in fields:
            raise ValidationError("Entry type cannot be changed", field="type")

        updated = replace(current, **fields)
        if type == "transfer":
            await self._validate_transfer(updated)
        else:
            self._validate_transaction(updated)

        record = await self.records.update(_entity(type), entry_id, updated.to_fields())
        return entry_from_record(type, record)

    async def duplicate(self, entry: LedgerEntry, on_date: Optional[date] = None) -> LedgerEntry:
        """Create a copy of an entry, optionally on another date.

        Transfers are copied without their cleared/projected flags.
        """
        new_date = on_date or entry.date
        if entry.type == "transfer":
            copy = Transfer(
                id=None,
                from_account_id=entry.from_account_id,
                to_account_id=entry.to_account_id,
                amount=entry.amount,
                to_amount=entry.to_amount,
                date=new_date,
                notes=entry.notes,
            )
            return await self.create_transfer(copy)

        copy = replace(
            entry,
            id=None,
            date=new_date,
            recurring_rule_id=None,
            created_at=None,
            updated_at=None,
        )
        return await self.create(copy)

    async def delete(self, type: str, entry_id: str) -> bool:
        """Delete an entry by ID.

        Returns:
            True if the entry was deleted, False if not found.
        """
        return await self.records.delete(_entity(type), entry_id)

    async def delete_all(self, progress: Optional[ProgressCallback] = None) -> int:
        """Delete every income, expense and transfer entry, one at a time.

        Args:
            progress: Called with the completed percentage after each delete.

        Returns:
            Number of entries deleted.
        """
        targets = []
        for type in TRANSACTION_TYPES:
            entity = ENTRY_ENTITIES[type]
            targets.extend((entity, r["id"]) for r in await self.records.list(entity))

        deleted = 0
        for done, (entity, entry_id) in enumerate(targets, start=1):
            if await self.records.delete(entity, entry_id):
                deleted += 1
            if progress is not None:
                progress(percent(done, len(targets)))

        logger.info(f"Deleted {deleted} transaction(s)")
        return deleted

    def _validate_transaction(self, transaction: Transaction) -> None:
        if transaction.type not in ("income", "expense"):
            raise ValidationError(f"Invalid transaction type '{transaction.type}'", field="type")
        if not transaction.account_id:
            raise ValidationError("Account is required", field="account_id")
        if transaction.date is None:
            raise ValidationError("Date is required", field="date")
        validate_amount(transaction.amount)

    async def _validate_transfer(self, transfer: Transfer) -> None:
        if not transfer.from_account_id or not transfer.to_account_id:
            raise ValidationError("Both transfer accounts are required")
        if transfer.from_account_id == transfer.to_account_id:
            raise ValidationError(
                "Transfer source and destination accounts must differ",
                field="to_account_id",
            )
        if transfer.date is None:
            raise ValidationError("Date is required", field="date")
        validate_amount(transfer.amount)
        if transfer.to_amount is not None:
            validate_amount(transfer.to_amount, field="to_amount")

        source = await self.records.get("Account", transfer.from_account_id)
        destination = await self.records.get("Account", transfer.to_account_id)
        if source is None or destination is None:
            raise ValidationError("Transfer account does not exist")
        if (
            (source.get("currency") or "EUR") != (destination.get("currency") or "EUR")
            and transfer.to_amount is None
        ):
            raise ValidationError(
                "Destination amount is required when account currencies differ",
                field="to_amount",
            )


def validate_amount(amount, field: str = "amount") -> None:
    if amount is None:
        raise ValidationError("Amount is required", field=field)
    amount = Decimal(amount)
    if not amount.is_finite() or amount < 0:
        raise ValidationError("Amount must be a non-negative number", field=field)


def _entity(type: str) -> str:
    if type not in ENTRY_ENTITIES:
        raise ValidationError(f"Invalid transaction type '{type}'", field="type")
    return ENTRY_ENTITIES[type]
