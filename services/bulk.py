"""Bulk actions over a filtered set of income and expense entries."""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from errors import ValidationError
from logger import get_logger
from models.transaction import Transaction
from services.transactions import ProgressCallback, percent

logger = get_logger("bulk")

TEXT_FIELDS = ("category", "subcategory", "notes")
FLAG_FIELDS = ("cleared", "projected", "important")
TEXT_OPS = ("contains", "starts", "ends")


@dataclass
class TextMatch:
    """Case-insensitive match on one text field; an empty value matches anything."""

    value: str = ""
    op: str = "contains"  # "contains", "starts" or "ends"

    def matches(self, text: Optional[str]) -> bool:
        query = (self.value or "").lower()
        if not query:
            return True
        target = (text or "").lower()
        if self.op == "starts":
            return target.startswith(query)
        if self.op == "ends":
            return target.endswith(query)
        return query in target


@dataclass
class BulkFilter:
    """Selects entries for a bulk action. Unset criteria match everything.

    Transfers and starting balance entries are never selected.
    """

    type: Optional[str] = None  # "income" or "expense"
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    amount_min: Optional[Decimal] = None
    amount_max: Optional[Decimal] = None
    cleared: Optional[bool] = None
    projected: Optional[bool] = None
    text: Dict[str, TextMatch] = field(default_factory=dict)

    def matches(self, entry) -> bool:
        if entry.type == "transfer" or entry.is_starting_balance:
            return False
        if self.type and entry.type != self.type:
            return False
        if self.date_from and entry.date < self.date_from:
            return False
        if self.date_to and entry.date > self.date_to:
            return False
        if self.amount_min is not None and entry.amount < self.amount_min:
            return False
        if self.amount_max is not None and entry.amount > self.amount_max:
            return False
        if self.cleared is not None and entry.cleared != self.cleared:
            return False
        if self.projected is not None and entry.projected != self.projected:
            return False
        return all(
            match.matches(getattr(entry, name)) for name, match in self.text.items()
        )


@dataclass
class BulkResult:
    success_count: int = 0
    fail_count: int = 0

    @property
    def processed(self) -> int:
        return self.success_count + self.fail_count


def append_text(existing: Optional[str], addition: str) -> str:
    """Append with a single separating space, unless existing already ends in one."""
    if not existing:
        return addition
    separator = "" if existing.endswith(" ") else " "
    return f"{existing}{separator}{addition}"


class BulkActionService:
    """Applies one change to many entries, one entry at a time.

    A failing entry is counted and logged; the rest are still processed.
    Deletes go through the DeferredDeleteCoordinator so each of them can be
    undone within the grace period.
    """

    def __init__(self, transactions, deletes):
        """Initialize the bulk action service.

        Args:
            transactions: TransactionService used to read and update entries.
            deletes: DeferredDeleteCoordinator for undoable deletes.
        """
        self.transactions = transactions
        self.deletes = deletes

    async def select(self, bulk_filter: BulkFilter) -> List[Transaction]:
        """Entries matching the filter."""
        entries = await self.transactions.find_all()
        return [e for e in entries if bulk_filter.matches(e)]

    async def set_text(
        self,
        entries: List[Transaction],
        target_field: str,
        mode: str = "append",
        text: Optional[str] = None,
        source_field: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> BulkResult:
        """Append to or replace a text field.

        Args:
            entries: Entries to change.
            target_field: "category", "subcategory" or "notes".
            mode: "append" or "replace".
            text: Literal text to write; used when source_field is None.
            source_field: Copy the value of this text field of each entry instead.
            progress: Called with the completed percentage after each entry.

        Raises:
            ValidationError: If a field name or the mode is not supported.
        """
        if target_field not in TEXT_FIELDS:
            raise ValidationError(f"Cannot bulk edit field '{target_field}'", field="target_field")
        if source_field is not None and source_field not in TEXT_FIELDS:
            raise ValidationError(f"Cannot copy from field '{source_field}'", field="source_field")
        if mode not in ("append", "replace"):
            raise ValidationError(f"Invalid text mode '{mode}'", field="mode")

        def new_value(entry):
            if source_field:
                source = getattr(entry, source_field) or ""
            else:
                source = text or ""
            if mode == "append":
                return append_text(getattr(entry, target_field), source)
            return source

        return await self._update_each(
            entries, lambda entry: {target_field: new_value(entry)}, progress
        )

    async def set_flag(
        self,
        entries: List[Transaction],
        flag: str,
        value: bool,
        progress: Optional[ProgressCallback] = None,
    ) -> BulkResult:
        """Set "cleared", "projected" or "important" on every entry."""
        if flag not in FLAG_FIELDS:
            raise ValidationError(f"Cannot bulk set flag '{flag}'", field="flag")
        return await self._update_each(entries, lambda entry: {flag: value}, progress)

    async def delete(
        self,
        entries: List[Transaction],
        progress: Optional[ProgressCallback] = None,
    ) -> BulkResult:
        """Schedule an undoable delete of every entry.

        Kinds without pending deletes are refreshed into the cached view
        first so every entry gets an undo window.
        """
        kinds = {entry.type for entry in entries}
        if kinds:
            stored = await self.transactions.find_all()
            for kind in sorted(kinds):
                if not self.deletes.cache.held(kind):
                    self.deletes.cache.replace(kind, [e for e in stored if e.type == kind])

        result = BulkResult()
        for entry in entries:
            try:
                await self.deletes.schedule_delete(entry.type, entry.id)
                result.success_count += 1
            except Exception as e:
                logger.warning(f"Failed to delete {entry.type} {entry.id}: {e}")
                result.fail_count += 1
            if progress is not None:
                progress(percent(result.processed, len(entries)))

        logger.info(f"Scheduled delete of {result.success_count} transaction(s)")
        return result

    def undo_delete(self, entries: List[Transaction]) -> int:
        """Undo the pending deletes of these entries.

        Returns:
            Number of deletes undone.
        """
        undone = sum(1 for entry in entries if self.deletes.undo(entry.type, entry.id))
        logger.info(f"Bulk delete undone for {undone} transaction(s)")
        return undone

    async def _update_each(self, entries, changes, progress) -> BulkResult:
        result = BulkResult()
        for entry in entries:
            try:
                await self.transactions.update(entry.type, entry.id, **changes(entry))
                result.success_count += 1
            except Exception as e:
                logger.warning(f"Failed to update {entry.type} {entry.id}: {e}")
                result.fail_count += 1
            if progress is not None:
                progress(percent(result.processed, len(entries)))

        logger.info(
            f"Bulk update finished: {result.success_count} succeeded, "
            f"{result.fail_count} failed"
        )
        return result
