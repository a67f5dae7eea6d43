"""Recurring rules: repeating income and expense entries."""

from dataclasses import replace
from typing import List, Optional, Tuple

from errors import ValidationError
from logger import get_logger
from models.recurring import RECURRING_ENTITY, RECURRING_FREQUENCIES, RecurringRule
from models.transaction import Transaction
from services.transactions import ProgressCallback, percent, validate_amount

logger = get_logger("recurring")


class RecurringService:
    """Service for managing recurring rules.

    Creating a rule generates every entry it covers right away; each entry
    carries the rule's ID in ``recurring_rule_id``. Deleting a rule keeps
    the entries it generated.
    """

    def __init__(self, records, transactions, categories):
        """Initialize the recurring service.

        Args:
            records: RecordStore instance.
            transactions: TransactionService the generated entries go through.
            categories: CategoryService used to match existing category names.
        """
        self.records = records
        self.transactions = transactions
        self.categories = categories

    async def create(
        self,
        rule: RecurringRule,
        progress: Optional[ProgressCallback] = None,
    ) -> Tuple[RecurringRule, List[Transaction]]:
        """Store a rule and generate its entries.

        The category label is matched case-insensitively against the
        existing categories of the rule's type and takes the stored
        spelling when one matches.

        Args:
            rule: Rule to store; its id is ignored.
            progress: Called with the completed percentage after each entry.

        Returns:
            Tuple of (stored rule, generated entries in date order).

        Raises:
            ValidationError: If a required field is missing, the amount is
                negative, the account does not exist or the range is reversed.
        """
        rule = await self._normalize(rule)

        record = await self.records.create(RECURRING_ENTITY, rule.to_fields())
        stored = RecurringRule.from_record(record)

        dates = stored.occurrences()
        entries = []
        for done, day in enumerate(dates, start=1):
            entries.append(
                await self.transactions.create(
                    Transaction(
                        id=None,
                        type=stored.type,
                        account_id=stored.account_id,
                        amount=stored.amount,
                        date=day,
                        category=stored.category,
                        subcategory=stored.subcategory,
                        notes=stored.notes,
                        cleared=stored.cleared,
                        projected=stored.projected,
                        recurring_rule_id=stored.id,
                    )
                )
            )
            if progress is not None:
                progress(percent(done, len(dates)))

        logger.info(
            f"Created recurring {stored.type} rule {stored.id} "
            f"with {len(entries)} {stored.type} transaction(s)"
        )
        return stored, entries

    async def find_all(self) -> List[RecurringRule]:
        records = await self.records.list(RECURRING_ENTITY)
        return [RecurringRule.from_record(r) for r in records]

    async def find(self, rule_id: str) -> Optional[RecurringRule]:
        record = await self.records.get(RECURRING_ENTITY, rule_id)
        return RecurringRule.from_record(record) if record else None

    async def entries_for(self, rule_id: str) -> List[Transaction]:
        """Entries generated by a rule, in date order."""
        entries = [
            e
            for e in await self.transactions.find_all()
            if e.type != "transfer" and e.recurring_rule_id == rule_id
        ]
        return sorted(entries, key=lambda e: e.date)

    async def delete(self, rule_id: str) -> bool:
        """Delete a rule; the entries it generated stay.

        Returns:
            True if the rule was deleted, False if not found.
        """
        deleted = await self.records.delete(RECURRING_ENTITY, rule_id)
        if deleted:
            logger.info(f"Deleted recurring rule {rule_id}")
        return deleted

    async def _normalize(self, rule: RecurringRule) -> RecurringRule:
        if rule.type not in ("income", "expense"):
            raise ValidationError(f"Invalid transaction type '{rule.type}'", field="type")
        if rule.frequency not in RECURRING_FREQUENCIES:
            raise ValidationError(
                f"Frequency must be one of {', '.join(RECURRING_FREQUENCIES)}",
                field="frequency",
            )

        category = (rule.category or "").strip()
        subcategory = (rule.subcategory or "").strip()
        if not category:
            raise ValidationError("Category is required", field="category")
        if not subcategory:
            raise ValidationError("Subcategory is required", field="subcategory")
        if not rule.account_id:
            raise ValidationError("Account is required", field="account_id")
        if rule.start_date is None or rule.end_date is None:
            raise ValidationError("Start and end dates are required", field="start_date")
        if rule.start_date > rule.end_date:
            raise ValidationError("End date must be after start date", field="end_date")
        validate_amount(rule.amount)

        if await self.records.get("Account", rule.account_id) is None:
            raise ValidationError("Account does not exist", field="account_id")

        existing = await self.categories.find_by_name(rule.type, category)
        return replace(
            rule,
            category=existing.name if existing else category,
            subcategory=subcategory,
            interval=max(int(rule.interval or 1), 1),
        )
