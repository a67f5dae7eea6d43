"""Account service over the record store."""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import List, Optional

from errors import AccountInUseError, RecordNotFoundError, ValidationError
from logger import get_logger
from models.account import DEFAULT_ACCOUNT_CATEGORY, DEFAULT_CURRENCY, Account
from models.common import palette_color
from models.transaction import ENTRY_ENTITIES, is_starting_balance_label

logger = get_logger("accounts")

ACCOUNT_ENTITY = "Account"

_UPDATABLE_FIELDS = {"name", "category", "color", "currency", "starting_balance", "order"}


@dataclass
class AccountDeletionReport:
    """Outcome of deleting every account."""

    deleted: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class AccountService:
    """Service for managing accounts.

    Any change to the set of accounts or to a starting balance runs the
    reconciliation engine, when one is attached, over all accounts.
    """

    def __init__(self, records, reconciliation=None):
        """Initialize the account service.

        Args:
            records: RecordStore instance.
            reconciliation: Optional ReconciliationEngine to keep starting
                balance entries in step with account changes.
        """
        self.records = records
        self.reconciliation = reconciliation

    async def find_all(self) -> List[Account]:
        """Get all accounts.

        Returns:
            List of Account objects, ordered by display order then creation.
        """
        records = await self.records.list(ACCOUNT_ENTITY)
        accounts = [Account.from_record(r) for r in records]
        return sorted(accounts, key=lambda a: (a.order, a.created_at))

    async def find(self, account_id: str) -> Optional[Account]:
        record = await self.records.get(ACCOUNT_ENTITY, account_id)
        return Account.from_record(record) if record else None

    async def find_by_name(self, name: str) -> Optional[Account]:
        """Get a single account by exact name.

        Args:
            name: The account name to find.

        Returns:
            Account object if found, None otherwise.
        """
        for account in await self.find_all():
            if account.name == name:
                return account
        return None

    async def create(
        self,
        name: str,
        starting_balance: Decimal = Decimal("0"),
        currency: str = DEFAULT_CURRENCY,
        category: str = DEFAULT_ACCOUNT_CATEGORY,
        color: Optional[str] = None,
        reconcile: bool = True,
    ) -> Account:
        """Create a new account.

        Args:
            name: Account name (unique).
            starting_balance: Signed opening balance.
            currency: ISO currency code.
            category: Account category tag, e.g. "bank".
            color: Display color; defaults to the palette color for the
                current account count.
            reconcile: Run starting balance reconciliation afterwards.

        Returns:
            The created Account object with id populated.

        Raises:
            ValidationError: If the name is blank or already taken.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name cannot be empty", field="name")

        existing = await self.find_all()
        if any(a.name == name for a in existing):
            raise ValidationError(f"Account '{name}' already exists", field="name")

        account = Account(
            id=None,
            name=name,
            category=category,
            color=color or palette_color(len(existing)),
            currency=currency,
            starting_balance=Decimal(starting_balance),
            order=len(existing),
        )
        record = await self.records.create(ACCOUNT_ENTITY, account.to_fields())
        account = Account.from_record(record)
        logger.info(f"Created account '{account.name}' ({account.id})")

        if reconcile:
            await self._reconcile()
        return account

    async def update(self, account_id: str, reconcile: bool = True, **fields) -> Account:
        """Update account fields.

        Changing starting_balance runs reconciliation unless reconcile is
        False (callers batching several changes reconcile once afterwards).

        Raises:
            ValidationError: On unknown fields or a blank/duplicate name.
            RecordNotFoundError: If the account does not exist.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update account field(s): {sorted(unknown)}")

        current = await self.find(account_id)
        if current is None:
            raise RecordNotFoundError(ACCOUNT_ENTITY, account_id)

        if "starting_balance" in fields:
            fields["starting_balance"] = Decimal(fields["starting_balance"])
        if "name" in fields:
            fields["name"] = (fields["name"] or "").strip()
            if not fields["name"]:
                raise ValidationError("Account name cannot be empty", field="name")
            clash = await self.find_by_name(fields["name"])
            if clash is not None and clash.id != account_id:
                raise ValidationError(
                    f"Account '{fields['name']}' already exists", field="name"
                )

        updated = replace(current, **fields)
        record = await self.records.update(ACCOUNT_ENTITY, account_id, updated.to_fields())
        updated = Account.from_record(record)

        if updated.starting_balance != current.starting_balance:
            logger.info(
                f"Starting balance of '{updated.name}' changed "
                f"{current.starting_balance} -> {updated.starting_balance}"
            )
            if reconcile:
                await self._reconcile()
        return updated

    async def delete_reasons(self, account: Account) -> List[str]:
        """Why an account cannot be deleted; empty when it can."""
        expenses = await self.records.list(ENTRY_ENTITIES["expense"])
        income = await self.records.list(ENTRY_ENTITIES["income"])
        transfers = await self.records.list(ENTRY_ENTITIES["transfer"])

        def regular(records):
            return any(
                r.get("account_id") == account.id
                and not is_starting_balance_label(r.get("category"))
                for r in records
            )

        reasons = []
        if regular(expenses):
            reasons.append("Has expense transactions")
        if regular(income):
            reasons.append("Has income transactions")
        if any(
            account.id in (t.get("from_account_id"), t.get("to_account_id"))
            for t in transfers
        ):
            reasons.append("Has transfers")
        if account.starting_balance != 0:
            reasons.append("Starting balance is not zero")
        return reasons

    async def delete(self, account_id: str) -> None:
        """Delete an account that nothing references.

        Leftover synthetic starting balance entries are removed with it;
        dependents are never cascaded.

        Raises:
            RecordNotFoundError: If the account does not exist.
            AccountInUseError: If the account still has transactions,
                transfers or a non-zero starting balance.
        """
        account = await self.find(account_id)
        if account is None:
            raise RecordNotFoundError(ACCOUNT_ENTITY, account_id)

        reasons = await self.delete_reasons(account)
        if reasons:
            raise AccountInUseError(account.name, reasons)

        for type in ("expense", "income"):
            entity = ENTRY_ENTITIES[type]
            for record in await self.records.list(entity):
                if record.get("account_id") == account.id and is_starting_balance_label(
                    record.get("category")
                ):
                    await self.records.delete(entity, record["id"])

        await self.records.delete(ACCOUNT_ENTITY, account.id)
        if self.reconciliation is not None:
            self.reconciliation.applied.pop(account.id, None)
        logger.info(f"Deleted account '{account.name}'")

    async def delete_all(self) -> AccountDeletionReport:
        """Delete every account that can be deleted, skipping the rest.

        Returns:
            Sorted names of deleted and skipped accounts.
        """
        report = AccountDeletionReport()
        for account in await self.find_all():
            try:
                await self.delete(account.id)
                report.deleted.append(account.name)
            except AccountInUseError as e:
                logger.info(str(e))
                report.skipped.append(account.name)
        report.deleted.sort()
        report.skipped.sort()
        return report

    async def _reconcile(self):
        if self.reconciliation is None:
            return None
        result = await self.reconciliation.reconcile(await self.find_all())
        for account_id, message in result.errors.items():
            logger.warning(f"Starting balance not reconciled for {account_id}: {message}")
        return result
