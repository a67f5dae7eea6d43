"""CSV import: parse, validate, auto-provision accounts/categories, create entries."""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ingestion.csv_parser import parse_csv
from ingestion.ledger_csv import RowRejected, TransactionRow, TransferRow, decode_row
from logger import get_logger
from models.account import Account
from models.transaction import Transaction, Transfer
from services.transactions import percent

logger = get_logger("imports")

ProgressCallback = Callable[[int], None]


@dataclass
class ImportResult:
    """Outcome of an import.

    Attributes:
        imported_count: Ledger entries created.
        log: Human-readable per-row outcomes, ending with a summary line.
    """

    imported_count: int = 0
    log: List[str] = field(default_factory=list)


class DataImportService:
    """Imports a ledger CSV export (or a hand-written file in that format).

    Rows are processed strictly in file order, one at a time. A failing row
    is logged and skipped; writes it already made are kept.
    """

    def __init__(self, accounts, categories, transactions, reconciliation=None):
        """Initialize the import service.

        Args:
            accounts: AccountService used to resolve and create accounts.
            categories: CategoryService used to resolve and create categories.
            transactions: TransactionService used to create entries.
            reconciliation: Optional ReconciliationEngine, run once at the end
                when the file set any starting balance.
        """
        self.accounts = accounts
        self.categories = categories
        self.transactions = transactions
        self.reconciliation = reconciliation

    async def import_csv(
        self, text: str, progress: Optional[ProgressCallback] = None
    ) -> ImportResult:
        """Import a CSV payload.

        The first row is a header and is skipped without validation.

        Args:
            text: CSV text.
            progress: Called with the completed percentage after each row.

        Returns:
            ImportResult with the imported count and the row log.
        """
        result = ImportResult()
        rows = parse_csv(text)
        if len(rows) < 2:
            result.log.append("Error: Invalid CSV file - no data rows found")
            return result

        data = rows[1:]
        accounts: Dict[str, Account] = {a.name: a for a in await self.accounts.find_all()}
        categories = {
            kind: {c.name.lower(): c for c in await self.categories.find_all(kind, include_reserved=True)}
            for kind in ("expense", "income")
        }
        starting_balances_changed = False

        for index, cells in enumerate(data):
            row_number = index + 2
            try:
                row = decode_row(cells, row_number)
                if isinstance(row, TransferRow):
                    await self._import_transfer(row, accounts, result)
                elif row.is_starting_balance:
                    await self._set_starting_balance(row, accounts, result)
                    starting_balances_changed = True
                else:
                    await self._import_transaction(row, accounts, categories, result)
            except RowRejected as e:
                result.log.append(f"Row {row_number}: Skipped - {e}")
            except Exception as e:
                logger.warning(f"Import row {row_number} failed: {e}")
                result.log.append(f"Row {row_number}: Error - {e}")

            if progress is not None:
                progress(percent(index + 1, len(data)))

        if starting_balances_changed and self.reconciliation is not None:
            reconciled = await self.reconciliation.reconcile(await self.accounts.find_all())
            names = {a.id: a.name for a in accounts.values()}
            for account_id, message in reconciled.errors.items():
                result.log.append(
                    f'Starting balance not reconciled for "{names.get(account_id, account_id)}": {message}'
                )

        result.log.append(
            f"Import completed: {result.imported_count} transactions imported"
        )
        logger.info(result.log[-1])
        return result

    async def _resolve_account(self, name: str, row_number: int, accounts, result) -> Account:
        account = accounts.get(name)
        if account is None:
            account = await self.accounts.create(name, reconcile=False)
            accounts[name] = account
            result.log.append(f'Row {row_number}: Created new account "{name}"')
        return account

    async def _resolve_category(self, row: TransactionRow, categories, result) -> Optional[str]:
        if not row.category:
            return None
        by_name = categories[row.type]
        category = by_name.get(row.category.lower())
        if category is None:
            category, created = await self.categories.ensure(row.type, row.category)
            by_name[category.name.lower()] = category
            if created:
                result.log.append(
                    f'Row {row.row_number}: Created new {row.type} category "{category.name}"'
                )
        return category.name

    async def _import_transaction(self, row: TransactionRow, accounts, categories, result):
        account = await self._resolve_account(row.account_name, row.row_number, accounts, result)
        category = await self._resolve_category(row, categories, result)
        await self.transactions.create(
            Transaction(
                id=None,
                type=row.type,
                account_id=account.id,
                amount=row.amount,
                date=row.date,
                category=category,
                subcategory=row.subcategory,
                notes=row.notes,
                cleared=row.cleared,
                projected=row.projected,
            )
        )
        result.imported_count += 1

    async def _import_transfer(self, row: TransferRow, accounts, result):
        source = await self._resolve_account(row.from_account_name, row.row_number, accounts, result)
        destination = await self._resolve_account(row.to_account_name, row.row_number, accounts, result)
        await self.transactions.create_transfer(
            Transfer(
                id=None,
                from_account_id=source.id,
                to_account_id=destination.id,
                amount=row.amount,
                date=row.date,
                notes=row.notes,
                cleared=row.cleared,
                projected=row.projected,
            )
        )
        result.imported_count += 1

    async def _set_starting_balance(self, row: TransactionRow, accounts, result):
        account = await self._resolve_account(row.account_name, row.row_number, accounts, result)
        accounts[account.name] = await self.accounts.update(
            account.id, reconcile=False, starting_balance=row.signed_starting_balance
        )
        result.log.append(f'Row {row.row_number}: Set starting balance for "{account.name}"')
