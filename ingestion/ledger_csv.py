"""Ledger CSV format: row decoding for imports, serialization for exports.

Columns, in fixed order:

    Type,Date,Amount,Account,Category,Subcategory,Notes,Cleared,Projected

Transfer rows reuse the Category column for the destination account name.
That overloading is confined to the transfer decoder below; everything
downstream sees a TransactionRow or a TransferRow.

A "SYSTEM - Starting Balance" income/expense row dated 1970-01-01 carries an
account's starting balance. Exports write one per account with a non-zero
starting balance instead of the synthetic ledger entries.
"""

import csv
import io
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Sequence, Union

from models.account import Account
from models.transaction import (
    STARTING_BALANCE_CATEGORY,
    STARTING_BALANCE_DATE,
    STARTING_BALANCE_NOTES,
    LedgerEntry,
    is_starting_balance_label,
)

CSV_HEADER = [
    "Type",
    "Date",
    "Amount",
    "Account",
    "Category",
    "Subcategory",
    "Notes",
    "Cleared",
    "Projected",
]

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class RowRejected(ValueError):
    """A CSV row failed validation and was not imported."""


@dataclass
class TransactionRow:
    row_number: int
    type: str  # 'income' or 'expense'
    date: date
    amount: Decimal
    account_name: str
    category: Optional[str]
    subcategory: Optional[str]
    notes: Optional[str]
    cleared: bool
    projected: bool

    @property
    def is_starting_balance(self) -> bool:
        return is_starting_balance_label(self.category)

    @property
    def signed_starting_balance(self) -> Decimal:
        return self.amount if self.type == "income" else -self.amount


@dataclass
class TransferRow:
    row_number: int
    date: date
    amount: Decimal
    from_account_name: str
    to_account_name: str
    notes: Optional[str]
    cleared: bool
    projected: bool

    type = "transfer"


ImportRow = Union[TransactionRow, TransferRow]


def decode_row(cells: Sequence[str], row_number: int) -> ImportRow:
    """Decode one data row.

    Args:
        cells: Trimmed cells as returned by parse_csv().
        row_number: 1-based line number in the file, for messages.

    Returns:
        TransactionRow for income/expense rows, TransferRow for transfers.

    Raises:
        RowRejected: If a required field is missing or malformed.
    """
    cells = list(cells) + [""] * (len(CSV_HEADER) - len(cells))
    type_raw, date_raw, amount_raw, account_name = cells[0:4]

    row_type = type_raw.strip().lower()
    if row_type not in ("expense", "income", "transfer"):
        if not row_type:
            raise RowRejected("Missing type")
        raise RowRejected(
            f'Invalid type "{type_raw}" (must be expense, income, or transfer)'
        )

    entry_date = _parse_date(date_raw)
    amount = _parse_amount(amount_raw)

    account_name = account_name.strip()
    if not account_name:
        raise RowRejected("Account is required")

    if row_type == "transfer":
        return _decode_transfer(cells, row_number, entry_date, amount, account_name)
    return _decode_transaction(
        cells, row_number, row_type, entry_date, amount, account_name
    )


def _decode_transaction(cells, row_number, row_type, entry_date, amount, account_name):
    category = cells[4].strip() or None
    return TransactionRow(
        row_number=row_number,
        type=row_type,
        date=entry_date,
        amount=amount,
        account_name=account_name,
        category=category,
        subcategory=cells[5].strip() or None,
        notes=cells[6] or None,
        cleared=_parse_flag(cells[7]),
        projected=_parse_flag(cells[8]),
    )


def _decode_transfer(cells, row_number, entry_date, amount, account_name):
    # Category column holds the destination account on transfer rows
    to_account_name = cells[4].strip()
    if not to_account_name:
        raise RowRejected("Transfer requires Category as destination account")
    if is_starting_balance_label(to_account_name):
        raise RowRejected("Starting balance rows must be income/expense")
    if to_account_name == account_name:
        raise RowRejected("Transfer source and destination accounts must differ")

    return TransferRow(
        row_number=row_number,
        date=entry_date,
        amount=amount,
        from_account_name=account_name,
        to_account_name=to_account_name,
        notes=cells[6] or None,
        cleared=_parse_flag(cells[7]),
        projected=_parse_flag(cells[8]),
    )


def _parse_date(value: str) -> date:
    value = value.strip()
    if not value:
        raise RowRejected("Missing date")
    if not _DATE_PATTERN.match(value):
        raise RowRejected(f'Invalid date "{value}" (must be YYYY-MM-DD)')
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise RowRejected(f'Invalid date "{value}" (must be YYYY-MM-DD)')


def _parse_amount(value: str) -> Decimal:
    value = value.strip()
    if not value:
        raise RowRejected("Missing amount")
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise RowRejected(f'Invalid amount "{value}"')
    if not amount.is_finite():
        raise RowRejected(f'Invalid amount "{value}"')
    if amount <= 0:
        raise RowRejected("Amount must be greater than 0")
    return amount


def _parse_flag(value: str) -> bool:
    return value.strip().lower() == "yes"


def _flag(value: bool) -> str:
    return "yes" if value else "no"


def export_csv(accounts: Iterable[Account], entries: Iterable[LedgerEntry]) -> str:
    """Serialize the ledger in the import format.

    Every field is double-quoted, embedded quotes doubled. Synthetic starting
    balance entries are replaced by one starting balance row per account.

    Args:
        accounts: All accounts (used for names and starting balances).
        entries: All ledger entries.

    Returns:
        CSV text, header first.
    """
    accounts = list(accounts)
    names: Dict[str, str] = {a.id: a.name for a in accounts}

    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    entries = list(entries)
    for row_type in ("expense", "income"):
        for entry in entries:
            if entry.type != row_type or entry.is_starting_balance:
                continue
            writer.writerow(_transaction_cells(entry, names))

    for entry in entries:
        if entry.type == "transfer":
            writer.writerow(_transfer_cells(entry, names))

    for account in accounts:
        if account.starting_balance == 0:
            continue
        writer.writerow(_starting_balance_cells(account))

    return buffer.getvalue()


def _transaction_cells(entry, names: Dict[str, str]) -> List[str]:
    return [
        entry.type,
        entry.date.isoformat(),
        str(entry.amount),
        names.get(entry.account_id, ""),
        entry.category or "",
        entry.subcategory or "",
        entry.notes or "",
        _flag(entry.cleared),
        _flag(entry.projected),
    ]


def _transfer_cells(entry, names: Dict[str, str]) -> List[str]:
    return [
        "transfer",
        entry.date.isoformat(),
        str(entry.amount),
        names.get(entry.from_account_id, ""),
        names.get(entry.to_account_id, ""),
        "",
        entry.notes or "",
        _flag(entry.cleared),
        _flag(entry.projected),
    ]


def _starting_balance_cells(account: Account) -> List[str]:
    return [
        "income" if account.starting_balance > 0 else "expense",
        STARTING_BALANCE_DATE.isoformat(),
        str(abs(account.starting_balance)),
        account.name,
        STARTING_BALANCE_CATEGORY,
        "",
        STARTING_BALANCE_NOTES,
        "yes",
        "yes",
    ]
