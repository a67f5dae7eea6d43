from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from models.common import parse_amount, parse_date, parse_timestamp

STARTING_BALANCE_CATEGORY = "SYSTEM - Starting Balance"
STARTING_BALANCE_DATE = date(1970, 1, 1)
STARTING_BALANCE_NOTES = "starting balance"

# Labels recognized as a starting balance entry, compared lower-cased
STARTING_BALANCE_LABELS = frozenset(["system - starting balance", "starting balance"])

TRANSACTION_TYPES = ("expense", "income", "transfer")

# Record store entity for each transaction type
ENTRY_ENTITIES = {
    "expense": "Expense",
    "income": "Income",
    "transfer": "Transfer",
}


def is_starting_balance_label(category: Optional[str]) -> bool:
    """Check whether a category label marks a synthetic starting balance entry."""
    return (category or "").strip().lower() in STARTING_BALANCE_LABELS


@dataclass
class Transaction:
    id: Optional[str]
    type: str  # 'income' or 'expense'
    account_id: str
    amount: Decimal  # always non-negative, sign implied by type
    date: date
    category: Optional[str] = None
    subcategory: Optional[str] = None
    notes: Optional[str] = None
    cleared: bool = False
    projected: bool = False
    important: bool = False
    recurring_rule_id: Optional[str] = None  # set on entries generated by a RecurringRule
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_starting_balance(self) -> bool:
        return is_starting_balance_label(self.category)

    @classmethod
    def from_record(cls, type: str, record: dict) -> "Transaction":
        """Build a transaction from an Income or Expense document."""
        return cls(
            id=record["id"],
            type=type,
            account_id=record.get("account_id"),
            amount=parse_amount(record.get("amount")) or Decimal("0"),
            date=parse_date(record.get("date")),
            category=record.get("category"),
            subcategory=record.get("subcategory"),
            notes=record.get("notes"),
            cleared=bool(record.get("cleared")),
            projected=bool(record.get("projected")),
            important=bool(record.get("important")),
            recurring_rule_id=record.get("recurring_rule_id"),
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
        )

    def to_fields(self) -> dict:
        """Convert transaction to the document fields the record store persists."""
        return {
            "account_id": self.account_id,
            "amount": str(self.amount),
            "date": self.date.isoformat() if self.date else None,
            "category": self.category,
            "subcategory": self.subcategory,
            "notes": self.notes,
            "cleared": self.cleared,
            "projected": self.projected,
            "important": self.important,
            "recurring_rule_id": self.recurring_rule_id,
        }


@dataclass
class Transfer:
    id: Optional[str]
    from_account_id: str
    to_account_id: str  # never equal to from_account_id
    amount: Decimal  # in the source account's currency
    date: date
    to_amount: Optional[Decimal] = None  # destination currency, required when currencies differ
    notes: Optional[str] = None
    cleared: bool = False
    projected: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    type: str = field(default="transfer", init=False)

    is_starting_balance = False

    @property
    def received_amount(self) -> Decimal:
        """Amount credited to the destination account."""
        return self.to_amount if self.to_amount is not None else self.amount

    @classmethod
    def from_record(cls, record: dict) -> "Transfer":
        return cls(
            id=record["id"],
            from_account_id=record.get("from_account_id"),
            to_account_id=record.get("to_account_id"),
            amount=parse_amount(record.get("amount")) or Decimal("0"),
            date=parse_date(record.get("date")),
            to_amount=parse_amount(record.get("to_amount")),
            notes=record.get("notes"),
            cleared=bool(record.get("cleared")),
            projected=bool(record.get("projected")),
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
        )

    def to_fields(self) -> dict:
        return {
            "from_account_id": self.from_account_id,
            "to_account_id": self.to_account_id,
            "amount": str(self.amount),
            "to_amount": str(self.to_amount) if self.to_amount is not None else None,
            "date": self.date.isoformat() if self.date else None,
            "notes": self.notes,
            "cleared": self.cleared,
            "projected": self.projected,
        }


LedgerEntry = Union[Transaction, Transfer]


def entry_from_record(type: str, record: dict) -> LedgerEntry:
    """Build the ledger entry variant for a record of the given type."""
    if type == "transfer":
        return Transfer.from_record(record)
    return Transaction.from_record(type, record)
