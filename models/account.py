from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from models.common import parse_timestamp

DEFAULT_CURRENCY = "EUR"
DEFAULT_ACCOUNT_CATEGORY = "bank"


@dataclass
class Account:
    id: Optional[str]
    name: str
    category: str = DEFAULT_ACCOUNT_CATEGORY  # e.g. "bank", "cash", "credit"
    color: Optional[str] = None
    currency: str = DEFAULT_CURRENCY
    starting_balance: Decimal = Decimal("0")  # signed; balance itself is always derived
    order: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: dict) -> "Account":
        """Build an account from a record store document."""
        return cls(
            id=record["id"],
            name=record.get("name", ""),
            category=record.get("category") or DEFAULT_ACCOUNT_CATEGORY,
            color=record.get("color"),
            currency=record.get("currency") or DEFAULT_CURRENCY,
            starting_balance=Decimal(str(record.get("starting_balance") or "0")),
            order=int(record.get("order") or 0),
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
        )

    def to_fields(self) -> dict:
        """Convert account to the document fields the record store persists."""
        return {
            "name": self.name,
            "category": self.category,
            "color": self.color,
            "currency": self.currency,
            "starting_balance": str(self.starting_balance),
            "order": self.order,
        }
