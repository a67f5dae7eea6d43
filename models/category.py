"""Category model for income and expense categorization."""

from dataclasses import dataclass
from typing import Optional

CATEGORY_KINDS = ("expense", "income")

# Record store entity holding each kind's categories
CATEGORY_ENTITIES = {
    "expense": "ExpenseCategory",
    "income": "IncomeCategory",
}


@dataclass
class Category:
    """Represents a user-defined transaction category.

    Names are unique per kind, compared case-insensitively.

    Attributes:
        id: Unique identifier assigned by the record store.
        kind: Either "expense" or "income".
        name: Category name.
        color: Display color (hex string).
        order: Display position.
    """

    id: Optional[str]
    kind: str
    name: str
    color: Optional[str] = None
    order: int = 0

    @classmethod
    def from_record(cls, kind: str, record: dict) -> "Category":
        return cls(
            id=record["id"],
            kind=kind,
            name=record.get("name", ""),
            color=record.get("color"),
            order=int(record.get("order") or 0),
        )

    def to_fields(self) -> dict:
        return {"name": self.name, "color": self.color, "order": self.order}
