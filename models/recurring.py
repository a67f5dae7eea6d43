"""Recurring rule model: a template that expands into dated entries."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from models.common import parse_amount, parse_date, parse_timestamp

RECURRING_ENTITY = "RecurringRule"
RECURRING_FREQUENCIES = ("weekly", "monthly", "yearly")


@dataclass
class RecurringRule:
    """Represents a repeating income or expense.

    Attributes:
        id: Unique identifier assigned by the record store.
        type: "income" or "expense".
        account_id: Account every generated entry belongs to.
        amount: Non-negative amount of each entry.
        category: Category label; required.
        subcategory: Subcategory label; required.
        start_date: First occurrence.
        end_date: Last possible occurrence, inclusive.
        frequency: "weekly", "monthly" or "yearly".
        interval: Number of frequency units between occurrences, at least 1.
    """

    id: Optional[str]
    type: str
    account_id: str
    amount: Decimal
    category: str
    subcategory: str
    start_date: date
    end_date: date
    frequency: str = "monthly"
    interval: int = 1
    notes: Optional[str] = None
    cleared: bool = False
    projected: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def occurrences(self) -> List[date]:
        return recurring_dates(self.start_date, self.end_date, self.frequency, self.interval)

    @classmethod
    def from_record(cls, record: dict) -> "RecurringRule":
        return cls(
            id=record["id"],
            type=record.get("type", "expense"),
            account_id=record.get("account_id"),
            amount=parse_amount(record.get("amount")) or Decimal("0"),
            category=record.get("category"),
            subcategory=record.get("subcategory"),
            start_date=parse_date(record.get("start_date")),
            end_date=parse_date(record.get("end_date")),
            frequency=record.get("frequency") or "monthly",
            interval=int(record.get("interval") or 1),
            notes=record.get("notes"),
            cleared=bool(record.get("cleared")),
            projected=bool(record.get("projected")),
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
        )

    def to_fields(self) -> dict:
        return {
            "type": self.type,
            "account_id": self.account_id,
            "amount": str(self.amount),
            "category": self.category,
            "subcategory": self.subcategory,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "frequency": self.frequency,
            "interval": self.interval,
            "notes": self.notes,
            "cleared": self.cleared,
            "projected": self.projected,
        }


def recurring_dates(start: date, end: date, frequency: str, interval: int = 1) -> List[date]:
    """Every occurrence from start through end, inclusive.

    Occurrences are offsets from start rather than from the previous
    occurrence, so a rule starting on the 31st falls on the last day of
    shorter months and returns to the 31st afterwards.

    Args:
        start: First occurrence.
        end: Last possible occurrence.
        frequency: "weekly", "monthly" or "yearly"; anything else steps monthly.
        interval: Units between occurrences; values below 1 count as 1.

    Returns:
        Occurrence dates in ascending order; empty when end is before start.
    """
    step = max(int(interval or 1), 1)
    if frequency == "weekly":
        unit = relativedelta(weeks=step)
    elif frequency == "yearly":
        unit = relativedelta(years=step)
    else:
        unit = relativedelta(months=step)

    dates = []
    n = 0
    current = start
    while current <= end:
        dates.append(current)
        n += 1
        current = start + unit * n
    return dates
