"""Serialization helpers shared by the record-backed models."""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO timestamp written by the record store."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def parse_date(value) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


def parse_amount(value) -> Optional[Decimal]:
    """Parse a stored amount; returns None for missing values."""
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}")


# Palette for accounts and categories created without an explicit color
DEFAULT_COLORS = (
    "#ef4444", "#f97316", "#f59e0b", "#84cc16", "#22c55e", "#10b981",
    "#14b8a6", "#06b6d4", "#0ea5e9", "#3b82f6", "#6366f1", "#8b5cf6",
    "#a855f7", "#d946ef", "#ec4899", "#f43f5e",
)


def palette_color(index: int) -> str:
    """Deterministic palette color for the index-th entity of a collection."""
    return DEFAULT_COLORS[index % len(DEFAULT_COLORS)]
