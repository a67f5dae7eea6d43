"""Helper utilities for tests."""

from datetime import date
from decimal import Decimal
from pathlib import Path
import sqlite3

from db.manager import apply_migrations
from models.transaction import Transaction, Transfer


def run_migrations(conn: sqlite3.Connection, migrations_dir: Path) -> None:
    """Run all SQL migrations in order.

    Args:
        conn: SQLite connection to run migrations against.
        migrations_dir: Path to directory containing .sql migration files.
    """
    apply_migrations(conn, migrations_dir)


def make_transaction(
    type="expense",
    account_id="acct",
    amount="10",
    on=date(2024, 1, 1),
    **kwargs,
) -> Transaction:
    """Build an unsaved income/expense entry with sensible defaults."""
    return Transaction(
        id=kwargs.pop("id", None),
        type=type,
        account_id=account_id,
        amount=Decimal(amount),
        date=on,
        **kwargs,
    )


def make_transfer(
    from_account_id,
    to_account_id,
    amount="10",
    on=date(2024, 1, 1),
    **kwargs,
) -> Transfer:
    """Build an unsaved transfer with sensible defaults."""
    return Transfer(
        id=kwargs.pop("id", None),
        from_account_id=from_account_id,
        to_account_id=to_account_id,
        amount=Decimal(amount),
        date=on,
        **kwargs,
    )
