"""Balance computation over ledger entries.

Pure functions: nothing here touches the record store. Entries are the
Transaction/Transfer models; accounts are Account models.

Ordering is deterministic. The key is (date, created_at, updated_at), where
a never-updated entry uses its created_at as its updated_at, and entries that
tie on all three fall back to identifier order.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from logger import get_logger
from models.account import Account
from models.transaction import LedgerEntry

logger = get_logger("balances")

ZERO = Decimal("0")

_MIN_STAMP = datetime.min


def sort_key(entry: LedgerEntry) -> Tuple[date, datetime, datetime]:
    """Chronological key for an entry: date, creation time, last-update time."""
    created = entry.created_at or _MIN_STAMP
    updated = entry.updated_at or created
    return (entry.date, created, updated)


def sort_ascending(entries: Iterable[LedgerEntry]) -> List[LedgerEntry]:
    """Order entries oldest first."""
    by_id = sorted(entries, key=lambda e: e.id or "")
    return sorted(by_id, key=sort_key)


def sort_descending(entries: Iterable[LedgerEntry]) -> List[LedgerEntry]:
    """Order entries newest first.

    Date, creation time and update time are each compared in reverse; the
    identifier fallback stays ascending, so this is not simply the reverse
    of sort_ascending().
    """
    by_id = sorted(entries, key=lambda e: e.id or "")
    # sorted() is stable with reverse=True, so identifier order survives ties
    return sorted(by_id, key=sort_key, reverse=True)


def entry_effect(entry: LedgerEntry, account_id: str) -> Decimal:
    """Signed effect of one entry on one account's balance.

    Income adds, expense subtracts. A transfer subtracts its amount from the
    source account and adds the destination amount (falling back to the
    source amount) to the destination account.
    """
    if entry.type == "transfer":
        effect = ZERO
        if entry.from_account_id == account_id:
            effect -= entry.amount
        if entry.to_account_id == account_id:
            effect += entry.received_amount
        return effect

    if entry.account_id != account_id:
        return ZERO
    if entry.type == "income":
        return entry.amount
    return -entry.amount


def _included(entry: LedgerEntry, as_of: Optional[date], include_projected: bool) -> bool:
    if as_of is not None and entry.date > as_of:
        return False
    if not include_projected and entry.projected:
        return False
    return True


def running_balances(
    entries: Iterable[LedgerEntry],
    account_id: str,
    starting_balance: Decimal = ZERO,
) -> List[Tuple[LedgerEntry, Decimal]]:
    """Cumulative balance of an account after each entry that touches it.

    Pass the synthetic starting balance entry in entries and leave
    starting_balance at zero, or exclude it and pass the account's starting
    balance explicitly; never both.

    Returns:
        (entry, balance after entry) pairs in ascending order.
    """
    balance = Decimal(starting_balance)
    result = []
    for entry in sort_ascending(entries):
        if not _touches(entry, account_id):
            continue
        balance += entry_effect(entry, account_id)
        result.append((entry, balance))
    return result


def account_balance(
    entries: Iterable[LedgerEntry],
    account_id: str,
    as_of: Optional[date] = None,
    include_projected: bool = True,
    starting_balance: Decimal = ZERO,
) -> Decimal:
    """Point-in-time balance of one account.

    Args:
        entries: Ledger entries (any accounts; unrelated ones are ignored).
        account_id: Account to compute.
        as_of: Include entries dated on or before this day; None means all.
        include_projected: Whether planned entries count.
        starting_balance: Added to the sum; see running_balances().
    """
    balance = Decimal(starting_balance)
    for entry in entries:
        if _included(entry, as_of, include_projected):
            balance += entry_effect(entry, account_id)
    return balance


@dataclass
class NetWorth:
    """Net worth across accounts at a point in time."""

    total: Decimal
    by_account: Dict[str, Decimal] = field(default_factory=dict)
    # Accounts not in the main currency, summed without conversion
    currency_mismatches: Dict[str, str] = field(default_factory=dict)


def net_worth(
    accounts: Sequence[Account],
    entries: Iterable[LedgerEntry],
    as_of: Optional[date] = None,
    include_projected: bool = False,
    main_currency: str = "EUR",
) -> NetWorth:
    """Sum of every account's balance at a date.

    Synthetic starting balance entries are skipped and each account's
    configured starting balance is added instead. They are flagged projected,
    so the settled view (include_projected=False) would otherwise drop them.

    Args:
        accounts: All accounts to include.
        entries: All ledger entries.
        as_of: Day to compute at; None means all entries.
        include_projected: False for settled net worth, True for a forward projection.
        main_currency: Currency the total is reported in.
    """
    regular = [
        e
        for e in entries
        if not e.is_starting_balance and _included(e, as_of, include_projected)
    ]

    by_account = {}
    mismatches = {}
    for account in accounts:
        by_account[account.id] = account_balance(
            regular, account.id, starting_balance=account.starting_balance
        )
        if account.currency != main_currency:
            mismatches[account.id] = account.currency

    if mismatches:
        logger.warning(
            f"Net worth sums {len(mismatches)} account(s) not in {main_currency} "
            f"without conversion: {sorted(set(mismatches.values()))}"
        )

    return NetWorth(
        total=sum(by_account.values(), ZERO),
        by_account=by_account,
        currency_mismatches=mismatches,
    )


@dataclass
class Totals:
    income: Decimal
    expense: Decimal

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


def totals(
    entries: Iterable[LedgerEntry],
    as_of: Optional[date] = None,
    include_projected: bool = True,
    account_id: Optional[str] = None,
) -> Totals:
    """Income and expense totals, excluding synthetic entries and transfers."""
    income = ZERO
    expense = ZERO
    for entry in entries:
        if entry.type == "transfer" or entry.is_starting_balance:
            continue
        if account_id is not None and entry.account_id != account_id:
            continue
        if not _included(entry, as_of, include_projected):
            continue
        if entry.type == "income":
            income += entry.amount
        else:
            expense += entry.amount
    return Totals(income=income, expense=expense)


def _touches(entry: LedgerEntry, account_id: str) -> bool:
    if entry.type == "transfer":
        return account_id in (entry.from_account_id, entry.to_account_id)
    return entry.account_id == account_id
