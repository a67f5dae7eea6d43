"""Typed exceptions for Ledgerline.

All errors raised by the services and the ledger engine derive from
LedgerError so callers (CLI, tests) can catch by type instead of parsing
messages:

    LedgerError
    +-- ValidationError        bad input, raised before any write
    +-- RecordNotFoundError    update/delete of a missing identifier
    +-- AccountInUseError      account still referenced by the ledger
    +-- CategoryInUseError     category still referenced by transactions
    +-- CategoryMergeRequired  rename collides with an existing category
    +-- PendingDeleteError     cached view is locked by a pending undo
"""

from typing import List, Optional


class LedgerError(Exception):
    """Base class for all Ledgerline errors."""


class ValidationError(LedgerError, ValueError):
    """Input failed validation; nothing was written."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class RecordNotFoundError(LedgerError, LookupError):
    """A record with the given identifier does not exist."""

    def __init__(self, entity_type: str, record_id: str):
        self.entity_type = entity_type
        self.record_id = record_id
        super().__init__(f"{entity_type} with ID {record_id} not found")


class AccountInUseError(LedgerError):
    """An account cannot be deleted while the ledger still references it."""

    def __init__(self, account_name: str, reasons: List[str]):
        self.account_name = account_name
        self.reasons = reasons
        super().__init__(
            f"Account '{account_name}' not deleted: {'; '.join(reasons)}"
        )


class CategoryInUseError(LedgerError):
    """A category cannot be deleted while transactions use it."""

    def __init__(self, category_name: str, transaction_count: int):
        self.category_name = category_name
        self.transaction_count = transaction_count
        super().__init__(
            f"Category '{category_name}' is used by {transaction_count} transaction(s)"
        )


class CategoryMergeRequired(LedgerError):
    """Renaming would collide with an existing category.

    Not a failure: the caller is expected to confirm and call merge().
    """

    def __init__(self, source, existing):
        self.source = source
        self.existing = existing
        super().__init__(
            f"A category named '{existing.name}' already exists; merge required"
        )


class PendingDeleteError(LedgerError):
    """A cached collection cannot be replaced while a delete is pending."""

    def __init__(self, kind: str, keys: List[str]):
        self.kind = kind
        self.keys = keys
        super().__init__(
            f"Cannot replace cached '{kind}' collection: pending deletes {keys}"
        )
