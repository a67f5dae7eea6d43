#!/usr/bin/env python3

import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path

from errors import LedgerError
from ingestion import export_csv
from ledger.balances import running_balances
from logger import get_logger
from models.transaction import Transaction, Transfer
from services.bulk import TEXT_FIELDS, BulkFilter, TextMatch

logger = get_logger()


def _parse_amount(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        logger.error(f"Invalid amount '{value}'.")
        sys.exit(1)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        logger.error(f"Invalid date '{value}' (must be YYYY-MM-DD).")
        sys.exit(1)


async def _account_named(services, name):
    account = await services.accounts.find_by_name(name)
    if not account:
        logger.error(f"Account '{name}' not found.")
        logger.info("Use 'python -m cli accounts list' to see available accounts.")
        sys.exit(1)
    return account


async def cmd_list(args, services):
    """List an account's entries, newest first, with running balances."""
    account = await _account_named(services, args.account_name)
    entries = await services.transactions.find_by_account(account.id)

    if not entries:
        logger.info("No transactions found.")
        return

    balances = {id(entry): balance for entry, balance in running_balances(entries, account.id)}
    names = {a.id: a.name for a in await services.accounts.find_all()}

    logger.info(f"\nTransactions for {account.name}:")
    logger.info("=" * 80)
    for entry in entries[: args.limit]:
        if entry.type == "transfer":
            label = f"{names.get(entry.from_account_id)} -> {names.get(entry.to_account_id)}"
        else:
            label = entry.category or ""
        logger.info(
            f"{entry.date}  {entry.type:<8}  {entry.amount:>12}  "
            f"{balances[id(entry)]:>12}  {label}"
        )

    logger.info(f"\nTotal transactions: {len(entries)}")


async def cmd_add(args, services):
    """Add an income or expense entry."""
    account = await _account_named(services, args.account_name)
    category = None
    if args.category:
        category_obj, created = await services.categories.ensure(args.type, args.category)
        category = category_obj.name
        if created:
            logger.info(f"Created new {args.type} category '{category}'")

    try:
        transaction = await services.transactions.create(
            Transaction(
                id=None,
                type=args.type,
                account_id=account.id,
                amount=_parse_amount(args.amount),
                date=_parse_date(args.date) if args.date else date.today(),
                category=category,
                subcategory=args.subcategory,
                notes=args.notes,
                cleared=args.cleared,
                projected=args.projected,
            )
        )
    except LedgerError as e:
        logger.error(f"Error creating transaction: {e}")
        sys.exit(1)

    logger.info(f"✓ Created {transaction.type} {transaction.id}")


async def cmd_transfer(args, services):
    """Record a transfer between two accounts."""
    source = await _account_named(services, args.from_account)
    destination = await _account_named(services, args.to_account)

    try:
        transfer = await services.transactions.create_transfer(
            Transfer(
                id=None,
                from_account_id=source.id,
                to_account_id=destination.id,
                amount=_parse_amount(args.amount),
                to_amount=_parse_amount(args.to_amount) if args.to_amount else None,
                date=_parse_date(args.date) if args.date else date.today(),
                notes=args.notes,
            )
        )
    except LedgerError as e:
        logger.error(f"Error creating transfer: {e}")
        sys.exit(1)

    logger.info(f"✓ Created transfer {transfer.id}")


async def cmd_import(args, services):
    """Import entries from a ledger CSV file."""
    csv_path = Path(args.csv_file)
    if not csv_path.exists():
        logger.error(f"File not found: {args.csv_file}")
        sys.exit(1)

    logger.info(f"Importing {csv_path}")
    logger.info("-" * 80)

    def progress(value):
        logger.debug(f"Import progress: {value}%")

    result = await services.data_imports.import_csv(
        csv_path.read_text(encoding="utf-8"), progress=progress
    )
    for line in result.log:
        logger.info(line)


async def cmd_export(args, services):
    """Export every account and entry as ledger CSV."""
    accounts = await services.accounts.find_all()
    entries = await services.transactions.find_all()
    text = export_csv(accounts, entries)

    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        logger.info(f"✓ Exported {len(entries)} entries to {args.output}")
    else:
        sys.stdout.write(text)


async def cmd_delete_all(args, services):
    """Delete every transaction after two confirmations."""
    first = input("Delete ALL transactions? This cannot be undone. [y/N]: ").strip()
    if first.lower() != "y":
        logger.info("Cancelled.")
        return
    second = input("Are you absolutely sure? Type 'delete' to confirm: ").strip()
    if second != "delete":
        logger.info("Cancelled.")
        return

    def progress(value):
        logger.debug(f"Delete progress: {value}%")

    deleted = await services.transactions.delete_all(progress=progress)
    logger.info(f"✓ Deleted {deleted} transaction(s)")


async def cmd_delete(args, services):
    """Delete one entry with a chance to undo before it is committed."""
    entries = [e for e in await services.transactions.find_all() if e.type == args.type]
    entry = next((e for e in entries if e.id == args.entry_id), None)
    if entry is None:
        logger.error(f"No {args.type} with ID {args.entry_id}.")
        sys.exit(1)

    services.cache.replace(args.type, entries)
    await services.deletes.schedule_delete(args.type, entry.id)
    logger.info(f"Deleted {entry.type} {entry.id} ({entry.date}, {entry.amount})")

    answer = input("Undo? [y/N]: ").strip()
    if answer.lower() == "y":
        services.deletes.undo(args.type, entry.id)
        logger.info("✓ Delete undone")
        return
    await services.deletes.flush()
    logger.info("✓ Delete committed")


def _bulk_filter(args) -> BulkFilter:
    text = {}
    for name in TEXT_FIELDS:
        value = getattr(args, f"{name}_match")
        if value:
            text[name] = TextMatch(value, args.match_op)
    return BulkFilter(
        type=args.type,
        date_from=_parse_date(args.date_from) if args.date_from else None,
        date_to=_parse_date(args.date_to) if args.date_to else None,
        amount_min=_parse_amount(args.amount_min) if args.amount_min else None,
        amount_max=_parse_amount(args.amount_max) if args.amount_max else None,
        cleared=_parse_flag(args.cleared),
        projected=_parse_flag(args.projected),
        text=text,
    )


def _parse_flag(value):
    if value is None:
        return None
    return value == "true"


async def cmd_bulk(args, services):
    """Apply one action to every entry matching the filters."""
    entries = await services.bulk.select(_bulk_filter(args))
    if not entries:
        logger.info("No transactions match the current filters.")
        return

    answer = input(f"Apply '{args.action}' to {len(entries)} transaction(s)? [y/N]: ").strip()
    if answer.lower() != "y":
        logger.info("Cancelled.")
        return

    def progress(value):
        logger.debug(f"Bulk progress: {value}%")

    try:
        if args.action == "text":
            result = await services.bulk.set_text(
                entries,
                args.field,
                mode=args.mode,
                text=args.text,
                source_field=args.source_field,
                progress=progress,
            )
        elif args.action == "flag":
            result = await services.bulk.set_flag(
                entries, args.field, args.value == "true", progress=progress
            )
        else:
            result = await services.bulk.delete(entries, progress=progress)
            undo = input(f"Deleted {result.success_count} transaction(s). Undo? [y/N]: ").strip()
            if undo.lower() == "y":
                services.bulk.undo_delete(entries)
                logger.info("✓ Bulk delete undone")
                return
            await services.deletes.flush()
    except LedgerError as e:
        logger.error(f"Error applying bulk action: {e}")
        sys.exit(1)

    logger.info(f"✓ {result.success_count} succeeded, {result.fail_count} failed")


def setup_parser(subparsers):
    """Setup transactions subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "transactions",
        help="Record, import and export transactions",
        description="Record, list, import and export ledger entries",
    )

    transactions_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available transaction commands",
        dest="subcommand",
        required=True,
    )

    list_parser = transactions_subparsers.add_parser(
        "list", help="List an account's transactions"
    )
    list_parser.add_argument("account_name", help="Account name")
    list_parser.add_argument("--limit", type=int, default=50, help="Rows to show")
    list_parser.set_defaults(func=cmd_list)

    add_parser = transactions_subparsers.add_parser(
        "add", help="Add an income or expense entry"
    )
    add_parser.add_argument("type", choices=["income", "expense"])
    add_parser.add_argument("account_name", help="Account name")
    add_parser.add_argument("amount", help="Non-negative amount")
    add_parser.add_argument("--date", help="YYYY-MM-DD (default: today)")
    add_parser.add_argument("--category")
    add_parser.add_argument("--subcategory")
    add_parser.add_argument("--notes")
    add_parser.add_argument("--cleared", action="store_true")
    add_parser.add_argument("--projected", action="store_true")
    add_parser.set_defaults(func=cmd_add)

    transfer_parser = transactions_subparsers.add_parser(
        "transfer", help="Move money between two accounts"
    )
    transfer_parser.add_argument("from_account", help="Source account name")
    transfer_parser.add_argument("to_account", help="Destination account name")
    transfer_parser.add_argument("amount", help="Amount leaving the source")
    transfer_parser.add_argument(
        "--to-amount", help="Amount arriving (required across currencies)"
    )
    transfer_parser.add_argument("--date", help="YYYY-MM-DD (default: today)")
    transfer_parser.add_argument("--notes")
    transfer_parser.set_defaults(func=cmd_transfer)

    import_parser = transactions_subparsers.add_parser(
        "import", help="Import a ledger CSV file"
    )
    import_parser.add_argument("csv_file", help="Path to the CSV file")
    import_parser.set_defaults(func=cmd_import)

    export_parser = transactions_subparsers.add_parser(
        "export", help="Export the ledger as CSV"
    )
    export_parser.add_argument(
        "--output", "-o", help="Output file (default: stdout)"
    )
    export_parser.set_defaults(func=cmd_export)

    delete_all_parser = transactions_subparsers.add_parser(
        "delete-all", help="Delete every transaction"
    )
    delete_all_parser.set_defaults(func=cmd_delete_all)

    delete_parser = transactions_subparsers.add_parser(
        "delete", help="Delete one transaction (undoable)"
    )
    delete_parser.add_argument("type", choices=["income", "expense", "transfer"])
    delete_parser.add_argument("entry_id", help="Transaction ID")
    delete_parser.set_defaults(func=cmd_delete)

    bulk_parser = transactions_subparsers.add_parser(
        "bulk", help="Edit or delete every transaction matching filters"
    )
    bulk_parser.add_argument("--type", choices=["income", "expense"])
    bulk_parser.add_argument("--date-from", help="YYYY-MM-DD")
    bulk_parser.add_argument("--date-to", help="YYYY-MM-DD")
    bulk_parser.add_argument("--amount-min")
    bulk_parser.add_argument("--amount-max")
    bulk_parser.add_argument("--cleared", choices=["true", "false"])
    bulk_parser.add_argument("--projected", choices=["true", "false"])
    bulk_parser.add_argument("--category", dest="category_match")
    bulk_parser.add_argument("--subcategory", dest="subcategory_match")
    bulk_parser.add_argument("--notes", dest="notes_match")
    bulk_parser.add_argument(
        "--match", dest="match_op", choices=["contains", "starts", "ends"],
        default="contains", help="How text filters match",
    )
    bulk_parser.add_argument(
        "--action", choices=["text", "flag", "delete"], required=True
    )
    bulk_parser.add_argument(
        "--field", help="Text field (category, subcategory, notes) or flag "
        "(cleared, projected, important)",
    )
    bulk_parser.add_argument("--mode", choices=["append", "replace"], default="append")
    bulk_parser.add_argument("--text", help="Text to write")
    bulk_parser.add_argument(
        "--source-field", choices=list(TEXT_FIELDS), help="Copy text from this field"
    )
    bulk_parser.add_argument("--value", choices=["true", "false"], default="true")
    bulk_parser.set_defaults(func=cmd_bulk)
