#!/usr/bin/env python3

import sys
from decimal import Decimal, InvalidOperation

from errors import LedgerError
from ledger.balances import account_balance
from logger import get_logger

logger = get_logger()


def _parse_decimal(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        logger.error(f"Invalid amount '{value}'.")
        sys.exit(1)
    if not amount.is_finite():
        logger.error(f"Invalid amount '{value}'.")
        sys.exit(1)
    return amount


async def cmd_list(args, services):
    """List all accounts with their current balances."""
    accounts = await services.accounts.find_all()

    if not accounts:
        logger.info("No accounts found.")
        return

    entries = await services.transactions.find_all()

    logger.info("\nAccounts:")
    logger.info("=" * 80)
    for account in accounts:
        # Synthetic entries already carry the starting balance
        balance = account_balance(entries, account.id)
        logger.info(f"ID: {account.id}")
        logger.info(f"Name: {account.name}")
        logger.info(f"Category: {account.category}")
        logger.info(f"Currency: {account.currency}")
        logger.info(f"Starting balance: {account.starting_balance}")
        logger.info(f"Balance: {balance}")
        logger.info("-" * 80)

    logger.info(f"\nTotal accounts: {len(accounts)}")


async def cmd_create(args, services):
    """Create a new account."""
    currency = args.currency or services.config.default_currency
    try:
        account = await services.accounts.create(
            args.name,
            starting_balance=_parse_decimal(args.starting_balance),
            currency=currency,
            category=args.category,
        )
    except LedgerError as e:
        logger.error(f"Error creating account: {e}")
        sys.exit(1)

    logger.info(f"\n✓ Account created successfully with ID: {account.id}")
    logger.info(f"  Name: {account.name}")
    logger.info(f"  Currency: {account.currency}")
    logger.info(f"  Starting balance: {account.starting_balance}")


async def cmd_set_balance(args, services):
    """Change an account's starting balance."""
    account = await services.accounts.find_by_name(args.name)
    if not account:
        logger.error(f"Account '{args.name}' not found.")
        sys.exit(1)

    updated = await services.accounts.update(
        account.id, starting_balance=_parse_decimal(args.amount)
    )
    logger.info(
        f"✓ Starting balance of '{updated.name}' is now {updated.starting_balance}"
    )


async def cmd_delete(args, services):
    """Delete an account that has no transactions."""
    account = await services.accounts.find_by_name(args.name)
    if not account:
        logger.error(f"Account '{args.name}' not found.")
        sys.exit(1)

    try:
        await services.accounts.delete(account.id)
    except LedgerError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"✓ Deleted account '{account.name}'")


async def cmd_delete_all(args, services):
    """Delete every account that can be deleted."""
    answer = input("Delete all accounts without transactions? [y/N]: ").strip()
    if answer.lower() != "y":
        logger.info("Cancelled.")
        return

    report = await services.accounts.delete_all()
    logger.info(f"Deleted {len(report.deleted)} account(s)")
    if report.skipped:
        logger.info(f"Skipped (still in use): {', '.join(report.skipped)}")


def setup_parser(subparsers):
    """Setup accounts subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "accounts",
        help="Manage accounts",
        description="Create, list and delete accounts",
    )

    accounts_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available account commands",
        dest="subcommand",
        required=True,
    )

    list_parser = accounts_subparsers.add_parser("list", help="List all accounts")
    list_parser.set_defaults(func=cmd_list)

    create_parser = accounts_subparsers.add_parser("create", help="Create a new account")
    create_parser.add_argument("name", help="Account name (unique)")
    create_parser.add_argument(
        "--starting-balance", default="0", help="Signed opening balance"
    )
    create_parser.add_argument("--currency", help="ISO currency code")
    create_parser.add_argument("--category", default="bank", help="Account category")
    create_parser.set_defaults(func=cmd_create)

    balance_parser = accounts_subparsers.add_parser(
        "set-balance", help="Change an account's starting balance"
    )
    balance_parser.add_argument("name", help="Account name")
    balance_parser.add_argument("amount", help="Signed starting balance")
    balance_parser.set_defaults(func=cmd_set_balance)

    delete_parser = accounts_subparsers.add_parser("delete", help="Delete an account")
    delete_parser.add_argument("name", help="Account name")
    delete_parser.set_defaults(func=cmd_delete)

    delete_all_parser = accounts_subparsers.add_parser(
        "delete-all", help="Delete every account without transactions"
    )
    delete_all_parser.set_defaults(func=cmd_delete_all)
