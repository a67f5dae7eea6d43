#!/usr/bin/env python3

import sys
from datetime import date

from ledger.balances import net_worth, totals
from logger import get_logger

logger = get_logger()


async def cmd_reconcile(args, services):
    """Repair starting balance entries for every account."""
    accounts = await services.accounts.find_all()
    result = await services.reconciliation.reconcile(accounts)

    logger.info(
        f"Reconciled {len(accounts)} account(s): {len(result.created)} created, "
        f"{len(result.updated)} updated, {len(result.deleted)} deleted"
    )
    for account_id, message in result.errors.items():
        logger.error(f"  {account_id}: {message}")
    if not result.ok:
        sys.exit(1)


async def cmd_networth(args, services):
    """Show net worth and income/expense totals."""
    as_of = None
    if args.as_of:
        try:
            as_of = date.fromisoformat(args.as_of)
        except ValueError:
            logger.error(f"Invalid date '{args.as_of}' (must be YYYY-MM-DD).")
            sys.exit(1)

    settings = await services.settings.load()
    accounts = await services.accounts.find_all()
    entries = await services.transactions.find_all()

    worth = net_worth(
        accounts,
        entries,
        as_of=as_of,
        include_projected=args.projected,
        main_currency=settings.main_currency,
    )
    summary = totals(entries, as_of=as_of, include_projected=args.projected)

    logger.info("\nNet worth:")
    logger.info("=" * 80)
    for account in accounts:
        marker = " (not converted)" if account.id in worth.currency_mismatches else ""
        logger.info(
            f"{account.name:<30} {worth.by_account[account.id]:>14} {account.currency}{marker}"
        )
    logger.info("-" * 80)
    logger.info(f"{'Total':<30} {worth.total:>14} {settings.main_currency}")
    logger.info(f"\nIncome: {summary.income}  Expense: {summary.expense}  Net: {summary.net}")


def setup_parser(subparsers):
    """Setup ledger subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "ledger",
        help="Balances and starting balance reconciliation",
        description="Reconcile starting balances and report net worth",
    )

    ledger_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available ledger commands",
        dest="subcommand",
        required=True,
    )

    reconcile_parser = ledger_subparsers.add_parser(
        "reconcile", help="Repair starting balance entries"
    )
    reconcile_parser.set_defaults(func=cmd_reconcile)

    networth_parser = ledger_subparsers.add_parser("networth", help="Show net worth")
    networth_parser.add_argument("--as-of", help="YYYY-MM-DD (default: all entries)")
    networth_parser.add_argument(
        "--projected", action="store_true", help="Include projected entries"
    )
    networth_parser.set_defaults(func=cmd_networth)
