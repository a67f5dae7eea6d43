#!/usr/bin/env python3

import sys
from datetime import date
from decimal import Decimal, InvalidOperation

from errors import LedgerError
from logger import get_logger
from models.recurring import RECURRING_FREQUENCIES, RecurringRule

logger = get_logger()


async def cmd_list(args, services):
    """List recurring rules."""
    rules = await services.recurring.find_all()
    if not rules:
        logger.info("No recurring rules found.")
        return

    names = {a.id: a.name for a in await services.accounts.find_all()}
    logger.info("\nRecurring rules:")
    logger.info("=" * 80)
    for rule in rules:
        logger.info(
            f"{rule.id}  {rule.type:<8} {rule.amount:>10}  {names.get(rule.account_id, '?')}  "
            f"every {rule.interval} {rule.frequency}  {rule.start_date} -> {rule.end_date}  "
            f"{rule.category}/{rule.subcategory}"
        )


async def cmd_create(args, services):
    """Create a recurring rule and its entries."""
    account = await services.accounts.find_by_name(args.account_name)
    if not account:
        logger.error(f"Account '{args.account_name}' not found.")
        sys.exit(1)

    try:
        rule = RecurringRule(
            id=None,
            type=args.type,
            account_id=account.id,
            amount=Decimal(args.amount),
            category=args.category,
            subcategory=args.subcategory,
            start_date=date.fromisoformat(args.start),
            end_date=date.fromisoformat(args.end),
            frequency=args.frequency,
            interval=args.interval,
            notes=args.notes,
            cleared=args.cleared,
            projected=args.projected,
        )
    except (InvalidOperation, ValueError) as e:
        logger.error(f"Invalid recurring rule: {e}")
        sys.exit(1)

    try:
        rule, entries = await services.recurring.create(rule)
    except LedgerError as e:
        logger.error(f"Error creating recurring rule: {e}")
        sys.exit(1)

    logger.info(f"✓ Created {len(entries)} {rule.type} transaction(s) for rule {rule.id}")


async def cmd_delete(args, services):
    """Delete a recurring rule; its transactions stay."""
    if not await services.recurring.delete(args.rule_id):
        logger.error(f"Recurring rule {args.rule_id} not found.")
        sys.exit(1)
    logger.info("✓ Recurring rule deleted")


def setup_parser(subparsers):
    """Setup recurring subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "recurring",
        help="Manage recurring income and expenses",
        description="Create recurring rules that generate dated transactions",
    )

    recurring_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available recurring rule commands",
        dest="subcommand",
        required=True,
    )

    list_parser = recurring_subparsers.add_parser("list", help="List recurring rules")
    list_parser.set_defaults(func=cmd_list)

    create_parser = recurring_subparsers.add_parser(
        "create", help="Create a rule and generate its transactions"
    )
    create_parser.add_argument("type", choices=["income", "expense"])
    create_parser.add_argument("account_name", help="Account name")
    create_parser.add_argument("amount")
    create_parser.add_argument("category")
    create_parser.add_argument("subcategory")
    create_parser.add_argument("--start", required=True, help="YYYY-MM-DD")
    create_parser.add_argument("--end", required=True, help="YYYY-MM-DD")
    create_parser.add_argument(
        "--frequency", choices=list(RECURRING_FREQUENCIES), default="monthly"
    )
    create_parser.add_argument("--interval", type=int, default=1)
    create_parser.add_argument("--notes")
    create_parser.add_argument("--cleared", action="store_true")
    create_parser.add_argument("--projected", action="store_true")
    create_parser.set_defaults(func=cmd_create)

    delete_parser = recurring_subparsers.add_parser("delete", help="Delete a rule")
    delete_parser.add_argument("rule_id")
    delete_parser.set_defaults(func=cmd_delete)
