#!/usr/bin/env python3
"""
Ledgerline CLI - accounts, transactions and starting balance reconciliation.

Usage:
    python -m cli <command> <subcommand> [options]

Commands:
    accounts     Manage accounts and starting balances
    transactions Record, import and export transactions
    categories   Manage income and expense categories
    recurring    Recurring income and expense rules
    settings     Show and change user settings
    ledger       Reconcile starting balances, show net worth
    migrate      Database migrations

Examples:
    python -m cli migrate apply
    python -m cli accounts create Cash --starting-balance 100
    python -m cli transactions import ledger.csv
    python -m cli ledger networth --as-of 2024-12-31
"""

import asyncio
import sys
import argparse
from cli import accounts, categories, ledger, migrate, recurring, settings, transactions
from config import load_config
from services.base import Services
from db.manager import DatabaseManager
from logger import setup_logging


async def run_command(args, config):
    """Run an async command handler, then commit pending background writes."""
    services = Services(config)
    try:
        await args.func(args, services)
    finally:
        await services.close()


def main():
    """Main CLI entry point with subcommands."""
    parser = argparse.ArgumentParser(
        prog="cli",
        description="Ledgerline - personal finance ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Create subparsers for each command
    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
    )

    # Register each command's subparser
    accounts.setup_parser(subparsers)
    transactions.setup_parser(subparsers)
    categories.setup_parser(subparsers)
    recurring.setup_parser(subparsers)
    settings.setup_parser(subparsers)
    ledger.setup_parser(subparsers)
    migrate.setup_parser(subparsers)

    # Parse arguments and execute
    args = parser.parse_args()

    # Call the appropriate handler function
    if hasattr(args, "func"):
        try:
            # Load configuration
            config = load_config()

            # Set up logging
            setup_logging(config)

            # Migrate commands need db_manager for raw database operations
            if args.command == "migrate":
                args.func(args, DatabaseManager(config))
            else:
                asyncio.run(run_command(args, config))
        except Exception as e:
            print(f"Error: {e}")
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
