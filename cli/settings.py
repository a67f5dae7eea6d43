#!/usr/bin/env python3

import sys

from errors import ValidationError
from logger import get_logger
from models.settings import UserSettings

logger = get_logger()


async def cmd_show(args, services):
    """Show the current user settings."""
    settings = await services.settings.load()
    logger.info("\nSettings:")
    logger.info("=" * 80)
    for name, value in settings.to_fields().items():
        logger.info(f"{name}: {value}")


async def cmd_set(args, services):
    """Change one setting; accounts_order takes a comma-separated list."""
    await services.settings.load()
    value = args.value
    if args.name == "accounts_order":
        value = [part.strip() for part in value.split(",") if part.strip()]

    try:
        services.settings.set(**{args.name: value})
    except ValidationError as e:
        logger.error(str(e))
        sys.exit(1)

    await services.settings.flush()
    logger.info(f"✓ {args.name} = {value}")


def setup_parser(subparsers):
    """Setup settings subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "settings",
        help="Show and change user settings",
        description="Show and change user settings",
    )

    settings_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available settings commands",
        dest="subcommand",
        required=True,
    )

    show_parser = settings_subparsers.add_parser("show", help="Show settings")
    show_parser.set_defaults(func=cmd_show)

    set_parser = settings_subparsers.add_parser("set", help="Change a setting")
    set_parser.add_argument("name", choices=UserSettings.field_names())
    set_parser.add_argument("value")
    set_parser.set_defaults(func=cmd_set)
