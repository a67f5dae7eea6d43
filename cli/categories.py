#!/usr/bin/env python3

import sys

from errors import CategoryMergeRequired, LedgerError
from logger import get_logger

logger = get_logger()


async def _category_named(services, kind, name):
    category = await services.categories.find_by_name(kind, name)
    if not category:
        logger.error(f"{kind.capitalize()} category '{name}' not found.")
        sys.exit(1)
    return category


async def cmd_list(args, services):
    """List income and expense categories."""
    for kind in args.kinds or ("expense", "income"):
        categories = await services.categories.find_all(kind)
        logger.info(f"\n{kind.capitalize()} categories:")
        logger.info("=" * 80)
        if not categories:
            logger.info("No categories found.")
            continue
        for category in categories:
            logger.info(f"{category.name}  ({category.color})")


async def cmd_create(args, services):
    """Create a category."""
    try:
        category = await services.categories.create(args.kind, args.name, args.color)
    except LedgerError as e:
        logger.error(f"Error creating category: {e}")
        sys.exit(1)

    logger.info(f"\n✓ Category created successfully with ID: {category.id}")
    logger.info(f"  Name: {category.name}")


async def cmd_rename(args, services):
    """Rename a category; offers a merge when the new name is taken."""
    category = await _category_named(services, args.kind, args.name)
    try:
        updated, moved = await services.categories.rename(
            args.kind, category.id, args.new_name, args.color
        )
    except CategoryMergeRequired as e:
        answer = input(f"{e} Merge them? [y/N]: ").strip()
        if answer.lower() != "y":
            logger.info("Cancelled.")
            return
        moved = await services.categories.merge(args.kind, e.source.id, e.existing.id)
        logger.info(f"✓ Merged into '{e.existing.name}', {moved} transaction(s) moved")
        return
    except LedgerError as e:
        logger.error(f"Error renaming category: {e}")
        sys.exit(1)

    logger.info(f"✓ Renamed to '{updated.name}', {moved} transaction(s) updated")


async def cmd_merge(args, services):
    """Merge one category into another."""
    source = await _category_named(services, args.kind, args.source)
    target = await _category_named(services, args.kind, args.target)
    moved = await services.categories.merge(args.kind, source.id, target.id)
    logger.info(f"✓ Merged '{source.name}' into '{target.name}', {moved} transaction(s) moved")


async def cmd_delete(args, services):
    """Delete a category, optionally moving its transactions first."""
    category = await _category_named(services, args.kind, args.name)
    try:
        if args.move_to:
            moved = await services.categories.move_and_delete(
                args.kind, category.id, args.move_to
            )
            logger.info(f"Moved {moved} transaction(s) to '{args.move_to}'")
        else:
            await services.categories.delete(args.kind, category.id)
    except LedgerError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"✓ Deleted category '{category.name}'")


def setup_parser(subparsers):
    """Setup categories subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "categories",
        help="Manage categories",
        description="Create, rename, merge and delete income/expense categories",
    )

    categories_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available category commands",
        dest="subcommand",
        required=True,
    )

    kinds = ["expense", "income"]

    list_parser = categories_subparsers.add_parser("list", help="List categories")
    list_parser.add_argument(
        "--kind", dest="kinds", action="append", choices=kinds,
        help="Only this kind (repeatable)",
    )
    list_parser.set_defaults(func=cmd_list, kinds=None)

    create_parser = categories_subparsers.add_parser("create", help="Create a category")
    create_parser.add_argument("kind", choices=kinds)
    create_parser.add_argument("name")
    create_parser.add_argument("--color", help="Hex color, e.g. #3b82f6")
    create_parser.set_defaults(func=cmd_create)

    rename_parser = categories_subparsers.add_parser("rename", help="Rename a category")
    rename_parser.add_argument("kind", choices=kinds)
    rename_parser.add_argument("name")
    rename_parser.add_argument("new_name")
    rename_parser.add_argument("--color")
    rename_parser.set_defaults(func=cmd_rename)

    merge_parser = categories_subparsers.add_parser(
        "merge", help="Move every transaction of one category into another"
    )
    merge_parser.add_argument("kind", choices=kinds)
    merge_parser.add_argument("source")
    merge_parser.add_argument("target")
    merge_parser.set_defaults(func=cmd_merge)

    delete_parser = categories_subparsers.add_parser("delete", help="Delete a category")
    delete_parser.add_argument("kind", choices=kinds)
    delete_parser.add_argument("name")
    delete_parser.add_argument(
        "--move-to", help="Move its transactions to this category name first"
    )
    delete_parser.set_defaults(func=cmd_delete)
