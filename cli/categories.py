#!/usr/bin/env python3

import sys
from pathlib import Path
from logger import get_logger
from services.errors import CategoryError

logger = get_logger()


def cmd_list(args, services):
    """List all categories in the database."""
    categories = services.categories.find_all()

    if not categories:
        logger.info("No categories found.")
        return

    names_by_id = {category.id: category.name for category in categories}

    logger.info("\nCategories:")
    logger.info("=" * 80)
    for category in categories:
        logger.info(f"ID: {category.id}")
        logger.info(f"Name: {category.name}")
        if category.parent_id:
            parent_name = names_by_id.get(category.parent_id, "Unknown")
            logger.info(f"Parent: {parent_name} (ID: {category.parent_id})")
        logger.info("-" * 80)

    logger.info(f"\nTotal categories: {len(categories)}")


def cmd_tree(args, services):
    """Print the category tree."""
    print(services.categories.render_tree())


def cmd_add(args, services):
    """Add a category, optionally under an existing parent."""
    try:
        parent = None
        if args.parent:
            parent = services.categories.get_by_name(args.parent)

        category = services.categories.add(args.name, parent)
    except CategoryError as e:
        logger.error(f"Error adding category: {e}")
        sys.exit(1)

    logger.info(f"✓ Category '{category.name}' created with ID: {category.id}")


def cmd_remove(args, services):
    """Remove every category with the given name, including descendants."""
    matches = services.categories.find_all_by_name(args.name)
    if not matches:
        logger.error(f"Category '{args.name}' not found.")
        sys.exit(1)

    if not args.yes:
        confirm = (
            input(
                f"\nDelete {len(matches)} categor{'y' if len(matches) == 1 else 'ies'} "
                f"named '{args.name}' and all descendants? (yes/no): "
            )
            .strip()
            .lower()
        )
        if confirm != "yes":
            logger.info("Deletion cancelled.")
            return

    removed = services.categories.delete(args.name)
    logger.info(f"✓ Removed {removed} categories.")


def cmd_export(args, services):
    """Export the category tree to an Excel file."""
    output = Path(args.file)
    output.write_bytes(services.spreadsheets.export_all())
    logger.info(f"✓ Exported categories to {output}")


def cmd_import(args, services):
    """Import categories from an Excel file."""
    source = Path(args.file)
    if not source.exists():
        logger.error(f"File not found: {source}")
        sys.exit(1)

    try:
        result = services.spreadsheets.import_all(source.read_bytes())
    except CategoryError as e:
        logger.error(f"Error importing {source}: {e}")
        sys.exit(1)

    logger.info("\nImport complete!")
    logger.info(f"Created: {result.created}")
    logger.info(f"Skipped: {result.skipped}")


def setup_parser(subparsers):
    """Setup categories subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "categories",
        help="Manage categories",
        description="List, add, remove, import and export categories",
    )

    categories_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available category commands",
        dest="subcommand",
        required=True,
    )

    list_parser = categories_subparsers.add_parser("list", help="List all categories")
    list_parser.set_defaults(func=cmd_list)

    tree_parser = categories_subparsers.add_parser("tree", help="Print the category tree")
    tree_parser.set_defaults(func=cmd_tree)

    add_parser = categories_subparsers.add_parser("add", help="Add a category")
    add_parser.add_argument("name", help="Name of the new category")
    add_parser.add_argument(
        "--parent",
        help="Name of an existing parent category (omit for a root category)",
    )
    add_parser.set_defaults(func=cmd_add)

    remove_parser = categories_subparsers.add_parser(
        "remove", help="Remove a category and its descendants"
    )
    remove_parser.add_argument("name", help="Name of the category to remove")
    remove_parser.add_argument(
        "-y", "--yes", action="store_true", help="Do not ask for confirmation"
    )
    remove_parser.set_defaults(func=cmd_remove)

    export_parser = categories_subparsers.add_parser(
        "export", help="Export categories to an Excel file"
    )
    export_parser.add_argument("file", help="Destination .xlsx file")
    export_parser.set_defaults(func=cmd_export)

    import_parser = categories_subparsers.add_parser(
        "import", help="Import categories from an Excel file"
    )
    import_parser.add_argument("file", help="Source .xlsx file")
    import_parser.set_defaults(func=cmd_import)
