#!/usr/bin/env python3
"""
Arbor CLI - run the category tree bot and manage its data.

Usage:
    python -m cli <command> <subcommand> [options]

Commands:
    serve        Run the Telegram bot
    categories   Inspect and edit the category tree
    migrate      Database migrations

Examples:
    python -m cli migrate apply
    python -m cli serve
    python -m cli categories tree
    python -m cli categories add Phones --parent Electronics
    python -m cli categories export categories.xlsx
"""

import sys
import argparse
from cli import categories, migrate, serve
from config import load_config
from services.base import Services
from db.manager import DatabaseManager
from logger import setup_logging


def main():
    """Main CLI entry point with subcommands."""
    parser = argparse.ArgumentParser(
        prog="cli",
        description="Arbor - Telegram bot for a hierarchical category tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
    )

    serve.setup_parser(subparsers)
    categories.setup_parser(subparsers)
    migrate.setup_parser(subparsers)

    args = parser.parse_args()

    if hasattr(args, "func"):
        try:
            config = load_config()
            setup_logging(config)

            if args.command in ("serve", "categories"):
                args.func(args, Services(config))
            elif args.command == "migrate":
                # Migrate commands need db_manager for raw database operations
                args.func(args, DatabaseManager(config))
            else:
                args.func(args)
        except Exception as e:
            print(f"Error: {e}")
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
