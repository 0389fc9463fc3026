#!/usr/bin/env python3

from bot.commands import CommandDispatcher
from bot.transport import TelegramTransport
from cli.migrate import apply_pending_migrations
from logger import get_logger

logger = get_logger()


def cmd_serve(args, services):
    """Apply pending migrations, then run the Telegram bot until interrupted."""
    db_manager = services.db_manager
    with db_manager.connect() as conn:
        apply_pending_migrations(conn, db_manager.get_migrations_dir())

    dispatcher = CommandDispatcher(services)
    transport = TelegramTransport(services.config, dispatcher)
    transport.run()
    logger.info("Bot stopped.")


def setup_parser(subparsers):
    """Setup serve command parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "serve",
        help="Run the Telegram bot",
        description="Run the Telegram bot that manages the category tree (long polling)",
    )
    parser.set_defaults(func=cmd_serve)
