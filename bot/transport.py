"""Telegram transport: delivers chat messages to the dispatcher and replies back.

Updates are handled one at a time, start to finish, so the dispatcher never
sees overlapping mutations of the tree. Dispatcher calls run on a worker
thread so that database and spreadsheet work never stalls polling.
"""

import asyncio

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from bot.commands import CommandDispatcher, Reply
from config import Config
from logger import get_logger
from services.spreadsheets import XLSX_MIME_TYPE

logger = get_logger("bot")


class TelegramTransport:
    """Long-polling Telegram bot around a CommandDispatcher.

    Args:
        config: Application configuration; supplies the bot token.
        dispatcher: Dispatcher that turns messages into replies.
        application: Optional pre-built Application, mainly for tests.

    Raises:
        ValueError: If no application is given and no token is configured.
    """

    def __init__(
        self,
        config: Config,
        dispatcher: CommandDispatcher,
        application: Application = None,
    ):
        if application is None:
            if not config.telegram_token:
                raise ValueError(
                    "Telegram bot token not configured "
                    "(set [telegram] token in ~/.config/arbor.toml)"
                )
            application = Application.builder().token(config.telegram_token).build()

        self.config = config
        self.dispatcher = dispatcher
        self.application = application
        self._register_handlers()

    def _register_handlers(self):
        """Register message handlers and the error handler."""
        # Commands are plain text here; the dispatcher does its own parsing
        self.application.add_handler(
            MessageHandler(filters.TEXT & filters.UpdateType.MESSAGE, self.on_text)
        )
        self.application.add_handler(
            MessageHandler(filters.Document.ALL & filters.UpdateType.MESSAGE, self.on_document)
        )
        self.application.add_error_handler(self.on_error)

    def run(self):
        """Start long polling; blocks until the process is stopped."""
        logger.info(f"Starting Telegram bot {self.config.telegram_username or ''}".rstrip())
        self.application.run_polling(allowed_updates=Update.ALL_TYPES)

    async def on_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if message is None or message.text is None:
            return

        reply = await asyncio.to_thread(
            self.dispatcher.handle_text, message.chat_id, message.text
        )
        await self.deliver(message.chat_id, reply)

    async def on_document(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if message is None or message.document is None:
            return

        document = message.document
        data = b""
        # Only spreadsheets are worth downloading; the dispatcher rejects the rest
        if document.mime_type == XLSX_MIME_TYPE:
            data = await self.download(document)

        reply = await asyncio.to_thread(
            self.dispatcher.handle_document, message.chat_id, document.mime_type, data
        )
        await self.deliver(message.chat_id, reply)

    async def on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error("Unhandled error while processing update", exc_info=context.error)

    async def download(self, document) -> bytes:
        """Fetch a document's contents; returns b"" if Telegram refuses."""
        try:
            telegram_file = await document.get_file()
            return bytes(await telegram_file.download_as_bytearray())
        except TelegramError as e:
            logger.error(f"Failed to download document {document.file_id}: {e}")
            return b""

    async def deliver(self, chat_id, reply: Reply) -> None:
        """Send a reply: its attachment first (if any), then its text."""
        if reply.attachment is not None:
            await self.send_file(chat_id, reply.attachment.filename, reply.attachment.data)
        await self.send_text(chat_id, reply.text)

    async def send_text(self, chat_id, text: str) -> bool:
        try:
            await self.application.bot.send_message(chat_id=chat_id, text=text)
            return True
        except TelegramError as e:
            logger.error(f"Failed to send message to chat {chat_id}: {e}")
            return False

    async def send_file(self, chat_id, filename: str, data: bytes) -> bool:
        try:
            await self.application.bot.send_document(
                chat_id=chat_id, document=data, filename=filename
            )
            return True
        except TelegramError as e:
            logger.error(f"Failed to send {filename} to chat {chat_id}: {e}")
            return False
