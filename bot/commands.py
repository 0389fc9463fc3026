"""Command dispatcher: turns one chat message into one reply.

The dispatcher keeps no conversation state. Every call parses a single line,
runs it against the services, and returns a Reply for the transport to deliver.
Service errors never escape; they become user-facing messages.
"""

from dataclasses import dataclass
from typing import Optional

from logger import get_logger
from services.errors import DuplicateNameError, MalformedInputError, ValidationError
from services.spreadsheets import EXPORT_FILENAME, XLSX_MIME_TYPE

logger = get_logger("bot")

HELP_TEXT = (
    "Available commands:\n"
    "/start - Start working with the bot and list the commands.\n"
    "/help - List the available commands.\n"
    "/viewTree - Show the category tree.\n"
    "/addElement <name> - Add a root category.\n"
    "/addElement <parent> <child> - Add a child category under <parent>.\n"
    "/removeElement <name> - Remove a category and all of its descendants.\n"
    "/download - Download the category tree as an Excel file.\n"
    "/upload - Load a category tree from an Excel file."
)

EMPTY_COMMAND_MESSAGE = (
    "Command cannot be empty. Use /help to see the list of commands."
)
UNKNOWN_COMMAND_MESSAGE = "Unknown command. Use /help to see the list of commands."
GENERIC_FAILURE_MESSAGE = "Something went wrong while processing the command. Please try again."

ADD_USAGE = (
    "Invalid command format. Use:\n"
    "/addElement <name>\n"
    "/addElement <parent> <child>"
)
REMOVE_USAGE = "Invalid command format. Use /removeElement <name>"

UPLOAD_PROMPT = "Please send an Excel file (.xlsx) to load the category tree."
UPLOAD_EXCEL_MESSAGE = "Please upload an Excel file (.xlsx)."
UPLOAD_EMPTY_MESSAGE = "Could not read the uploaded file."
UPLOAD_FAILED_MESSAGE = "Something went wrong while loading the category tree from the file."
DOWNLOAD_FAILED_MESSAGE = "Could not generate the Excel file. Please try again."


@dataclass
class Attachment:
    """A file the transport must send alongside the reply text."""

    filename: str
    data: bytes


@dataclass
class Reply:
    """Result of handling one inbound message.

    Attributes:
        text: Message to send back to the chat.
        attachment: Optional file, sent before the text.
    """

    text: str
    attachment: Optional[Attachment] = None


class CommandDispatcher:
    """Maps slash-commands to category tree operations.

    Args:
        services: Services container with ``categories`` and ``spreadsheets``.
    """

    def __init__(self, services):
        self.services = services
        self._handlers = {
            "/start": self._help,
            "/help": self._help,
            "/viewTree": self._view_tree,
            "/addElement": self._add_element,
            "/removeElement": self._remove_element,
            "/download": self._download,
            "/upload": self._upload,
        }

    def handle_text(self, chat_id, text: Optional[str]) -> Reply:
        """Handle one text message.

        Args:
            chat_id: Chat the message came from, used for logging only.
            text: Raw message text, e.g. "/addElement Electronics Phones".

        Returns:
            Reply for the chat.
        """
        if text is None or not text.strip():
            return Reply(EMPTY_COMMAND_MESSAGE)

        parts = text.strip().split(maxsplit=1)
        command = _strip_bot_mention(parts[0])
        args = parts[1] if len(parts) > 1 else ""

        handler = self._handlers.get(command)
        if handler is None:
            logger.debug(f"Chat {chat_id}: unknown command {command!r}")
            return Reply(UNKNOWN_COMMAND_MESSAGE)

        logger.info(f"Chat {chat_id}: {command} {args}".rstrip())
        try:
            return handler(args)
        except Exception:
            logger.exception(f"Chat {chat_id}: {command} failed")
            return Reply(GENERIC_FAILURE_MESSAGE)

    def handle_document(self, chat_id, mime_type: Optional[str], data: bytes) -> Reply:
        """Handle an uploaded document by importing it as a category spreadsheet.

        Args:
            chat_id: Chat the document came from, used for logging only.
            mime_type: MIME type reported by the transport.
            data: File contents; empty if the download failed.

        Returns:
            Reply for the chat.
        """
        if mime_type != XLSX_MIME_TYPE:
            logger.info(f"Chat {chat_id}: rejected upload with MIME type {mime_type!r}")
            return Reply(UPLOAD_EXCEL_MESSAGE)
        if not data:
            return Reply(UPLOAD_EMPTY_MESSAGE)

        try:
            result = self.services.spreadsheets.import_all(data)
        except MalformedInputError as e:
            logger.warning(f"Chat {chat_id}: malformed spreadsheet: {e}")
            return Reply(f"The spreadsheet could not be imported: {e}.")
        except Exception:
            logger.exception(f"Chat {chat_id}: spreadsheet import failed")
            return Reply(UPLOAD_FAILED_MESSAGE)

        return Reply(
            "Category tree loaded from file: "
            f"{result.created} created, {result.skipped} already existed."
        )

    def _help(self, args: str) -> Reply:
        return Reply(HELP_TEXT)

    def _view_tree(self, args: str) -> Reply:
        return Reply(self.services.categories.render_tree())

    def _add_element(self, args: str) -> Reply:
        elements = args.split(maxsplit=1)
        if not elements:
            return Reply(ADD_USAGE)

        categories = self.services.categories

        if len(elements) == 1:
            name = elements[0]
            try:
                categories.add(name)
            except (DuplicateNameError, ValidationError) as e:
                return Reply(f"{e}.")
            return Reply(f"Root category '{name}' added.")

        parent_name = elements[0]
        # Whatever follows the parent is the child name, whitespace collapsed
        child_name = " ".join(elements[1].split())

        parent = categories.find_by_name(parent_name)
        if parent is None:
            return Reply(f"Parent category '{parent_name}' not found.")

        try:
            categories.add(child_name, parent)
        except (DuplicateNameError, ValidationError) as e:
            return Reply(f"{e}.")
        return Reply(f"Child category '{child_name}' added under '{parent_name}'.")

    def _remove_element(self, args: str) -> Reply:
        tokens = args.split()
        if len(tokens) != 1:
            return Reply(REMOVE_USAGE)

        name = tokens[0]
        self.services.categories.delete(name)
        return Reply(f"Category '{name}' removed.")

    def _download(self, args: str) -> Reply:
        try:
            data = self.services.spreadsheets.export_all()
        except Exception:
            logger.exception("Spreadsheet export failed")
            return Reply(DOWNLOAD_FAILED_MESSAGE)
        return Reply(
            f"Category tree exported to {EXPORT_FILENAME}.",
            Attachment(filename=EXPORT_FILENAME, data=data),
        )

    def _upload(self, args: str) -> Reply:
        return Reply(UPLOAD_PROMPT)


def _strip_bot_mention(command: str) -> str:
    """Drop the @botname suffix Telegram adds to commands in group chats."""
    if command.startswith("/") and "@" in command:
        return command.split("@", 1)[0]
    return command
