import io

import pytest
from openpyxl import Workbook, load_workbook

from bot.commands import (
    ADD_USAGE,
    EMPTY_COMMAND_MESSAGE,
    GENERIC_FAILURE_MESSAGE,
    HELP_TEXT,
    REMOVE_USAGE,
    UNKNOWN_COMMAND_MESSAGE,
    UPLOAD_EMPTY_MESSAGE,
    UPLOAD_EXCEL_MESSAGE,
    UPLOAD_FAILED_MESSAGE,
    UPLOAD_PROMPT,
    CommandDispatcher,
)
from services.categories import EMPTY_TREE_MESSAGE
from services.spreadsheets import EXPORT_FILENAME, XLSX_MIME_TYPE

CHAT_ID = 42


@pytest.fixture
def dispatcher(services):
    """CommandDispatcher over the test services."""
    return CommandDispatcher(services)


def make_workbook(rows) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(["Name", "Parent Name"])
    for row in rows:
        sheet.append(list(row))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestParsing:
    """Tests for command parsing and the static replies."""

    @pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
    def test_empty_input(self, dispatcher, text):
        """Test that empty or whitespace-only input gets a fixed reply."""
        assert dispatcher.handle_text(CHAT_ID, text).text == EMPTY_COMMAND_MESSAGE

    @pytest.mark.parametrize("text", ["/start", "/help", "  /help  "])
    def test_help(self, dispatcher, text):
        """Test that /start and /help list the commands."""
        reply = dispatcher.handle_text(CHAT_ID, text)

        assert reply.text == HELP_TEXT
        assert reply.attachment is None
        for command in ("/viewTree", "/addElement", "/removeElement", "/download", "/upload"):
            assert command in reply.text

    @pytest.mark.parametrize("text", ["/unknown", "hello", "/viewtree", "/addelement A"])
    def test_unknown_command(self, dispatcher, text):
        """Test that unrecognized input, including wrong case, is unknown."""
        assert dispatcher.handle_text(CHAT_ID, text).text == UNKNOWN_COMMAND_MESSAGE

    def test_bot_mention_is_stripped(self, dispatcher):
        """Test that /command@botname works like /command."""
        reply = dispatcher.handle_text(CHAT_ID, "/viewTree@arbor_test_bot")

        assert reply.text == EMPTY_TREE_MESSAGE

    def test_upload_prompt(self, dispatcher):
        """Test that /upload only asks for a file."""
        assert dispatcher.handle_text(CHAT_ID, "/upload").text == UPLOAD_PROMPT


class TestAddElement:
    """Tests for /addElement."""

    def test_add_root(self, dispatcher, services):
        """Test adding a root category."""
        reply = dispatcher.handle_text(CHAT_ID, "/addElement Electronics")

        assert reply.text == "Root category 'Electronics' added."
        assert services.categories.find_by_name("Electronics").parent_id is None

    def test_add_child(self, dispatcher, services):
        """Test adding a child under an existing parent."""
        dispatcher.handle_text(CHAT_ID, "/addElement Electronics")

        reply = dispatcher.handle_text(CHAT_ID, "/addElement Electronics Phones")

        assert reply.text == "Child category 'Phones' added under 'Electronics'."
        parent = services.categories.find_by_name("Electronics")
        assert services.categories.find_by_name("Phones").parent_id == parent.id

    def test_add_child_with_spaces_in_name(self, dispatcher, services):
        """Test that everything after the parent is the child name."""
        dispatcher.handle_text(CHAT_ID, "/addElement Electronics")

        reply = dispatcher.handle_text(CHAT_ID, "/addElement  Electronics   Smart   Phones ")

        assert reply.text == "Child category 'Smart Phones' added under 'Electronics'."
        assert services.categories.find_by_name("Smart Phones") is not None

    def test_add_control_character_name_keeps_download_working(self, dispatcher, services):
        """Test that an unexportable name is refused so /download still succeeds."""
        dispatcher.handle_text(CHAT_ID, "/addElement Electronics")

        reply = dispatcher.handle_text(CHAT_ID, "/addElement Bad\x07Name")

        assert reply.text == "Category name cannot contain control characters."
        assert dispatcher.handle_text(CHAT_ID, "/download").attachment is not None

    def test_add_child_missing_parent(self, dispatcher, services):
        """Test that an unknown parent is reported and nothing is added."""
        reply = dispatcher.handle_text(CHAT_ID, "/addElement Electronics Phones")

        assert reply.text == "Parent category 'Electronics' not found."
        assert services.categories.find_all() == []

    def test_add_without_arguments(self, dispatcher):
        """Test that /addElement alone shows usage."""
        assert dispatcher.handle_text(CHAT_ID, "/addElement").text == ADD_USAGE

    def test_add_duplicate_root(self, dispatcher, services):
        """Test that a duplicate root is reported without internal details."""
        dispatcher.handle_text(CHAT_ID, "/addElement Electronics")

        reply = dispatcher.handle_text(CHAT_ID, "/addElement Electronics")

        assert reply.text == "Root category 'Electronics' already exists."
        assert len(services.categories.find_all()) == 1

    def test_add_duplicate_child(self, dispatcher):
        """Test that a duplicate sibling is reported."""
        dispatcher.handle_text(CHAT_ID, "/addElement Electronics")
        dispatcher.handle_text(CHAT_ID, "/addElement Electronics Phones")

        reply = dispatcher.handle_text(CHAT_ID, "/addElement Electronics Phones")

        assert reply.text == "Category 'Phones' already exists under 'Electronics'."


class TestRemoveElement:
    """Tests for /removeElement."""

    def test_remove_with_descendants(self, dispatcher, services):
        """Test that removing a parent removes its children."""
        dispatcher.handle_text(CHAT_ID, "/addElement Electronics")
        dispatcher.handle_text(CHAT_ID, "/addElement Electronics Phones")

        reply = dispatcher.handle_text(CHAT_ID, "/removeElement Electronics")

        assert reply.text == "Category 'Electronics' removed."
        assert services.categories.find_all() == []

    def test_remove_missing_category(self, dispatcher):
        """Test that removing an unknown name still replies normally."""
        reply = dispatcher.handle_text(CHAT_ID, "/removeElement Nothing")

        assert reply.text == "Category 'Nothing' removed."

    def test_remove_two_tokens_is_malformed(self, dispatcher, services):
        """Test that several names are rejected without touching the store."""
        services.categories.add("Foo")
        services.categories.add("Bar")

        reply = dispatcher.handle_text(CHAT_ID, "/removeElement Foo Bar")

        assert reply.text == REMOVE_USAGE
        assert len(services.categories.find_all()) == 2

    def test_remove_without_arguments(self, dispatcher):
        """Test that /removeElement alone shows usage."""
        assert dispatcher.handle_text(CHAT_ID, "/removeElement").text == REMOVE_USAGE

    def test_remove_trailing_whitespace_allowed(self, dispatcher, services):
        """Test that trailing whitespace after the name is not a second token."""
        services.categories.add("Foo")

        reply = dispatcher.handle_text(CHAT_ID, "/removeElement Foo   ")

        assert reply.text == "Category 'Foo' removed."
        assert services.categories.find_all() == []


class TestScenario:
    """End-to-end command sequence."""

    def test_add_view_remove(self, dispatcher):
        """Test adding a root and child, viewing, then removing."""
        assert "Electronics" in dispatcher.handle_text(CHAT_ID, "/addElement Electronics").text
        assert "Phones" in dispatcher.handle_text(CHAT_ID, "/addElement Electronics Phones").text

        tree = dispatcher.handle_text(CHAT_ID, "/viewTree").text
        assert tree.splitlines() == ["- Electronics", "  - Phones"]

        dispatcher.handle_text(CHAT_ID, "/removeElement Electronics")

        assert dispatcher.handle_text(CHAT_ID, "/viewTree").text == EMPTY_TREE_MESSAGE


class TestDownload:
    """Tests for /download."""

    def test_download_attaches_workbook(self, dispatcher, services):
        """Test that /download returns categories.xlsx as an attachment."""
        services.categories.add("Electronics")

        reply = dispatcher.handle_text(CHAT_ID, "/download")

        assert reply.attachment is not None
        assert reply.attachment.filename == EXPORT_FILENAME == "categories.xlsx"
        sheet = load_workbook(io.BytesIO(reply.attachment.data)).worksheets[0]
        assert sheet["A2"].value == "Electronics"

    def test_download_failure(self, dispatcher, services, monkeypatch):
        """Test that an export error becomes a reply without an attachment."""

        def broken_export(categories=None):
            raise OSError("disk full")

        monkeypatch.setattr(services.spreadsheets, "export_all", broken_export)

        reply = dispatcher.handle_text(CHAT_ID, "/download")

        assert reply.attachment is None
        assert "disk full" not in reply.text


class TestErrorBoundary:
    """Tests that service failures never escape the dispatcher."""

    def test_unexpected_error_becomes_generic_reply(self, dispatcher, services, monkeypatch):
        """Test that an unexpected exception is converted to a generic reply."""

        def broken_render():
            raise RuntimeError("database is locked")

        monkeypatch.setattr(services.categories, "render_tree", broken_render)

        reply = dispatcher.handle_text(CHAT_ID, "/viewTree")

        assert reply.text == GENERIC_FAILURE_MESSAGE


class TestHandleDocument:
    """Tests for uploaded documents."""

    def test_import_workbook(self, dispatcher, services):
        """Test that an uploaded workbook is imported."""
        data = make_workbook([("Electronics", ""), ("Phones", "Electronics")])

        reply = dispatcher.handle_document(CHAT_ID, XLSX_MIME_TYPE, data)

        assert reply.text == "Category tree loaded from file: 2 created, 0 already existed."
        assert services.categories.render_tree() == "- Electronics\n  - Phones"

    @pytest.mark.parametrize("mime_type", ["text/csv", "application/pdf", None])
    def test_rejects_other_mime_types(self, dispatcher, services, mime_type):
        """Test that non-Excel documents are rejected."""
        data = make_workbook([("Electronics", "")])

        reply = dispatcher.handle_document(CHAT_ID, mime_type, data)

        assert reply.text == UPLOAD_EXCEL_MESSAGE
        assert services.categories.find_all() == []

    def test_empty_payload(self, dispatcher):
        """Test that a failed download is reported."""
        reply = dispatcher.handle_document(CHAT_ID, XLSX_MIME_TYPE, b"")

        assert reply.text == UPLOAD_EMPTY_MESSAGE

    def test_malformed_workbook(self, dispatcher, services):
        """Test that a row problem is reported and nothing is imported."""
        data = make_workbook([("Electronics", ""), (None, "Electronics")])

        reply = dispatcher.handle_document(CHAT_ID, XLSX_MIME_TYPE, data)

        assert reply.text.startswith("The spreadsheet could not be imported")
        assert "Row 3" in reply.text
        assert services.categories.find_all() == []

    def test_unexpected_import_error(self, dispatcher, services, monkeypatch):
        """Test that other import failures get a generic reply."""

        def broken_import(data):
            raise RuntimeError("boom")

        monkeypatch.setattr(services.spreadsheets, "import_all", broken_import)

        reply = dispatcher.handle_document(CHAT_ID, XLSX_MIME_TYPE, b"data")

        assert reply.text == UPLOAD_FAILED_MESSAGE
