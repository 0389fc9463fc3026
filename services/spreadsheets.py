"""Spreadsheet service: export and import the category forest as .xlsx.

File format:
- Row 1 (header): Name, Parent Name
- Row 2+: category name (non-empty), parent category name (empty for roots)
"""

import io
import zipfile
from dataclasses import dataclass
from typing import List, Optional

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from logger import get_logger
from models.category import Category
from services.errors import MalformedInputError

logger = get_logger("spreadsheets")

XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
EXPORT_FILENAME = "categories.xlsx"
SHEET_TITLE = "Categories"
HEADER = ("Name", "Parent Name")


@dataclass
class ImportResult:
    """Outcome of a spreadsheet import.

    Attributes:
        created: Categories created, missing parents included.
        skipped: Rows whose name already existed and were left unchanged.
    """

    created: int = 0
    skipped: int = 0


class SpreadsheetService:
    """Converts between the category store and two-column workbooks."""

    def __init__(self, db_manager, categories):
        """Initialize the spreadsheet service.

        Args:
            db_manager: Database manager, used to run the import as one transaction.
            categories: CategoryService that owns the category rows.
        """
        self.db_manager = db_manager
        self.categories = categories

    def export_all(self, categories: Optional[List[Category]] = None) -> bytes:
        """Serialize categories to an .xlsx workbook.

        Args:
            categories: Categories to write, in row order. Defaults to every
                category in store order.

        Returns:
            The workbook file contents.
        """
        if categories is None:
            categories = self.categories.find_all()
        names_by_id = {category.id: category.name for category in categories}

        workbook = Workbook()
        sheet = workbook.active
        sheet.title = SHEET_TITLE
        sheet.append(HEADER)

        for category in categories:
            sheet.append([category.name, self._parent_name(category, names_by_id)])
            # openpyxl types "=..." values as formulas; names are always text
            for cell in sheet[sheet.max_row]:
                if cell.data_type == "f":
                    cell.data_type = "s"

        buffer = io.BytesIO()
        workbook.save(buffer)
        logger.info(f"Exported {len(categories)} categories to spreadsheet")
        return buffer.getvalue()

    def import_all(self, data: bytes) -> ImportResult:
        """Load categories from an .xlsx workbook.

        Rows are processed top to bottom in a single pass. A parent name that
        matches no category is created as a new root first. A row whose name
        already exists anywhere in the tree is skipped and its category keeps
        its current parent. All rows commit together or not at all.

        Args:
            data: Workbook file contents.

        Returns:
            ImportResult with created/skipped counts.

        Raises:
            MalformedInputError: If the file is not a workbook or a data row
                has no category name.
        """
        rows = self._read_rows(data)
        result = ImportResult()

        with self.db_manager.transaction() as conn:
            for row_number, name, parent_name in rows:
                parent = None
                if parent_name:
                    parent = self.categories.find_by_name(parent_name, conn=conn)
                    if parent is None:
                        logger.info(
                            f"Row {row_number}: parent '{parent_name}' not found, "
                            "creating it as a root"
                        )
                        parent = self.categories.add(parent_name, conn=conn)
                        result.created += 1

                if self.categories.find_by_name(name, conn=conn) is not None:
                    logger.debug(f"Row {row_number}: '{name}' already exists, skipping")
                    result.skipped += 1
                    continue

                self.categories.add(name, parent, conn=conn)
                result.created += 1

        logger.info(
            f"Imported spreadsheet: {result.created} created, {result.skipped} skipped"
        )
        return result

    def _read_rows(self, data: bytes):
        """Read (row number, name, parent name) triples from the first sheet."""
        try:
            workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
            raise MalformedInputError("File is not a readable Excel workbook") from e

        try:
            sheet = workbook.worksheets[0]
            rows = []
            # max_col pads short rows with None, so both cells are always present
            for row_number, (name_cell, parent_cell) in enumerate(
                sheet.iter_rows(min_row=2, max_col=2, values_only=True), start=2
            ):
                name = _cell_text(name_cell)
                parent_name = _cell_text(parent_cell)

                if not name and not parent_name:
                    continue
                if not name:
                    raise MalformedInputError(f"Row {row_number} is missing a category name")

                rows.append((row_number, name, parent_name))
            return rows
        finally:
            workbook.close()

    def _parent_name(self, category: Category, names_by_id: dict) -> str:
        if category.is_root:
            return ""
        if category.parent_id in names_by_id:
            return names_by_id[category.parent_id]
        parent = self.categories.find(category.parent_id)
        return parent.name if parent else ""


def _cell_text(value) -> str:
    """Cell value as stripped text; empty cells become ""."""
    if value is None:
        return ""
    return str(value).strip()
