"""Errors raised by the category and spreadsheet services."""


class CategoryError(Exception):
    """Base class for category tree errors."""


class ValidationError(CategoryError):
    """A name is blank or a parent does not resolve to an existing category."""


class DuplicateNameError(CategoryError):
    """A sibling under the same parent (or another root) already has the name."""

    def __init__(self, name: str, parent_name: str = None):
        self.name = name
        self.parent_name = parent_name
        if parent_name:
            message = f"Category '{name}' already exists under '{parent_name}'"
        else:
            message = f"Root category '{name}' already exists"
        super().__init__(message)


class MalformedInputError(CategoryError):
    """An uploaded spreadsheet cannot be read or a row is missing a cell."""


class NotFoundError(CategoryError):
    """A category lookup that must succeed found nothing."""
