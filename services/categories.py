"""Category service: the category forest and its tree operations."""

import sqlite3
from contextlib import contextmanager
from typing import Dict, List, Optional

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from logger import get_logger
from models.category import Category
from services.errors import DuplicateNameError, NotFoundError, ValidationError

logger = get_logger()

EMPTY_TREE_MESSAGE = "Tree is empty."

_CATEGORY_SELECT_FIELDS = "id, name, parent_id"


class CategoryService:
    """Service for managing the category forest.

    Every public mutation runs in a single transaction. Methods that accept
    ``conn`` join the caller's transaction instead of opening their own, which
    is how the spreadsheet import keeps all of its rows in one unit.
    """

    def __init__(self, db_manager):
        """Initialize the category service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def find_all(self) -> List[Category]:
        """Get all categories in store order (ascending id).

        Returns:
            List of Category objects.
        """
        with self.db_manager.connect() as conn:
            return self._fetch_all(conn)

    def find(self, category_id: int) -> Optional[Category]:
        """Get a single category by ID.

        Args:
            category_id: The category ID to find.

        Returns:
            Category object if found, None otherwise.
        """
        with self.db_manager.connect() as conn:
            return self._fetch_one(conn, "id = ?", (category_id,))

    def find_by_name(self, name: str, conn=None) -> Optional[Category]:
        """Get the first category with this exact name.

        Names are only unique among siblings, so when several branches hold
        the same name the oldest category wins.

        Args:
            name: The category name to find (case-sensitive).
            conn: Optional connection of an enclosing transaction.

        Returns:
            Category object if found, None otherwise.
        """
        with self._use(conn) as c:
            return self._fetch_one(c, "name = ?", (name,))

    def find_all_by_name(self, name: str) -> List[Category]:
        """Get every category with this exact name, oldest first."""
        with self.db_manager.connect() as conn:
            return self._fetch_all(conn, "name = ?", (name,))

    def get_by_name(self, name: str) -> Category:
        """Like find_by_name, but a missing category is an error.

        Raises:
            NotFoundError: If no category has this name.
        """
        category = self.find_by_name(name)
        if category is None:
            raise NotFoundError(f"Category '{name}' not found")
        return category

    def find_children(self, category_id: int, conn=None) -> List[Category]:
        """Get the direct children of a category in insertion order."""
        with self._use(conn) as c:
            return self._fetch_all(c, "parent_id = ?", (category_id,))

    def build_tree(self) -> List[Category]:
        """Load the whole forest with children attached.

        Returns:
            Root categories in store order, each with ``children`` populated
            recursively.
        """
        categories = self.find_all()
        by_id: Dict[int, Category] = {category.id: category for category in categories}

        roots = []
        for category in categories:
            if category.is_root:
                roots.append(category)
            else:
                by_id[category.parent_id].children.append(category)
        return roots

    def render_tree(self) -> str:
        """Render the forest as indented text.

        Each category is one "- name" line, indented two spaces per level,
        with children right after their parent.

        Returns:
            The rendered tree, or EMPTY_TREE_MESSAGE when there are no categories.
        """
        logger.debug("Rendering category tree")
        roots = self.build_tree()
        if not roots:
            return EMPTY_TREE_MESSAGE

        lines: List[str] = []
        for root in roots:
            self._render_node(root, 0, lines)
        return "\n".join(lines)

    def add(
        self,
        name: str,
        parent: Optional[Category] = None,
        conn=None,
    ) -> Category:
        """Create a category, as a root or under an existing parent.

        Args:
            name: Category name; surrounding whitespace is stripped.
            parent: Optional parent category. Must still exist in the store.
            conn: Optional connection of an enclosing transaction.

        Returns:
            The created Category object with id populated.

        Raises:
            ValidationError: If the name is blank or holds control characters,
                or the parent does not exist.
            DuplicateNameError: If a sibling already has this name.
        """
        name = name.strip() if name else ""
        if not name:
            raise ValidationError("Category name cannot be empty")
        # Names must survive a spreadsheet export
        if ILLEGAL_CHARACTERS_RE.search(name):
            raise ValidationError("Category name cannot contain control characters")

        with self._use(conn) as c:
            parent_id = None
            parent_name = None
            if parent is not None:
                stored_parent = self._fetch_one(c, "id = ?", (parent.id,))
                if stored_parent is None:
                    raise ValidationError(f"Parent category '{parent.name}' not found")
                parent_id = stored_parent.id
                parent_name = stored_parent.name

            # "IS" matches NULL parent_id too, so roots are checked against roots
            sibling = self._fetch_one(
                c, "name = ? AND parent_id IS ?", (name, parent_id)
            )
            if sibling is not None:
                raise DuplicateNameError(name, parent_name)

            try:
                cursor = c.execute(
                    "INSERT INTO categories (name, parent_id) VALUES (?, ?)",
                    (name, parent_id),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateNameError(name, parent_name) from e

            category = Category(id=cursor.lastrowid, name=name, parent_id=parent_id)

        if parent_name:
            logger.info(f"Added category '{name}' under '{parent_name}'")
        else:
            logger.info(f"Added root category '{name}'")
        return category

    def delete(self, name: str) -> int:
        """Delete every category with this name, together with its subtree.

        A missing name is not an error: it is logged and nothing happens.
        Descendants are removed before their ancestors so that no row ever
        points at a deleted parent.

        Args:
            name: Exact category name.

        Returns:
            Number of categories removed, descendants included.
        """
        removed = 0
        with self.db_manager.transaction() as conn:
            matches = self._fetch_all(conn, "name = ?", (name,))
            if not matches:
                logger.info(f"Category '{name}' not found, nothing to delete")
                return 0

            for match in matches:
                # Already gone if it sat inside an earlier match's subtree
                if self._fetch_one(conn, "id = ?", (match.id,)) is None:
                    continue

                descendants = self._collect_descendants(conn, match.id)
                if descendants:
                    logger.info(
                        f"Category '{match.name}' has descendants: "
                        f"{', '.join(d.name for d in descendants)}"
                    )
                for descendant in descendants:
                    conn.execute("DELETE FROM categories WHERE id = ?", (descendant.id,))
                    logger.debug(
                        f"Deleted descendant '{descendant.name}' of '{match.name}'"
                    )

                conn.execute("DELETE FROM categories WHERE id = ?", (match.id,))
                removed += len(descendants) + 1

        logger.info(f"Deleted category '{name}' ({removed} categories removed)")
        return removed

    @contextmanager
    def _use(self, conn):
        """Reuse the caller's connection, or open a transaction of our own."""
        if conn is not None:
            yield conn
        else:
            with self.db_manager.transaction() as own_conn:
                yield own_conn

    def _collect_descendants(self, conn, category_id: int) -> List[Category]:
        """Collect the descendant set depth-first, deepest categories first."""
        descendants = []
        for child in self.find_children(category_id, conn=conn):
            descendants.extend(self._collect_descendants(conn, child.id))
            descendants.append(child)
        return descendants

    def _render_node(self, category: Category, depth: int, lines: List[str]) -> None:
        lines.append(f"{'  ' * depth}- {category.name}")
        for child in category.children:
            self._render_node(child, depth + 1, lines)

    def _fetch_all(self, conn, where: str = None, params: tuple = ()) -> List[Category]:
        query = f"SELECT {_CATEGORY_SELECT_FIELDS} FROM categories"
        if where:
            query += f" WHERE {where}"
        cursor = conn.execute(query + " ORDER BY id", params)
        return [self._row_to_category(row) for row in cursor.fetchall()]

    def _fetch_one(self, conn, where: str, params: tuple) -> Optional[Category]:
        cursor = conn.execute(
            f"SELECT {_CATEGORY_SELECT_FIELDS} FROM categories WHERE {where} "
            "ORDER BY id LIMIT 1",
            params,
        )
        row = cursor.fetchone()
        if row:
            return self._row_to_category(row)
        return None

    def _row_to_category(self, row: tuple) -> Category:
        """Convert a database row to a Category object."""
        return Category(id=row[0], name=row[1], parent_id=row[2])
