"""Category model for the category forest."""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Category:
    """Represents one node of the category forest.

    Attributes:
        id: Unique identifier (auto-generated).
        name: Category name, unique among its siblings.
        parent_id: Parent category ID, None for a root.
        children: Child categories in insertion order. Only populated when
            the tree is built by CategoryService; empty otherwise.
    """

    id: int
    name: str
    parent_id: Optional[int] = None
    children: List["Category"] = field(default_factory=list, repr=False)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None
