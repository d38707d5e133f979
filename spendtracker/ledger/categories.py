"""
Category Catalog

The list of categories the user picks from when recording a
transaction. Built-in categories are seeded into an empty catalog and
cannot be deleted; user-created ones can.
"""

from typing import Optional
from uuid import UUID

from spendtracker.audit import AuditLogger
from spendtracker.ledger.base import PersistedStore
from spendtracker.ledger.errors import InvariantViolationError, NotFoundError
from spendtracker.models.audit import AuditEventBuilder, AuditEventType
from spendtracker.models.ledger import CategoryType, CustomCategory
from spendtracker.services.storage import CollectionRepository


# (name, icon, color)
DEFAULT_EXPENSE_CATEGORIES = [
    ("Food & Dining", "fork.knife", "Orange"),
    ("Transportation", "car.fill", "Blue"),
    ("Shopping", "bag.fill", "Purple"),
    ("Entertainment", "tv.fill", "Red"),
    ("Bills & Utilities", "doc.text.fill", "Yellow"),
    ("Healthcare", "cross.fill", "Red"),
    ("Education", "book.fill", "Blue"),
    ("Travel", "airplane", "Green"),
    ("Other", "questionmark.circle.fill", "Blue"),
]

DEFAULT_INCOME_CATEGORIES = [
    ("Salary", "dollarsign.circle.fill", "Green"),
    ("Freelance", "laptopcomputer", "Blue"),
    ("Investment", "chart.line.uptrend.xyaxis", "Green"),
    ("Gift", "gift.fill", "Purple"),
    ("Bonus", "star.fill", "Yellow"),
    ("Other", "questionmark.circle.fill", "Green"),
]


def default_categories() -> list[CustomCategory]:
    """Fresh copies of the built-in catalog, expense first."""
    seeded = []
    for category_type, rows in (
        (CategoryType.EXPENSE, DEFAULT_EXPENSE_CATEGORIES),
        (CategoryType.INCOME, DEFAULT_INCOME_CATEGORIES),
    ):
        for name, icon, color in rows:
            seeded.append(CustomCategory(
                name=name,
                icon=icon,
                color=color,
                type=category_type,
                is_default=True,
            ))
    return seeded


class CategoryCatalog(PersistedStore[CustomCategory]):
    """Default and user-defined categories."""

    def __init__(
        self,
        repository: CollectionRepository[CustomCategory],
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(repository, audit_logger)

    def load(self) -> list[CustomCategory]:
        """Load the catalog, seeding and persisting the defaults if it is empty."""
        categories = self._load_items()
        if not categories:
            with self._mutation():
                self._items = default_categories()
            self._logger.info("category_defaults_seeded", count=len(self._items))
        return self.categories

    @property
    def categories(self) -> list[CustomCategory]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._items]

    def _find(self, category_id: UUID) -> CustomCategory:
        for category in self._items:
            if category.id == category_id:
                return category
        raise NotFoundError("category", category_id)

    def get_category(self, category_id: UUID) -> CustomCategory:
        with self._lock:
            return self._find(category_id).model_copy(deep=True)

    def add_category(
        self,
        category: CustomCategory,
        correlation_id: Optional[UUID] = None,
    ) -> CustomCategory:
        with self._mutation() as events:
            if any(c.id == category.id for c in self._items):
                raise InvariantViolationError(f"Category already exists: {category.id}")
            stored = category.model_copy(deep=True)
            self._items.append(stored)
            events.append(AuditEventBuilder.category_changed(
                event_type=AuditEventType.CATEGORY_ADDED,
                category_id=stored.id,
                name=stored.name,
                correlation_id=correlation_id,
            ))
        return stored.model_copy(deep=True)

    def update_category(
        self,
        category: CustomCategory,
        correlation_id: Optional[UUID] = None,
    ) -> CustomCategory:
        """Replace a category by ID. A default keeps its default flag."""
        with self._mutation() as events:
            existing = self._find(category.id)
            stored = category.model_copy(update={"is_default": existing.is_default}, deep=True)
            self._items = [stored if c.id == stored.id else c for c in self._items]
            events.append(AuditEventBuilder.category_changed(
                event_type=AuditEventType.CATEGORY_UPDATED,
                category_id=stored.id,
                name=stored.name,
                correlation_id=correlation_id,
            ))
        return stored.model_copy(deep=True)

    def delete_category(self, category_id: UUID, correlation_id: Optional[UUID] = None) -> None:
        """
        Delete a user-created category.

        Raises:
            InvariantViolationError: For built-in categories
        """
        with self._mutation() as events:
            category = self._find(category_id)
            if category.is_default:
                raise InvariantViolationError(
                    f"Default category '{category.name}' cannot be deleted"
                )
            self._items = [c for c in self._items if c.id != category_id]
            events.append(AuditEventBuilder.category_changed(
                event_type=AuditEventType.CATEGORY_DELETED,
                category_id=category_id,
                name=category.name,
                correlation_id=correlation_id,
            ))

    def categories_for_type(self, category_type: CategoryType) -> list[CustomCategory]:
        return [c for c in self.categories if c.type == category_type]

    def find_by_name(
        self,
        name: str,
        category_type: Optional[CategoryType] = None,
    ) -> Optional[CustomCategory]:
        """Case-insensitive lookup by name, optionally within one type."""
        wanted = name.strip().lower()
        for category in self.categories:
            if category_type is not None and category.type != category_type:
                continue
            if category.name.lower() == wanted:
                return category
        return None
