"""
Tests for the CategoryCatalog
"""

from uuid import uuid4

import pytest

from spendtracker.ledger import CategoryCatalog, InvariantViolationError, NotFoundError
from spendtracker.models import AuditEventType, CategoryType, CustomCategory


def custom(name="Coffee", category_type=CategoryType.EXPENSE):
    return CustomCategory(name=name, icon="cup.and.saucer.fill", color="Brown", type=category_type)


class TestCategoryCatalog:
    """Tests for default seeding and user categories."""

    def test_empty_catalog_is_seeded_and_persisted(self, catalog, categories_repo):
        names = [c.name for c in catalog.categories_for_type(CategoryType.EXPENSE)]

        assert "Food & Dining" in names
        assert all(c.is_default for c in catalog.categories)
        assert len(categories_repo.load()) == len(catalog.categories)
        assert categories_repo.save_count == 1

    def test_existing_catalog_is_not_reseeded(self, categories_repo, catalog):
        catalog.add_category(custom())
        saves = categories_repo.save_count

        reloaded = CategoryCatalog(categories_repo)
        reloaded.load()

        assert categories_repo.save_count == saves
        assert reloaded.find_by_name("coffee") is not None

    def test_add_and_delete_custom_category(self, catalog, audit_storage):
        category = catalog.add_category(custom())

        catalog.delete_category(category.id)

        assert catalog.find_by_name("Coffee") is None
        assert [e.event_type for e in audit_storage.get_events_by_entity("category", category.id)] == [
            AuditEventType.CATEGORY_ADDED,
            AuditEventType.CATEGORY_DELETED,
        ]

    def test_default_category_cannot_be_deleted(self, catalog):
        food = catalog.find_by_name("Food & Dining")
        with pytest.raises(InvariantViolationError):
            catalog.delete_category(food.id)
        assert catalog.get_category(food.id).name == "Food & Dining"

    def test_update_keeps_default_flag(self, catalog):
        food = catalog.find_by_name("food & dining")

        updated = catalog.update_category(food.model_copy(update={"color": "Red", "is_default": False}))

        assert updated.color == "Red"
        assert updated.is_default

    def test_find_by_name_per_type(self, catalog):
        expense_other = catalog.find_by_name("Other", CategoryType.EXPENSE)
        income_other = catalog.find_by_name("other", CategoryType.INCOME)

        assert expense_other.type == CategoryType.EXPENSE
        assert income_other.type == CategoryType.INCOME
        assert expense_other.id != income_other.id

    def test_duplicate_and_missing(self, catalog):
        category = catalog.add_category(custom())
        with pytest.raises(InvariantViolationError):
            catalog.add_category(category)
        with pytest.raises(NotFoundError):
            catalog.delete_category(uuid4())
