"""
Tests for settings loading
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from spendtracker.config import (
    RecurringSettings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)
from spendtracker.models import CatchUpPolicy


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestStorageSettings:
    """Tests for storage configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("SPENDTRACKER_STORAGE_BACKEND", raising=False)
        monkeypatch.delenv("SPENDTRACKER_STORAGE_DATA_DIR", raising=False)

        settings = StorageSettings()

        assert settings.backend == "json"
        assert settings.accounts_path == Path("./data") / "accounts.json"
        assert settings.audit_path.name == "audit.jsonl"

    def test_backend_is_normalized(self, monkeypatch):
        monkeypatch.setenv("SPENDTRACKER_STORAGE_BACKEND", " Memory ")
        assert StorageSettings().backend == "memory"

    def test_unknown_backend_rejected(self, monkeypatch):
        monkeypatch.setenv("SPENDTRACKER_STORAGE_BACKEND", "postgres")
        with pytest.raises(ValidationError):
            StorageSettings()


class TestRecurringSettings:
    """Tests for recurring processing configuration."""

    def test_policy_from_env(self, monkeypatch):
        monkeypatch.setenv("SPENDTRACKER_RECURRING_CATCH_UP_POLICY", "backfill")
        monkeypatch.setenv("SPENDTRACKER_RECURRING_MAX_BACKFILL_PERIODS", "12")

        settings = RecurringSettings()

        assert settings.catch_up_policy == CatchUpPolicy.BACKFILL
        assert settings.max_backfill_periods == 12
        assert settings.process_on_startup

    def test_backfill_cap_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("SPENDTRACKER_RECURRING_MAX_BACKFILL_PERIODS", "0")
        with pytest.raises(ValidationError):
            RecurringSettings()


class TestValidateAllSettings:
    """Tests for the startup configuration check."""

    def test_valid_json_backend(self, monkeypatch):
        monkeypatch.setenv("SPENDTRACKER_STORAGE_BACKEND", "json")

        results = validate_all_settings()

        assert results == {"storage": True, "recurring": True, "app": True}

    def test_invalid_section_is_reported(self, monkeypatch):
        monkeypatch.setenv("SPENDTRACKER_STORAGE_BACKEND", "json")
        monkeypatch.setenv("SPENDTRACKER_RECURRING_CATCH_UP_POLICY", "sometimes")

        results = validate_all_settings()

        assert results["recurring"] is False
        assert "recurring_error" in results
        assert results["storage"] is True
