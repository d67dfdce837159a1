"""
Tests for OneSheetRepository - access checks, configuration reads and
conditional partial updates against a mocked Supabase client.
"""

import pytest
from unittest.mock import MagicMock, patch

from powerbrief.core.exceptions import AuthorizationError, ConflictError, NotFoundError


@pytest.fixture
def mock_db():
    """Create a mock Supabase client."""
    return MagicMock()


@pytest.fixture
def repository(mock_db):
    """Create repository with mocked DB and optimistic locking on."""
    with patch(
        "powerbrief.services.onesheet_repository.get_supabase_client",
        return_value=mock_db,
    ):
        from powerbrief.services.onesheet_repository import OneSheetRepository
        repo = OneSheetRepository(optimistic_locking=True)
    return repo


def set_onesheet_rows(mock_db, rows):
    mock_db.table.return_value.select.return_value.eq.return_value.limit.return_value.execute.return_value = (
        MagicMock(data=rows)
    )


def set_share_rows(mock_db, rows):
    (mock_db.table.return_value.select.return_value.eq.return_value.eq.return_value
        .eq.return_value.limit.return_value.execute.return_value) = MagicMock(data=rows)


# ============================================================================
# Reads
# ============================================================================

class TestGetOneSheet:
    def test_owner_can_read(self, repository, mock_db):
        set_onesheet_rows(mock_db, [{"id": "os-1", "user_id": "user-1", "brand_id": "brand-1"}])

        onesheet = repository.get_onesheet("os-1", "user-1")

        mock_db.table.assert_called_with("onesheet")
        assert onesheet["id"] == "os-1"

    def test_accepted_brand_share_can_read(self, repository, mock_db):
        set_onesheet_rows(mock_db, [{"id": "os-1", "user_id": "owner", "brand_id": "brand-1"}])
        set_share_rows(mock_db, [{"id": "share-1"}])

        onesheet = repository.get_onesheet("os-1", "teammate")

        assert onesheet["id"] == "os-1"
        mock_db.table.assert_any_call("brand_shares")

    def test_other_user_is_rejected(self, repository, mock_db):
        set_onesheet_rows(mock_db, [{"id": "os-1", "user_id": "owner", "brand_id": "brand-1"}])
        set_share_rows(mock_db, [])

        with pytest.raises(AuthorizationError) as exc_info:
            repository.get_onesheet("os-1", "stranger")

        assert exc_info.value.status_code == 403

    def test_no_brand_means_owner_only(self, repository, mock_db):
        set_onesheet_rows(mock_db, [{"id": "os-1", "user_id": "owner", "brand_id": None}])

        with pytest.raises(AuthorizationError):
            repository.get_onesheet("os-1", "stranger")

    def test_missing_onesheet(self, repository, mock_db):
        set_onesheet_rows(mock_db, [])

        with pytest.raises(NotFoundError):
            repository.get_onesheet("os-missing", "user-1")


class TestGetPromptConfiguration:
    def test_returns_model(self, repository, mock_db):
        set_onesheet_rows(mock_db, [{
            "onesheet_id": "os-1",
            "creative_brainstorm_model": "gemini-2.5-flash",
            "creative_brainstorm_response_schema": '{"type": "OBJECT"}',
            "created_at": "2026-01-01",
        }])

        config = repository.get_prompt_configuration("os-1")

        mock_db.table.assert_called_with("onesheet_ai_instructions")
        assert config.creative_brainstorm_model == "gemini-2.5-flash"
        assert config.creative_brainstorm_response_schema == {"type": "OBJECT"}

    def test_none_when_not_configured(self, repository, mock_db):
        set_onesheet_rows(mock_db, [])

        assert repository.get_prompt_configuration("os-1") is None


class TestGetActiveContextRecords:
    def test_filters_active_records(self, repository, mock_db):
        chain = mock_db.table.return_value.select.return_value.eq.return_value.eq.return_value
        chain.execute.return_value = MagicMock(data=[{"id": "c1"}])

        records = repository.get_active_context_records("os-1")

        mock_db.table.assert_called_with("context_data")
        mock_db.table.return_value.select.return_value.eq.return_value.eq.assert_called_with("is_active", True)
        assert records == [{"id": "c1"}]


# ============================================================================
# Writes
# ============================================================================

class TestUpdateOneSheet:
    def test_writes_only_given_columns(self, repository, mock_db):
        update_chain = mock_db.table.return_value.update.return_value.eq.return_value
        update_chain.execute.return_value = MagicMock(data=[{"id": "os-1"}])

        result = repository.update_onesheet("os-1", {"hooks": [{"id": "h1"}]})

        written = mock_db.table.return_value.update.call_args[0][0]
        assert set(written) == {"hooks", "updated_at"}
        assert result == {"id": "os-1"}

    def test_conditional_write_checks_updated_at(self, repository, mock_db):
        conditional = mock_db.table.return_value.update.return_value.eq.return_value.eq
        conditional.return_value.execute.return_value = MagicMock(data=[{"id": "os-1"}])

        repository.update_onesheet("os-1", {"hooks": []}, expected_updated_at="2026-01-01T00:00:00")

        conditional.assert_called_once_with("updated_at", "2026-01-01T00:00:00")

    def test_concurrent_change_raises_conflict(self, repository, mock_db):
        conditional = mock_db.table.return_value.update.return_value.eq.return_value.eq
        conditional.return_value.execute.return_value = MagicMock(data=[])

        with pytest.raises(ConflictError) as exc_info:
            repository.update_onesheet("os-1", {"hooks": []}, expected_updated_at="stale")

        assert exc_info.value.status_code == 409

    def test_unconditional_write_on_missing_row(self, repository, mock_db):
        mock_db.table.return_value.update.return_value.eq.return_value.execute.return_value = MagicMock(data=[])

        with pytest.raises(NotFoundError):
            repository.update_onesheet("os-1", {"hooks": []})

    def test_locking_disabled_ignores_expected_timestamp(self, mock_db):
        from powerbrief.services.onesheet_repository import OneSheetRepository
        repo = OneSheetRepository(supabase=mock_db, optimistic_locking=False)
        mock_db.table.return_value.update.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[{"id": "os-1"}]
        )

        repo.update_onesheet("os-1", {"hooks": []}, expected_updated_at="stale")

        mock_db.table.return_value.update.return_value.eq.return_value.eq.assert_not_called()
