from unittest.mock import AsyncMock

import pytest

from app.db.helpers import DatabaseError
from app.features.vip_sync.domain import EntitlementRecord
from app.features.vip_sync.repository import EntitlementRepository, EntitlementRepositoryError

MODULE = "app.features.vip_sync.repository.entitlement_repository"


@pytest.mark.asyncio
async def test_get_maps_row(monkeypatch):
    async def fake_fetch_one(_query, params):
        assert params == ("123",)
        return {"user_id": "123", "vip_until": 10, "trial_until": None}

    monkeypatch.setattr(f"{MODULE}.fetch_one", fake_fetch_one)

    record = await EntitlementRepository.get("123")

    assert record == EntitlementRecord("123", 10, 0)


@pytest.mark.asyncio
async def test_get_missing_row_returns_none(monkeypatch):
    monkeypatch.setattr(f"{MODULE}.fetch_one", AsyncMock(return_value=None))

    assert await EntitlementRepository.get("123") is None


@pytest.mark.asyncio
async def test_upsert_replaces_on_conflict(monkeypatch):
    execute_mock = AsyncMock(return_value=1)
    monkeypatch.setattr(f"{MODULE}.execute_query", execute_mock)

    await EntitlementRepository.upsert("123", 5, 6)

    query, params = execute_mock.await_args.args
    assert "ON CONFLICT (user_id) DO UPDATE" in query
    assert params == ("123", 5, 6)


@pytest.mark.asyncio
async def test_list_all_returns_records(monkeypatch):
    async def fake_fetch_all(_query):
        return [
            {"user_id": "1", "vip_until": 1, "trial_until": 2},
            {"user_id": "2", "vip_until": 0, "trial_until": 0},
        ]

    monkeypatch.setattr(f"{MODULE}.fetch_all", fake_fetch_all)

    records = await EntitlementRepository.list_all()

    assert [r.user_id for r in records] == ["1", "2"]


@pytest.mark.asyncio
async def test_database_errors_are_wrapped(monkeypatch):
    monkeypatch.setattr(
        f"{MODULE}.fetch_all", AsyncMock(side_effect=DatabaseError("down", operation="fetch_all"))
    )

    with pytest.raises(EntitlementRepositoryError) as exc:
        await EntitlementRepository.list_all()

    assert exc.value.operation == "list_all"


@pytest.mark.asyncio
async def test_ensure_schema_runs_create_and_migrations(monkeypatch):
    execute_mock = AsyncMock(return_value=0)
    monkeypatch.setattr(f"{MODULE}.execute_query", execute_mock)

    await EntitlementRepository.ensure_schema()

    statements = [call.args[0] for call in execute_mock.await_args_list]
    assert "CREATE TABLE IF NOT EXISTS vip_users" in statements[0]
    assert any("ADD COLUMN IF NOT EXISTS trial_until" in s for s in statements)
