# tests/core/test_users_repository.py
"""
Тесты для репозитория пользователей.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from src.common.constants import UserRole
from src.core.users.models import User
from src.core.users.repository import UserRepository


@pytest.fixture
def user_repository(mock_db: MagicMock) -> UserRepository:
    return UserRepository(mock_db)


@pytest.fixture
def user_row() -> dict:
    now = datetime.now(timezone.utc)
    return {
        "id": uuid.uuid4(),
        "name": "Bob Driver",
        "email": "bob@example.com",
        "phone": None,
        "role": "driver",
        "is_active": True,
        "is_confirmed": True,
        "created_at": now,
        "updated_at": now,
    }


class TestGetById:
    @pytest.mark.asyncio
    async def test_role_normalized(self, user_repository, mock_db, user_row) -> None:
        mock_db.fetchrow.return_value = user_row

        user = await user_repository.get_by_id(str(user_row["id"]))

        assert user is not None
        assert user.role == UserRole.DRIVER
        assert user.is_driver
        assert user.as_actor().user_id == str(user_row["id"])


class TestSetActive:
    @pytest.mark.asyncio
    async def test_changed(self, user_repository, mock_db) -> None:
        mock_db.fetchval.return_value = uuid.uuid4()

        assert await user_repository.set_active("d1", False) is True
        query, user_id, flag = mock_db.fetchval.call_args.args
        assert "is_active <> $2" in query
        assert (user_id, flag) == ("d1", False)

    @pytest.mark.asyncio
    async def test_unchanged(self, user_repository, mock_db) -> None:
        mock_db.fetchval.return_value = None
        assert await user_repository.set_active("d1", False) is False


class TestDriverQueries:
    @pytest.mark.asyncio
    async def test_count_unpaid_delivered(self, user_repository, mock_db) -> None:
        mock_db.fetchval.return_value = 3

        assert await user_repository.count_unpaid_delivered("d1") == 3
        args = mock_db.fetchval.call_args.args
        assert "commission_paid = FALSE" in args[0]
        assert args[2] == "DELIVERED"

    @pytest.mark.asyncio
    async def test_idle_driver_ids(self, user_repository, mock_db) -> None:
        ids = [uuid.uuid4(), uuid.uuid4()]
        mock_db.fetch.return_value = [{"id": i} for i in ids]

        result = await user_repository.get_idle_driver_ids()

        assert result == [str(i) for i in ids]
        assert mock_db.fetch.call_args.args[1] == "DRIVER"

    @pytest.mark.asyncio
    async def test_create(self, user_repository, mock_db, user_row) -> None:
        mock_db.fetchrow.return_value = user_row
        user = User(name="Bob Driver", email="bob@example.com", role="DRIVER")

        created = await user_repository.create(user)

        assert created.email == "bob@example.com"
        assert mock_db.fetchrow.call_args.args[5] == "DRIVER"
