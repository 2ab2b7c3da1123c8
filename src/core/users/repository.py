# src/core/users/repository.py
"""
Репозиторий пользователей.
Только то, что нужно подсистеме заказов: чтение аккаунта, флаг активности
водителя и выборки для рассылок.
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Record

from src.common.constants import (
    ACTIVE_DRIVER_STATUSES,
    OrderStatus,
    TypeMsg,
    UserRole,
)
from src.common.logger import log_info
from src.core.users.models import User
from src.infra.database import DatabaseManager, storage_errors

USER_COLUMNS = """
    id, name, email, phone, role, is_active, is_confirmed, created_at, updated_at
"""


class UserRepository:
    """Репозиторий пользователей."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def get_by_id(self, user_id: str) -> Optional[User]:
        """
        Получает пользователя по ID.

        Returns:
            Пользователь или None
        """
        async with storage_errors(f"получение пользователя {user_id}"):
            row = await self._db.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )
        return self._row_to_user(row) if row else None

    async def create(self, user: User) -> User:
        """Сохраняет пользователя."""
        async with storage_errors(f"создание пользователя {user.id}"):
            row = await self._db.fetchrow(
                f"""
                INSERT INTO users (id, name, email, phone, role, is_active, is_confirmed,
                                   created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING {USER_COLUMNS}
                """,
                user.id,
                user.name,
                user.email,
                user.phone,
                user.role.value,
                user.is_active,
                user.is_confirmed,
                user.created_at,
                user.updated_at,
            )
        return self._row_to_user(row)

    async def set_active(self, user_id: str, is_active: bool) -> bool:
        """
        Устанавливает флаг активности.

        Returns:
            True если значение действительно изменилось
        """
        async with storage_errors(f"изменение активности пользователя {user_id}"):
            changed = await self._db.fetchval(
                """
                UPDATE users
                SET is_active = $2, updated_at = NOW()
                WHERE id = $1 AND is_active <> $2
                RETURNING id
                """,
                user_id,
                is_active,
            )

        if changed is not None:
            await log_info(
                f"Пользователь {user_id}: is_active={is_active}",
                type_msg=TypeMsg.DEBUG,
            )
        return changed is not None

    async def count_unpaid_delivered(self, driver_id: str) -> int:
        """Количество доставленных заказов водителя с неоплаченной комиссией."""
        async with storage_errors(f"подсчёт неоплаченных заказов водителя {driver_id}"):
            count = await self._db.fetchval(
                """
                SELECT COUNT(*) FROM shipment_orders
                WHERE driver_id = $1 AND status = $2 AND commission_paid = FALSE
                """,
                driver_id,
                OrderStatus.DELIVERED.value,
            )
        return int(count or 0)

    async def get_idle_driver_ids(self) -> list[str]:
        """
        Активные подтверждённые водители без заказа в работе.
        Получатели рассылки о новых заказах.
        """
        async with storage_errors("выборка свободных водителей"):
            rows = await self._db.fetch(
                """
                SELECT u.id FROM users u
                WHERE u.role = $1 AND u.is_active = TRUE AND u.is_confirmed = TRUE
                  AND NOT EXISTS (
                      SELECT 1 FROM shipment_orders o
                      WHERE o.driver_id = u.id AND o.status = ANY($2::varchar[])
                  )
                """,
                UserRole.DRIVER.value,
                [s.value for s in ACTIVE_DRIVER_STATUSES],
            )
        return [str(row["id"]) for row in rows]

    def _row_to_user(self, row: Record) -> User:
        """Конвертирует строку БД в модель User."""
        return User(
            id=str(row["id"]),
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            role=row["role"],
            is_active=row["is_active"],
            is_confirmed=row["is_confirmed"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
