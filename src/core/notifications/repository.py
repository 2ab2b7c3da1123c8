# src/core/notifications/repository.py
"""
Репозиторий уведомлений.
Только добавление и отметка о прочтении; уведомления не удаляются.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from asyncpg import Record

from src.common.constants import NotificationType, UserRole
from src.core.notifications.models import Notification
from src.infra.database import DatabaseManager, affected_rows, storage_errors

NOTIFICATION_COLUMNS = "id, user_id, title, message, type, read, data, created_at"


class NotificationRepository:
    """Репозиторий уведомлений."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def append(self, notification: Notification) -> Notification:
        """Добавляет уведомление в список пользователя."""
        async with storage_errors(f"запись уведомления для {notification.user_id}"):
            row = await self._db.fetchrow(
                f"""
                INSERT INTO notifications (id, user_id, title, message, type, read, data, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING {NOTIFICATION_COLUMNS}
                """,
                notification.id,
                notification.user_id,
                notification.title,
                notification.message,
                notification.type.value,
                notification.read,
                notification.data,
                notification.created_at,
            )
        return self._row_to_notification(row)

    async def append_many(
        self,
        user_ids: list[str],
        title: str,
        message: str,
        type: NotificationType,
        data: dict[str, Any],
        created_at: datetime,
    ) -> int:
        """
        Одинаковое уведомление нескольким пользователям одним запросом.

        Returns:
            Количество созданных строк
        """
        if not user_ids:
            return 0
        async with storage_errors(f"рассылка уведомления {type.value}"):
            status = await self._db.execute(
                """
                INSERT INTO notifications (id, user_id, title, message, type, read, data, created_at)
                SELECT gen_random_uuid(), u, $2, $3, $4, FALSE, $5, $6
                FROM unnest($1::uuid[]) AS u
                """,
                user_ids,
                title,
                message,
                type.value,
                data,
                created_at,
            )
        return affected_rows(status)

    async def append_for_admins(
        self,
        title: str,
        message: str,
        type: NotificationType,
        data: dict[str, Any],
        created_at: datetime,
    ) -> int:
        """
        Уведомление каждому администратору (отдельная строка на администратора).

        Returns:
            Количество получателей
        """
        async with storage_errors(f"уведомление администраторам {type.value}"):
            status = await self._db.execute(
                """
                INSERT INTO notifications (id, user_id, title, message, type, read, data, created_at)
                SELECT gen_random_uuid(), id, $2, $3, $4, FALSE, $5, $6
                FROM users WHERE role = $1
                """,
                UserRole.ADMIN.value,
                title,
                message,
                type.value,
                data,
                created_at,
            )
        return affected_rows(status)

    async def list_for_user(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        """Уведомления пользователя в хронологическом порядке событий."""
        async with storage_errors(f"список уведомлений {user_id}"):
            rows = await self._db.fetch(
                f"""
                SELECT {NOTIFICATION_COLUMNS} FROM notifications
                WHERE user_id = $1 AND ($2 = FALSE OR read = FALSE)
                ORDER BY created_at, id
                """,
                user_id,
                unread_only,
            )
        return [self._row_to_notification(row) for row in rows]

    async def mark_read(self, user_id: str, notification_ids: Optional[list[str]] = None) -> int:
        """
        Отмечает уведомления прочитанными. Затрагиваются только строки получателя.

        Args:
            user_id: Получатель
            notification_ids: ID уведомлений (None - все уведомления пользователя)

        Returns:
            Количество отмеченных уведомлений
        """
        async with storage_errors(f"отметка уведомлений {user_id}"):
            if notification_ids is None:
                status = await self._db.execute(
                    "UPDATE notifications SET read = TRUE WHERE user_id = $1 AND read = FALSE",
                    user_id,
                )
            else:
                status = await self._db.execute(
                    """
                    UPDATE notifications SET read = TRUE
                    WHERE user_id = $1 AND id = ANY($2::uuid[]) AND read = FALSE
                    """,
                    user_id,
                    notification_ids,
                )
        return affected_rows(status)

    def _row_to_notification(self, row: Record) -> Notification:
        return Notification(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=row["title"],
            message=row["message"],
            type=NotificationType(row["type"]),
            read=row["read"],
            data=row["data"] or {},
            created_at=row["created_at"],
        )

