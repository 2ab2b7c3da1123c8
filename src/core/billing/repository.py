# src/core/billing/repository.py
"""
Репозиторий комиссионных платежей.
Уникальность платежа на заказ обеспечивается ограничением UNIQUE (order_id).
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Record

from src.common.constants import CommissionStatus, TypeMsg
from src.common.logger import log_info
from src.core.billing.models import Payment
from src.infra.database import DatabaseManager, storage_errors

PAYMENT_COLUMNS = """
    id, order_id, driver_id, amount, status, driver_confirmed, has_issue, issue_details,
    payment_method, payment_reference, payment_screenshot, notes, created_at, updated_at
"""


class PaymentRepository:
    """Репозиторий платежей."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        async with storage_errors(f"получение платежа {payment_id}"):
            row = await self._db.fetchrow(
                f"SELECT {PAYMENT_COLUMNS} FROM payments WHERE id = $1",
                payment_id,
            )
        return self._row_to_payment(row) if row else None

    async def get_by_order(self, order_id: str) -> Optional[Payment]:
        async with storage_errors(f"получение платежа по заказу {order_id}"):
            row = await self._db.fetchrow(
                f"SELECT {PAYMENT_COLUMNS} FROM payments WHERE order_id = $1",
                order_id,
            )
        return self._row_to_payment(row) if row else None

    async def create_if_absent(self, payment: Payment) -> Optional[Payment]:
        """
        Создаёт платёж, если по заказу его ещё нет. Проверка и вставка одним запросом.

        Returns:
            Созданный платёж или None, если платёж по заказу уже существует
        """
        async with storage_errors(f"создание платежа по заказу {payment.order_id}"):
            row = await self._db.fetchrow(
                f"""
                INSERT INTO payments (
                    id, order_id, driver_id, amount, status, driver_confirmed, has_issue,
                    payment_method, payment_reference, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, FALSE, FALSE, $6, $7, $8, $8)
                ON CONFLICT (order_id) DO NOTHING
                RETURNING {PAYMENT_COLUMNS}
                """,
                payment.id,
                payment.order_id,
                payment.driver_id,
                payment.amount,
                payment.status.value,
                payment.payment_method,
                payment.payment_reference,
                payment.created_at,
            )
        return self._row_to_payment(row) if row else None

    async def upsert_submission(self, payment: Payment) -> Optional[Payment]:
        """
        Записывает реквизиты перевода: создаёт платёж или перезаписывает существующий.
        Статус сбрасывается в PENDING, комментарий администратора очищается.
        Подтверждённый платёж не перезаписывается.

        Returns:
            Платёж или None, если платёж уже подтверждён
        """
        async with storage_errors(f"отправка платежа по заказу {payment.order_id}"):
            row = await self._db.fetchrow(
                f"""
                INSERT INTO payments (
                    id, order_id, driver_id, amount, status, driver_confirmed, has_issue,
                    payment_method, payment_reference, payment_screenshot, notes,
                    created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, FALSE, FALSE, $6, $7, $8, NULL, $9, $9)
                ON CONFLICT (order_id) DO UPDATE SET
                    amount = EXCLUDED.amount,
                    status = EXCLUDED.status,
                    payment_method = EXCLUDED.payment_method,
                    payment_reference = EXCLUDED.payment_reference,
                    payment_screenshot = EXCLUDED.payment_screenshot,
                    notes = NULL,
                    updated_at = NOW()
                WHERE payments.status <> $10
                RETURNING {PAYMENT_COLUMNS}
                """,
                payment.id,
                payment.order_id,
                payment.driver_id,
                payment.amount,
                CommissionStatus.PENDING.value,
                payment.payment_method,
                payment.payment_reference,
                payment.payment_screenshot,
                payment.updated_at,
                CommissionStatus.CONFIRMED.value,
            )
        return self._row_to_payment(row) if row else None

    async def review(
        self,
        payment_id: str,
        status: CommissionStatus,
        notes: Optional[str],
    ) -> Optional[Payment]:
        """
        Решение администратора по платежу.
        При CONFIRMED флаг commission_paid заказа выставляется в той же транзакции.

        Returns:
            Обновлённый платёж или None, если платёж уже подтверждён или не существует
        """
        async with storage_errors(f"проверка платежа {payment_id}"):
            async with self._db.transaction() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE payments
                    SET status = $2, notes = $3, updated_at = NOW()
                    WHERE id = $1 AND status <> $4
                    RETURNING {PAYMENT_COLUMNS}
                    """,
                    payment_id,
                    status.value,
                    notes,
                    CommissionStatus.CONFIRMED.value,
                )
                if row is not None and status == CommissionStatus.CONFIRMED:
                    await conn.execute(
                        """
                        UPDATE shipment_orders
                        SET commission_paid = TRUE, updated_at = NOW()
                        WHERE id = $1
                        """,
                        row["order_id"],
                    )

        if row is None:
            return None

        await log_info(f"Платёж {payment_id}: {status.value}", type_msg=TypeMsg.DEBUG)
        return self._row_to_payment(row)

    async def mark_driver_confirmed(self, payment_id: str) -> Optional[Payment]:
        async with storage_errors(f"подтверждение платежа {payment_id} водителем"):
            row = await self._db.fetchrow(
                f"""
                UPDATE payments
                SET driver_confirmed = TRUE, updated_at = NOW()
                WHERE id = $1
                RETURNING {PAYMENT_COLUMNS}
                """,
                payment_id,
            )
        return self._row_to_payment(row) if row else None

    async def mark_issue(self, payment_id: str, details: str) -> Optional[Payment]:
        async with storage_errors(f"жалоба по платежу {payment_id}"):
            row = await self._db.fetchrow(
                f"""
                UPDATE payments
                SET has_issue = TRUE, issue_details = $2, updated_at = NOW()
                WHERE id = $1
                RETURNING {PAYMENT_COLUMNS}
                """,
                payment_id,
                details,
            )
        return self._row_to_payment(row) if row else None

    async def count_unconfirmed_by_driver(self, driver_id: str) -> int:
        """Количество платежей водителя, которые он ещё не подтвердил."""
        async with storage_errors(f"подсчёт неподтверждённых платежей водителя {driver_id}"):
            count = await self._db.fetchval(
                "SELECT COUNT(*) FROM payments WHERE driver_id = $1 AND driver_confirmed = FALSE",
                driver_id,
            )
        return int(count or 0)

    async def list_unconfirmed_by_driver(self, driver_id: str) -> list[Payment]:
        """Неподтверждённые водителем платежи, новые первыми."""
        async with storage_errors(f"выборка неподтверждённых платежей водителя {driver_id}"):
            rows = await self._db.fetch(
                f"""
                SELECT {PAYMENT_COLUMNS} FROM payments
                WHERE driver_id = $1 AND driver_confirmed = FALSE
                ORDER BY created_at DESC
                """,
                driver_id,
            )
        return [self._row_to_payment(row) for row in rows]

    def _row_to_payment(self, row: Record) -> Payment:
        """Конвертирует строку БД в модель Payment."""
        return Payment(
            id=str(row["id"]),
            order_id=str(row["order_id"]),
            driver_id=str(row["driver_id"]),
            amount=row["amount"],
            status=CommissionStatus(row["status"]),
            driver_confirmed=row["driver_confirmed"],
            has_issue=row["has_issue"],
            issue_details=row["issue_details"],
            payment_method=row["payment_method"],
            payment_reference=row["payment_reference"],
            payment_screenshot=row["payment_screenshot"],
            notes=row["notes"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
