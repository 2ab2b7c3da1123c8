# src/core/orders/repository.py
"""
Репозиторий для работы с заказами в БД.
Смена статуса выполняется только условной записью по ожидаемому статусу.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import asyncpg
from asyncpg import Record

from src.common.constants import ACTIVE_DRIVER_STATUSES, OrderStatus, TypeMsg
from src.common.exceptions import ConflictError
from src.common.logger import log_info
from src.core.orders.models import Address, Order, PackageDetails
from src.infra.database import DatabaseManager, storage_errors

ORDER_COLUMNS = """
    id, tracking_number, status, client_id, driver_id, price, payment_status,
    pickup_address, delivery_address, package_details, commission_paid,
    created_at, updated_at, actual_delivery_time
"""


class OrderRepository:
    """Репозиторий заказов."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """
        Получает заказ по ID.

        Returns:
            Заказ или None
        """
        async with storage_errors(f"получение заказа {order_id}"):
            row = await self._db.fetchrow(
                f"SELECT {ORDER_COLUMNS} FROM shipment_orders WHERE id = $1",
                order_id,
            )
        return self._row_to_order(row) if row else None

    async def create(self, order: Order) -> Order:
        """
        Сохраняет новый заказ.

        Raises:
            ConflictError: Трекинг-номер уже занят
        """
        async with storage_errors(f"создание заказа {order.tracking_number}"):
            try:
                row = await self._db.fetchrow(
                    f"""
                    INSERT INTO shipment_orders (
                        id, tracking_number, status, client_id, driver_id, price,
                        payment_status, pickup_address, delivery_address, package_details,
                        commission_paid, created_at, updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
                    RETURNING {ORDER_COLUMNS}
                    """,
                    order.id,
                    order.tracking_number,
                    order.status.value,
                    order.client_id,
                    order.driver_id,
                    order.price,
                    order.payment_status.value,
                    order.pickup_address.model_dump(),
                    order.delivery_address.model_dump(),
                    order.package_details.model_dump(),
                    order.commission_paid,
                    order.created_at,
                    order.updated_at,
                )
            except asyncpg.UniqueViolationError as e:
                raise ConflictError(
                    f"Трекинг-номер {order.tracking_number} уже используется",
                    {"tracking_number": order.tracking_number, "constraint": e.constraint_name},
                ) from e

        await log_info(f"Заказ {order.id} ({order.tracking_number}) сохранён", type_msg=TypeMsg.DEBUG)
        return self._row_to_order(row)

    async def update_status_if(
        self,
        order_id: str,
        expected: OrderStatus,
        target: OrderStatus,
        *,
        driver_id: Optional[str],
        delivered_at: Optional[datetime] = None,
    ) -> Optional[Order]:
        """
        Условная запись статуса: строка меняется, только если статус всё ещё expected.

        Args:
            order_id: ID заказа
            expected: Статус, прочитанный при проверке
            target: Новый статус
            driver_id: Новое значение driver_id (None снимает водителя)
            delivered_at: Время фактической доставки для DELIVERED

        Returns:
            Обновлённый заказ или None, если условие не выполнилось
        """
        async with storage_errors(f"смена статуса заказа {order_id}"):
            row = await self._db.fetchrow(
                f"""
                UPDATE shipment_orders
                SET status = $3,
                    driver_id = $4,
                    actual_delivery_time = COALESCE($5, actual_delivery_time),
                    updated_at = NOW()
                WHERE id = $1 AND status = $2
                RETURNING {ORDER_COLUMNS}
                """,
                order_id,
                expected.value,
                target.value,
                driver_id,
                delivered_at,
            )

        if row is None:
            return None

        await log_info(
            f"Заказ {order_id}: {expected.value} -> {target.value}",
            type_msg=TypeMsg.DEBUG,
        )
        return self._row_to_order(row)

    async def has_active_order(self, driver_id: str) -> bool:
        """Есть ли у водителя заказ в ACCEPTED, PICKED_UP или IN_TRANSIT."""
        async with storage_errors(f"проверка активного заказа водителя {driver_id}"):
            exists = await self._db.fetchval(
                """
                SELECT EXISTS (
                    SELECT 1 FROM shipment_orders
                    WHERE driver_id = $1 AND status = ANY($2::varchar[])
                )
                """,
                driver_id,
                [s.value for s in ACTIVE_DRIVER_STATUSES],
            )
        return bool(exists)

    async def count_by_status(self, status: OrderStatus) -> int:
        async with storage_errors(f"подсчёт заказов {status.value}"):
            count = await self._db.fetchval(
                "SELECT COUNT(*) FROM shipment_orders WHERE status = $1",
                status.value,
            )
        return int(count or 0)

    def _row_to_order(self, row: Record) -> Order:
        """Конвертирует строку БД в модель Order."""
        return Order(
            id=str(row["id"]),
            tracking_number=row["tracking_number"],
            status=row["status"],
            client_id=str(row["client_id"]),
            driver_id=str(row["driver_id"]) if row["driver_id"] is not None else None,
            price=row["price"],
            payment_status=row["payment_status"],
            pickup_address=Address.model_validate(row["pickup_address"]),
            delivery_address=Address.model_validate(row["delivery_address"]),
            package_details=PackageDetails.model_validate(row["package_details"]),
            commission_paid=row["commission_paid"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            actual_delivery_time=row["actual_delivery_time"],
        )
