# src/core/notifications/service.py
"""
Сервис уведомлений.
Формирует тексты и записывает уведомления получателям.
Вызывается воркером по событиям шины, поэтому его сбои не затрагивают
заказы и платежи.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from src.common.constants import CommissionStatus, NotificationType, OrderStatus, TypeMsg
from src.common.logger import log_debug, log_info
from src.core.billing.models import Payment
from src.core.notifications.models import Notification
from src.core.notifications.repository import NotificationRepository
from src.core.orders.models import Order
from src.core.orders.repository import OrderRepository
from src.core.users.repository import UserRepository


def order_label(order_id: str, tracking_number: Optional[str]) -> str:
    """Номер заказа для текста уведомления."""
    return f"#{tracking_number or order_id[:8]}"


def format_status(status: OrderStatus) -> str:
    """IN_TRANSIT -> In Transit"""
    return status.value.replace("_", " ").title()


class NotificationDispatcher:
    """
    Диспетчер уведомлений.

    Реализует:
    - Уведомление одного пользователя и всех администраторов
    - Тексты для смены статуса, назначения, отмены и платежей
    - Рассылку свободным водителям о новых заказах
    - Чтение и отметку о прочтении получателем
    """

    def __init__(
        self,
        repository: NotificationRepository,
        users: UserRepository,
        orders: OrderRepository,
    ) -> None:
        """
        Args:
            repository: Репозиторий уведомлений
            users: Репозиторий пользователей (имена, получатели рассылок)
            orders: Репозиторий заказов (счётчик ожидающих заказов)
        """
        self._repo = repository
        self._users = users
        self._orders = orders

    # =========================================================================
    # БАЗОВЫЕ ОПЕРАЦИИ
    # =========================================================================

    async def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        type: NotificationType,
        data: Optional[dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> Notification:
        """
        Добавляет уведомление пользователю.

        Args:
            user_id: Получатель
            title: Заголовок
            message: Текст
            type: Тип уведомления
            data: Данные для клиента (ID заказа и т.п.)
            created_at: Время события-источника

        Returns:
            Созданное уведомление
        """
        notification = await self._repo.append(Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            data=data or {},
            created_at=created_at or datetime.now(timezone.utc),
        ))
        await log_debug(f"Уведомление {type.value} для {user_id}")
        return notification

    async def notify_admins(
        self,
        title: str,
        message: str,
        type: NotificationType,
        data: Optional[dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        """
        Уведомление каждому администратору.

        Returns:
            Количество администраторов-получателей
        """
        count = await self._repo.append_for_admins(
            title,
            message,
            type,
            data or {},
            created_at or datetime.now(timezone.utc),
        )
        await log_debug(f"Уведомление {type.value} отправлено {count} администраторам")
        return count

    # =========================================================================
    # ЗАКАЗЫ
    # =========================================================================

    async def notify_status_change(
        self,
        order: Order,
        previous_status: OrderStatus,
        new_status: OrderStatus,
        created_at: Optional[datetime] = None,
    ) -> Notification:
        """Уведомляет клиента о смене статуса его заказа."""
        label = order_label(order.id, order.tracking_number)
        title = "Order Status Updated"
        message = f"Your order {label} status has been updated to {format_status(new_status)}"

        if new_status == OrderStatus.ACCEPTED:
            driver = await self._users.get_by_id(order.driver_id) if order.driver_id else None
            driver_name = driver.name if driver else "A driver"
            message = f"Driver {driver_name} has accepted your order {label}"
        elif new_status == OrderStatus.PICKED_UP:
            message = f"Your order {label} has been picked up by the driver"
        elif new_status == OrderStatus.IN_TRANSIT:
            message = f"Your order {label} is now in transit to the delivery location"
        elif new_status == OrderStatus.DELIVERED:
            title = "Order Delivered"
            message = f"Your order {label} has been delivered successfully"
        elif new_status == OrderStatus.CANCELLED:
            title = "Order Cancelled"
            message = f"Your order {label} has been cancelled"

        return await self.notify(
            order.client_id,
            title,
            message,
            NotificationType.ORDER_STATUS_UPDATE,
            {
                "order_id": order.id,
                "previous_status": previous_status.value,
                "new_status": new_status.value,
                "tracking_number": order.tracking_number,
            },
            created_at,
        )

    async def notify_order_assigned(
        self,
        driver_id: str,
        order: Order,
        created_at: Optional[datetime] = None,
    ) -> Notification:
        """Уведомляет водителя о закреплённом за ним заказе."""
        return await self.notify(
            driver_id,
            "New Order Assigned",
            f"You have been assigned to order {order_label(order.id, order.tracking_number)}",
            NotificationType.ORDER_ASSIGNED,
            {
                "order_id": order.id,
                "pickup_address": order.pickup_address.model_dump(),
                "delivery_address": order.delivery_address.model_dump(),
            },
            created_at,
        )

    async def notify_order_cancelled_driver(
        self,
        driver_id: str,
        order: Order,
        previous_status: OrderStatus,
        created_at: Optional[datetime] = None,
    ) -> Notification:
        """Уведомляет снятого с заказа водителя об отмене."""
        return await self.notify(
            driver_id,
            "Order Cancelled",
            f"Order {order_label(order.id, order.tracking_number)} has been cancelled",
            NotificationType.ORDER_CANCELLED,
            {"order_id": order.id, "previous_status": previous_status.value},
            created_at,
        )

    async def notify_new_orders_available(self, created_at: Optional[datetime] = None) -> int:
        """
        Рассылка активным подтверждённым водителям без заказа в работе.
        Не выполняется, если ожидающих заказов нет.

        Returns:
            Количество уведомлённых водителей
        """
        pending = await self._orders.count_by_status(OrderStatus.PENDING)
        if pending == 0:
            await log_debug("Нет ожидающих заказов, рассылка пропущена")
            return 0

        driver_ids = await self._users.get_idle_driver_ids()
        if not driver_ids:
            await log_debug("Нет свободных водителей для рассылки")
            return 0

        count = await self._repo.append_many(
            driver_ids,
            "New Orders Available",
            f"There are {pending} new orders available. Check the available orders page to accept one.",
            NotificationType.NEW_ORDERS_AVAILABLE,
            {"pending_orders": pending},
            created_at or datetime.now(timezone.utc),
        )
        await log_info(f"О {pending} новых заказах уведомлено {count} водителей", type_msg=TypeMsg.INFO)
        return count

    # =========================================================================
    # ПЛАТЕЖИ И АККАУНТ ВОДИТЕЛЯ
    # =========================================================================

    async def notify_payment_reviewed(
        self,
        payment: Payment,
        tracking_number: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Notification:
        """Сообщает водителю решение администратора по платежу."""
        label = order_label(payment.order_id, tracking_number)
        outcome = "confirmed" if payment.status == CommissionStatus.CONFIRMED else "rejected"
        message = f"Your commission payment of {payment.amount} for order {label} has been {outcome}"
        if payment.notes:
            message = f"{message}: {payment.notes}"

        return await self.notify(
            payment.driver_id,
            f"Payment {outcome.capitalize()}",
            message,
            NotificationType.PAYMENT_REVIEWED,
            {"payment_id": payment.id, "order_id": payment.order_id, "status": payment.status.value},
            created_at,
        )

    async def notify_payment_issue(
        self,
        payment: Payment,
        driver_name: str,
        issue_details: str,
        tracking_number: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> int:
        """Сообщает администраторам о жалобе водителя на платёж."""
        return await self.notify_admins(
            "Payment Issue Reported",
            f"Driver {driver_name} has reported an issue with payment for order "
            f"{order_label(payment.order_id, tracking_number)}",
            NotificationType.PAYMENT_ISSUE,
            {"payment_id": payment.id, "order_id": payment.order_id, "issue_details": issue_details},
            created_at,
        )

    async def notify_driver_deactivated(
        self,
        driver_id: str,
        unpaid_orders: int,
        created_at: Optional[datetime] = None,
    ) -> Notification:
        return await self.notify(
            driver_id,
            "Account Deactivated",
            f"Your account has been deactivated: {unpaid_orders} delivered orders have unpaid commission. "
            "Submit the pending payments and contact support to restore access.",
            NotificationType.ACCOUNT_DEACTIVATED,
            {"unpaid_orders": unpaid_orders},
            created_at,
        )

    async def notify_driver_reactivated(
        self,
        driver_id: str,
        created_at: Optional[datetime] = None,
    ) -> Notification:
        return await self.notify(
            driver_id,
            "Account Reactivated",
            "Your account has been reactivated. You can accept delivery orders again.",
            NotificationType.ACCOUNT_DEACTIVATED,
            {"active": True},
            created_at,
        )

    # =========================================================================
    # ПОЛУЧАТЕЛЬ
    # =========================================================================

    async def get_user_notifications(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        return await self._repo.list_for_user(user_id, unread_only=unread_only)

    async def mark_as_read(self, user_id: str, notification_ids: Optional[list[str]] = None) -> int:
        """
        Отмечает уведомления пользователя прочитанными.
        Чужие ID игнорируются.
        """
        count = await self._repo.mark_read(user_id, notification_ids)
        await log_debug(f"Пользователь {user_id} прочитал {count} уведомлений")
        return count
