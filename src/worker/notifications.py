# src/worker/notifications.py
"""
Воркер уведомлений.
Превращает события заказов и платежей в записи журнала уведомлений.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional

from src.common.constants import OrderStatus, TypeMsg
from src.common.logger import log_info
from src.core.billing.models import Payment
from src.core.notifications.service import NotificationDispatcher
from src.core.orders.models import Order
from src.infra.event_bus import DomainEvent, EventBus, EventTypes
from src.worker.base import BaseWorker


class NotificationWorker(BaseWorker):
    """
    Воркер для отправки уведомлений.
    Время уведомления берётся из события, а не из момента обработки.
    """

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        super().__init__(event_bus)
        self.dispatcher = dispatcher

    @property
    def name(self) -> str:
        return "NotificationWorker"

    @property
    def subscriptions(self) -> List[str]:
        return list(self._handlers())

    def _handlers(self) -> Dict[str, Callable[[DomainEvent], Awaitable[Any]]]:
        return {
            EventTypes.ORDER_CREATED: self._on_order_created,
            EventTypes.ORDER_STATUS_CHANGED: self._on_status_changed,
            EventTypes.ORDER_ACCEPTED: self._on_order_accepted,
            EventTypes.ORDER_CANCELLED: self._on_order_cancelled,
            EventTypes.PAYMENT_CONFIRMED: self._on_payment_reviewed,
            EventTypes.PAYMENT_REJECTED: self._on_payment_reviewed,
            EventTypes.PAYMENT_ISSUE_REPORTED: self._on_payment_issue,
            EventTypes.DRIVER_DEACTIVATED: self._on_driver_deactivated,
            EventTypes.DRIVER_REACTIVATED: self._on_driver_reactivated,
        }

    async def handle_event(self, event: DomainEvent) -> None:
        """Обрабатывает событие."""
        handler = self._handlers().get(event.event_type)
        if handler is None:
            await log_info(f"Событие {event.event_type} не требует уведомлений", type_msg=TypeMsg.DEBUG)
            return
        await handler(event)

    # =========================================================================
    # ЗАКАЗЫ
    # =========================================================================

    async def _on_order_created(self, event: DomainEvent) -> None:
        await self.dispatcher.notify_new_orders_available(created_at=event.occurred_at)

    async def _on_status_changed(self, event: DomainEvent) -> None:
        order = Order.model_validate(event.payload["order"])
        await self.dispatcher.notify_status_change(
            order,
            OrderStatus.parse(event.payload["previous_status"]),
            OrderStatus.parse(event.payload["new_status"]),
            created_at=event.occurred_at,
        )

    async def _on_order_accepted(self, event: DomainEvent) -> None:
        order = Order.model_validate(event.payload["order"])
        if order.driver_id:
            await self.dispatcher.notify_order_assigned(order.driver_id, order, created_at=event.occurred_at)

    async def _on_order_cancelled(self, event: DomainEvent) -> None:
        driver_id = event.payload.get("previous_driver_id")
        if not driver_id:
            return
        await self.dispatcher.notify_order_cancelled_driver(
            driver_id,
            Order.model_validate(event.payload["order"]),
            OrderStatus.parse(event.payload["previous_status"]),
            created_at=event.occurred_at,
        )

    # =========================================================================
    # ПЛАТЕЖИ И ВОДИТЕЛИ
    # =========================================================================

    async def _on_payment_reviewed(self, event: DomainEvent) -> None:
        await self.dispatcher.notify_payment_reviewed(
            Payment.model_validate(event.payload["payment"]),
            event.payload.get("tracking_number"),
            created_at=event.occurred_at,
        )

    async def _on_payment_issue(self, event: DomainEvent) -> None:
        payment = Payment.model_validate(event.payload["payment"])
        await self.dispatcher.notify_payment_issue(
            payment,
            event.payload.get("driver_name") or payment.driver_id,
            event.payload.get("issue_details") or payment.issue_details or "",
            event.payload.get("tracking_number"),
            created_at=event.occurred_at,
        )

    async def _on_driver_deactivated(self, event: DomainEvent) -> None:
        await self.dispatcher.notify_driver_deactivated(
            event.payload["driver_id"],
            int(event.payload.get("unpaid_orders", 0)),
            created_at=event.occurred_at,
        )

    async def _on_driver_reactivated(self, event: DomainEvent) -> None:
        await self.dispatcher.notify_driver_reactivated(event.payload["driver_id"], created_at=event.occurred_at)
