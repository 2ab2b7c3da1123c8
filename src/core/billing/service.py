# src/core/billing/service.py
"""
Учёт комиссий водителей.
Создание платежа при доставке, отправка реквизитов водителем, решение
администратора и политика деактивации водителей с неоплаченными комиссиями.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from redis.exceptions import RedisError

from src.common.constants import CommissionStatus, OrderStatus, TypeMsg, UserRole
from src.common.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from src.common.logger import log_debug, log_error, log_info, log_warning
from src.core.billing.models import (
    UNPAID,
    CommissionQuote,
    Payment,
    compute_commission,
    placeholder_reference,
)
from src.core.billing.repository import PaymentRepository
from src.core.orders.models import Order, order_cache_key
from src.core.orders.repository import OrderRepository
from src.core.users.models import Actor
from src.core.users.repository import UserRepository
from src.infra.event_bus import DomainEvent, EventBus, EventTypes
from src.infra.redis_client import RedisClient

if TYPE_CHECKING:
    from src.config.loader import CommissionSettings

DEFAULT_ISSUE_DETAILS = "Driver reported an issue"


class PaymentLedger:
    """
    Сервис комиссионных платежей.

    Реализует:
    - Идемпотентное создание платежа при доставке
    - Отправку реквизитов перевода водителем
    - Подтверждение/отклонение администратором
    - Деактивацию водителя при накоплении неоплаченных заказов
    """

    def __init__(
        self,
        payments: PaymentRepository,
        orders: OrderRepository,
        users: UserRepository,
        event_bus: EventBus,
        commission_settings: Optional[CommissionSettings] = None,
        redis: Optional[RedisClient] = None,
    ) -> None:
        """
        Args:
            payments: Репозиторий платежей
            orders: Репозиторий заказов
            users: Репозиторий пользователей
            event_bus: Шина событий
            commission_settings: Ставка и лимиты (по умолчанию из конфига)
            redis: Кэш заказов, сбрасывается после оплаты комиссии
        """
        if commission_settings is None:
            from src.config import settings
            commission_settings = settings.commission

        self._payments = payments
        self._orders = orders
        self._users = users
        self._event_bus = event_bus
        self._redis = redis
        self._rate_percent = commission_settings.COMMISSION_RATE_PERCENT
        self._max_unpaid_orders = commission_settings.MAX_UNPAID_ORDERS

    def commission_for(self, price: Decimal) -> Decimal:
        """Сумма комиссии для цены заказа."""
        return compute_commission(price, self._rate_percent)

    # =========================================================================
    # ДОСТАВКА
    # =========================================================================

    async def on_delivered(self, order: Order) -> Optional[Payment]:
        """
        Создаёт PENDING платёж по доставленному заказу.
        Повторный вызов ничего не меняет.

        Args:
            order: Заказ в статусе DELIVERED

        Returns:
            Платёж по заказу или None, если водитель не назначен
        """
        if not order.driver_id:
            await log_warning(f"Заказ {order.id} доставлен без водителя: комиссия не начисляется")
            return None

        payment = Payment(
            order_id=order.id,
            driver_id=order.driver_id,
            amount=self.commission_for(order.price),
            status=CommissionStatus.PENDING,
            payment_reference=placeholder_reference(order.id),
        )
        created = await self._payments.create_if_absent(payment)

        if created is None:
            await log_debug(f"Платёж по заказу {order.id} уже существует")
            return await self._payments.get_by_order(order.id)

        await log_info(
            f"Комиссия {created.amount} по заказу {order.id} начислена водителю {order.driver_id}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(EventTypes.PAYMENT_CREATED, {
            "payment": created.model_dump(mode="json"),
            "tracking_number": order.tracking_number,
        })

        await self.check_driver_status(order.driver_id)
        return created

    # =========================================================================
    # ОПЕРАЦИИ ВОДИТЕЛЯ
    # =========================================================================

    async def submit_payment(
        self,
        order_id: str,
        driver_id: str,
        method: Optional[str],
        reference: Optional[str],
        screenshot: Optional[str] = None,
    ) -> Payment:
        """
        Водитель отправляет реквизиты перевода комиссии.

        Raises:
            ValidationError: Не указан способ или референс, заказ не доставлен
            NotFoundError: Заказ не найден
            PermissionDeniedError: Заказ назначен другому водителю
            ConflictError: Комиссия по заказу уже подтверждена
        """
        if not method or not reference:
            raise ValidationError("Необходимо указать способ оплаты и референс перевода")

        order = await self._orders.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Заказ", order_id)

        if order.driver_id != driver_id:
            raise PermissionDeniedError(
                "Отправить платёж может только назначенный водитель",
                {"order_id": order_id},
            )
        if order.status != OrderStatus.DELIVERED:
            raise ValidationError(
                "Платёж можно отправить только по доставленному заказу",
                {"order_id": order_id, "status": order.status.value},
            )
        if order.commission_paid:
            raise ConflictError("Комиссия по заказу уже подтверждена", {"order_id": order_id})

        payment = await self._payments.upsert_submission(Payment(
            order_id=order_id,
            driver_id=driver_id,
            amount=self.commission_for(order.price),
            payment_method=method,
            payment_reference=reference,
            payment_screenshot=screenshot,
        ))
        if payment is None:
            raise ConflictError("Комиссия по заказу уже подтверждена", {"order_id": order_id})

        await log_info(
            f"Водитель {driver_id} отправил платёж {payment.id} по заказу {order_id} ({method})",
            type_msg=TypeMsg.INFO,
        )
        return payment

    async def driver_confirm_payment(self, payment_id: str, driver: Actor) -> Payment:
        """
        Водитель подтверждает, что перевёл комиссию.
        commission_paid заказа не меняется.
        """
        await self._get_own_payment(payment_id, driver)

        updated = await self._payments.mark_driver_confirmed(payment_id)
        if updated is None:
            raise NotFoundError("Платёж", payment_id)

        await log_info(f"Водитель {driver.user_id} подтвердил платёж {payment_id}", type_msg=TypeMsg.INFO)
        return updated

    async def driver_report_issue(
        self,
        payment_id: str,
        details: Optional[str],
        driver: Actor,
    ) -> Payment:
        """
        Водитель сообщает о проблеме с платежом; администраторы получают уведомление.
        """
        payment = await self._get_own_payment(payment_id, driver)
        issue_details = details or DEFAULT_ISSUE_DETAILS

        updated = await self._payments.mark_issue(payment_id, issue_details)
        if updated is None:
            raise NotFoundError("Платёж", payment_id)

        order = await self._orders.get_by_id(payment.order_id)
        await self._publish(EventTypes.PAYMENT_ISSUE_REPORTED, {
            "payment": updated.model_dump(mode="json"),
            "tracking_number": order.tracking_number if order else None,
            "driver_name": driver.name or driver.user_id,
            "issue_details": issue_details,
        })

        await log_warning(f"Жалоба по платежу {payment_id} от водителя {driver.user_id}: {issue_details}")
        return updated

    async def get_driver_pending_payments(self, driver: Actor) -> list[Payment]:
        """Платежи водителя, которые он ещё не подтвердил, новые первыми."""
        if driver.role != UserRole.DRIVER:
            raise PermissionDeniedError("Список неподтверждённых платежей доступен только водителям")
        return await self._payments.list_unconfirmed_by_driver(driver.user_id)

    async def get_order_commission(self, order_id: str, actor: Actor) -> CommissionQuote:
        """
        Комиссия по заказу для назначенного водителя или администратора.

        Raises:
            NotFoundError: Заказ не найден
            PermissionDeniedError: Вызывающий не водитель заказа и не администратор
        """
        order = await self._orders.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Заказ", order_id)
        if not actor.is_admin and order.driver_id != actor.user_id:
            raise PermissionDeniedError("Нет доступа к комиссии по заказу", {"order_id": order_id})

        payment = await self._payments.get_by_order(order_id)
        if order.commission_paid:
            status = CommissionStatus.CONFIRMED.value
        elif payment is not None:
            status = payment.status.value
        else:
            status = UNPAID

        return CommissionQuote(
            order_id=order.id,
            tracking_number=order.tracking_number,
            price=order.price,
            commission_rate=self._rate_percent,
            commission_amount=self.commission_for(order.price),
            payment_status=status,
            commission_paid=order.commission_paid,
            payment=payment,
        )

    # =========================================================================
    # ОПЕРАЦИИ АДМИНИСТРАТОРА
    # =========================================================================

    async def confirm_payment(
        self,
        payment_id: str,
        status: str | CommissionStatus,
        notes: Optional[str],
        admin: Actor,
    ) -> Payment:
        """
        Решение администратора по платежу.

        CONFIRMED выставляет commission_paid заказа в той же транзакции.
        В обоих исходах политика деактивации водителя пересчитывается.

        Raises:
            PermissionDeniedError: Вызывающий не администратор
            ValidationError: Статус не CONFIRMED и не REJECTED
            NotFoundError: Платёж не найден
            ConflictError: Платёж уже подтверждён
        """
        if not admin.is_admin:
            raise PermissionDeniedError("Подтверждать платежи может только администратор")

        try:
            decision = CommissionStatus(str(getattr(status, "value", status)).strip().upper())
        except ValueError:
            decision = None
        if decision not in (CommissionStatus.CONFIRMED, CommissionStatus.REJECTED):
            raise ValidationError(
                "Статус должен быть CONFIRMED или REJECTED",
                {"status": str(status)},
            )

        existing = await self._payments.get_by_id(payment_id)
        if existing is None:
            raise NotFoundError("Платёж", payment_id)

        updated = await self._payments.review(payment_id, decision, notes or None)
        if updated is None:
            raise ConflictError("Платёж уже подтверждён", {"payment_id": payment_id})

        await log_info(
            f"Платёж {payment_id} ({updated.amount}) {decision.value} администратором {admin.user_id}",
            type_msg=TypeMsg.INFO,
        )

        if decision == CommissionStatus.CONFIRMED:
            await self._drop_order_cache(updated.order_id)

        order = await self._orders.get_by_id(updated.order_id)
        await self._publish(
            EventTypes.PAYMENT_CONFIRMED if decision == CommissionStatus.CONFIRMED else EventTypes.PAYMENT_REJECTED,
            {
                "payment": updated.model_dump(mode="json"),
                "tracking_number": order.tracking_number if order else None,
            },
        )

        await self.check_driver_status(updated.driver_id)
        return updated

    async def reactivate_driver(self, driver_id: str, admin: Actor) -> bool:
        """
        Ручная реактивация водителя администратором.
        Автоматически не вызывается: деактивация по неоплаченным заказам односторонняя.

        Returns:
            True если водитель был неактивен и теперь активирован
        """
        if not admin.is_admin:
            raise PermissionDeniedError("Реактивировать водителя может только администратор")

        driver = await self._users.get_by_id(driver_id)
        if driver is None or not driver.is_driver:
            raise NotFoundError("Водитель", driver_id)

        unpaid = await self._users.count_unpaid_delivered(driver_id)
        if unpaid >= self._max_unpaid_orders:
            await log_warning(
                f"Водитель {driver_id} реактивирован с {unpaid} неоплаченными заказами"
            )

        changed = await self._users.set_active(driver_id, True)
        if changed:
            await self._publish(EventTypes.DRIVER_REACTIVATED, {
                "driver_id": driver_id,
                "admin_id": admin.user_id,
                "unpaid_orders": unpaid,
            })
            await log_info(f"Водитель {driver_id} реактивирован администратором {admin.user_id}", type_msg=TypeMsg.INFO)
        return changed

    # =========================================================================
    # ПОЛИТИКА ДЕАКТИВАЦИИ
    # =========================================================================

    async def check_driver_status(self, driver_id: str) -> bool:
        """
        Деактивирует водителя, если неоплаченных доставленных заказов не меньше лимита.
        Политика односторонняя: активация здесь не выполняется.

        Returns:
            True если водитель деактивирован этим вызовом
        """
        unpaid = await self._users.count_unpaid_delivered(driver_id)
        if unpaid < self._max_unpaid_orders:
            return False

        changed = await self._users.set_active(driver_id, False)
        if changed:
            await log_warning(
                f"Водитель {driver_id} деактивирован: {unpaid} заказов с неоплаченной комиссией"
            )
            await self._publish(EventTypes.DRIVER_DEACTIVATED, {
                "driver_id": driver_id,
                "unpaid_orders": unpaid,
            })
        return changed

    # =========================================================================
    # ВСПОМОГАТЕЛЬНЫЕ
    # =========================================================================

    async def _get_own_payment(self, payment_id: str, driver: Actor) -> Payment:
        payment = await self._payments.get_by_id(payment_id)
        if payment is None:
            raise NotFoundError("Платёж", payment_id)
        if payment.driver_id != driver.user_id:
            raise PermissionDeniedError(
                "Водитель может работать только со своими платежами",
                {"payment_id": payment_id},
            )
        return payment

    async def _publish(self, event_type: str, payload: dict[str, Any]) -> None:
        try:
            await self._event_bus.publish(DomainEvent(event_type=event_type, payload=payload))
        except Exception as pub_error:
            await log_error(f"Не удалось опубликовать {event_type}: {pub_error}")

    async def _drop_order_cache(self, order_id: str) -> None:
        """Сбрасывает кэш заказа после изменения commission_paid."""
        if self._redis is None:
            return
        try:
            await self._redis.delete(order_cache_key(order_id))
        except RedisError as e:
            await log_warning(f"Не удалось сбросить кэш заказа {order_id}: {e}")
