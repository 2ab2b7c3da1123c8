# src/core/assignment/service.py
"""
Сервис допуска водителей к заказам.
Водитель ведёт один заказ за раз и не может копить неподтверждённые платежи.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from src.common.constants import OrderStatus, TypeMsg, UserRole
from src.common.exceptions import DriverNotEligibleError, PermissionDeniedError
from src.common.logger import log_info
from src.core.billing.repository import PaymentRepository
from src.core.orders.models import Order
from src.core.orders.repository import OrderRepository
from src.core.orders.service import OrderLifecycle
from src.core.users.models import Actor
from src.core.users.repository import UserRepository

if TYPE_CHECKING:
    from src.config.loader import CommissionSettings


@dataclass
class EligibilityDecision:
    """Результат проверки допуска водителя."""
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> EligibilityDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> EligibilityDecision:
        return cls(allowed=False, reason=reason)


class AssignmentGuard:
    """
    Сервис назначения водителей.

    Проверка допуска носит рекомендательный характер: от двойного назначения
    защищает условная запись статуса заказа.
    """

    def __init__(
        self,
        lifecycle: OrderLifecycle,
        orders: OrderRepository,
        payments: PaymentRepository,
        users: UserRepository,
        commission_settings: Optional[CommissionSettings] = None,
    ) -> None:
        """
        Args:
            lifecycle: Жизненный цикл заказа
            orders: Репозиторий заказов
            payments: Репозиторий платежей
            users: Репозиторий пользователей
            commission_settings: Лимит неподтверждённых платежей (по умолчанию из конфига)
        """
        if commission_settings is None:
            from src.config import settings
            commission_settings = settings.commission

        self._lifecycle = lifecycle
        self._orders = orders
        self._payments = payments
        self._users = users
        self._max_unconfirmed = commission_settings.MAX_UNCONFIRMED_PAYMENTS

    async def check_eligibility(self, driver_id: str) -> EligibilityDecision:
        """
        Проверяет, может ли водитель принять новый заказ.

        Отказ, если:
        - аккаунт не найден, не водительский или деактивирован
        - у водителя уже есть заказ в работе
        - неподтверждённых водителем платежей не меньше лимита
        """
        user = await self._users.get_by_id(driver_id)
        if user is None or user.role != UserRole.DRIVER:
            return EligibilityDecision.deny("Водитель не найден")
        if not user.is_active:
            return EligibilityDecision.deny(
                "Аккаунт водителя деактивирован из-за неоплаченных комиссий"
            )

        if await self._orders.has_active_order(driver_id):
            return EligibilityDecision.deny("У водителя уже есть активный заказ")

        unconfirmed = await self._payments.count_unconfirmed_by_driver(driver_id)
        if unconfirmed >= self._max_unconfirmed:
            return EligibilityDecision.deny(
                f"У водителя {unconfirmed} неподтверждённых платежей (лимит {self._max_unconfirmed})"
            )

        return EligibilityDecision.allow()

    async def accept_order(self, order_id: str, driver_id: str) -> Order:
        """
        Водитель принимает заказ.
        Допуск проверяется до чтения заказа и повторно прямо перед условной записью.

        Returns:
            Заказ в статусе ACCEPTED

        Raises:
            DriverNotEligibleError: Водитель не допущен
            ConflictError: Заказ уже принят другим водителем
        """
        actor = Actor(user_id=driver_id, role=UserRole.DRIVER)
        order = await self._assign(order_id, driver_id, actor)

        await log_info(f"Водитель {driver_id} принял заказ {order_id}", type_msg=TypeMsg.INFO)
        return order

    async def assign_order(self, order_id: str, driver_id: str, admin: Actor) -> Order:
        """
        Администратор назначает водителя на заказ.
        Водитель проходит те же проверки допуска, что и при самостоятельном принятии.

        Raises:
            PermissionDeniedError: Вызывающий не администратор
            DriverNotEligibleError: Водитель не допущен
            ConflictError: Заказ уже принят другим водителем
        """
        if not admin.is_admin:
            raise PermissionDeniedError("Назначать водителей может только администратор")

        order = await self._assign(order_id, driver_id, admin)

        await log_info(
            f"Администратор {admin.user_id} назначил водителя {driver_id} на заказ {order_id}",
            type_msg=TypeMsg.INFO,
        )
        return order

    async def _assign(self, order_id: str, driver_id: str, actor: Actor) -> Order:
        await self._ensure_eligible(driver_id)

        async def recheck(order: Order) -> None:
            await self._ensure_eligible(driver_id)

        result = await self._lifecycle.transition(
            order_id,
            OrderStatus.ACCEPTED,
            actor,
            driver_id=driver_id,
            pre_write=recheck,
        )
        return result.order

    async def _ensure_eligible(self, driver_id: str) -> None:
        decision = await self.check_eligibility(driver_id)
        if not decision.allowed:
            await log_info(
                f"Водитель {driver_id} не допущен к заказу: {decision.reason}",
                type_msg=TypeMsg.WARNING,
            )
            raise DriverNotEligibleError(decision.reason or "Водитель не допущен", {"driver_id": driver_id})
