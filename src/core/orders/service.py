# src/core/orders/service.py
"""
Жизненный цикл заказа.
Создание, смена статусов по графу и правилам ролей, кэш заказа, публикация событий.
"""

from __future__ import annotations

import random
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from src.common.constants import OrderStatus, TypeMsg
from src.common.exceptions import ConflictError, NotFoundError, ValidationError
from src.common.logger import log_error, log_info, log_warning
from src.core.orders.models import (
    Address,
    Order,
    OrderCreateDTO,
    PackageDetails,
    TransitionResult,
    order_cache_key,
)
from src.core.orders.repository import OrderRepository
from src.core.orders.state_machine import OrderStateMachine
from src.core.users.models import Actor
from src.infra.event_bus import DomainEvent, EventBus, EventTypes
from src.infra.redis_client import RedisClient

if TYPE_CHECKING:
    from src.config.loader import OrderSettings
    from src.core.billing.service import PaymentLedger

# Вызывается непосредственно перед условной записью; исключение отменяет переход
PreWriteHook = Callable[[Order], Awaitable[None]]


class OrderLifecycle:
    """
    Сервис заказов.
    Единственная точка изменения статуса заказа.
    """

    def __init__(
        self,
        repository: OrderRepository,
        redis: RedisClient,
        event_bus: EventBus,
        ledger: Optional[PaymentLedger] = None,
        order_settings: Optional[OrderSettings] = None,
        cache_ttl: Optional[int] = None,
    ) -> None:
        """
        Args:
            repository: Репозиторий заказов
            redis: Клиент Redis (кэш заказов)
            event_bus: Шина событий
            ledger: Учёт комиссий, вызывается при доставке
            order_settings: Настройки трекинг-номеров (по умолчанию из конфига)
            cache_ttl: TTL кэша заказа в секундах (по умолчанию из конфига)
        """
        if order_settings is None or cache_ttl is None:
            from src.config import settings
            order_settings = order_settings or settings.orders
            cache_ttl = cache_ttl if cache_ttl is not None else settings.redis_ttl.ORDER_TTL

        self._repo = repository
        self._redis = redis
        self._event_bus = event_bus
        self._ledger = ledger
        self._tracking_prefix = order_settings.TRACKING_NUMBER_PREFIX
        self._tracking_attempts = order_settings.TRACKING_NUMBER_ATTEMPTS
        self._cache_ttl = cache_ttl

    def _generate_tracking_number(self) -> str:
        """Префикс + последние 6 цифр времени в мс + случайное число 0..999."""
        millis = str(int(time.time() * 1000))[-6:]
        return f"{self._tracking_prefix}{millis}{random.randint(0, 999)}"

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_order(self, order_id: str) -> Order:
        """
        Получает заказ (сначала из кэша).

        Raises:
            NotFoundError: Заказ не существует
        """
        try:
            cached = await self._redis.get_model(order_cache_key(order_id), Order)
        except RedisError as e:
            await log_warning(f"Кэш заказа {order_id} недоступен: {e}")
            cached = None
        if cached is not None:
            return cached

        order = await self._repo.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Заказ", order_id)

        await self._cache_order(order)
        return order

    async def _cache_order(self, order: Order) -> None:
        try:
            await self._redis.set_model(order_cache_key(order.id), order, ttl=self._cache_ttl)
        except RedisError as e:
            await log_warning(f"Не удалось обновить кэш заказа {order.id}: {e}")

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ ЗАКАЗА
    # =========================================================================

    async def create_order(
        self,
        client_id: str,
        pickup_address: Address | dict[str, Any],
        delivery_address: Address | dict[str, Any],
        package_details: PackageDetails | dict[str, Any],
        price: Decimal | str | float,
    ) -> Order:
        """
        Создаёт заказ в статусе PENDING.

        Args:
            client_id: ID клиента
            pickup_address: Адрес забора
            delivery_address: Адрес доставки
            package_details: Описание посылки
            price: Стоимость доставки

        Returns:
            Созданный заказ

        Raises:
            ValidationError: Некорректные данные заказа
            ConflictError: Не удалось подобрать свободный трекинг-номер
        """
        try:
            dto = OrderCreateDTO(
                client_id=client_id,
                pickup_address=pickup_address,
                delivery_address=delivery_address,
                package_details=package_details,
                price=Decimal(str(price)),
            )
        except (PydanticValidationError, ArithmeticError) as e:
            raise ValidationError(f"Некорректные данные заказа: {e}") from e

        created: Optional[Order] = None
        for attempt in range(1, self._tracking_attempts + 1):
            order = Order(
                tracking_number=self._generate_tracking_number(),
                client_id=dto.client_id,
                price=dto.price,
                pickup_address=dto.pickup_address,
                delivery_address=dto.delivery_address,
                package_details=dto.package_details,
            )
            try:
                created = await self._repo.create(order)
                break
            except ConflictError:
                await log_warning(
                    f"Коллизия трекинг-номера {order.tracking_number} "
                    f"(попытка {attempt}/{self._tracking_attempts})"
                )

        if created is None:
            raise ConflictError(
                "Не удалось сгенерировать уникальный трекинг-номер",
                {"attempts": self._tracking_attempts},
            )

        await self._cache_order(created)
        await self._publish(EventTypes.ORDER_CREATED, {
            "order": created.model_dump(mode="json"),
        })

        await log_info(
            f"Заказ {created.id} ({created.tracking_number}) создан клиентом {created.client_id}",
            type_msg=TypeMsg.INFO,
        )
        return created

    async def transition(
        self,
        order_id: str,
        target_status: str | OrderStatus,
        actor: Actor,
        *,
        driver_id: Optional[str] = None,
        pre_write: Optional[PreWriteHook] = None,
    ) -> TransitionResult:
        """
        Переводит заказ в новый статус.

        Порядок проверок: статус распознан, заказ существует, ребро есть в
        графе, роль актора позволяет переход, затем условная запись.

        Args:
            order_id: ID заказа
            target_status: Целевой статус (строка нормализуется)
            actor: Вызывающий
            driver_id: Назначаемый водитель для PENDING -> ACCEPTED
            pre_write: Проверка прямо перед записью (допуск водителя)

        Returns:
            TransitionResult с обновлённым заказом

        Raises:
            ValidationError: Неизвестный статус или недопустимое ребро
            NotFoundError: Заказ не найден
            PermissionDeniedError: Роль не позволяет переход
            ConflictError: Статус изменился параллельно
        """
        target = OrderStateMachine.parse_target(target_status)

        order = await self._repo.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Заказ", order_id)

        OrderStateMachine.ensure_edge(order.status, target)

        if target == OrderStatus.ACCEPTED and driver_id is None and actor.is_driver:
            driver_id = actor.user_id
        OrderStateMachine.ensure_actor_allowed(
            order,
            target,
            actor,
            driver_id=driver_id,
            eligibility_gated=pre_write is not None,
        )

        if target == OrderStatus.ACCEPTED:
            new_driver_id = driver_id
        elif target == OrderStatus.CANCELLED:
            new_driver_id = None
        else:
            new_driver_id = order.driver_id

        if pre_write is not None:
            await pre_write(order)

        updated = await self._repo.update_status_if(
            order_id,
            order.status,
            target,
            driver_id=new_driver_id,
            delivered_at=datetime.now(timezone.utc) if target == OrderStatus.DELIVERED else None,
        )
        if updated is None:
            current = await self._repo.get_by_id(order_id)
            if current is None:
                raise NotFoundError("Заказ", order_id)
            raise ConflictError(
                f"Статус заказа {order_id} изменился: ожидался {order.status.value}, "
                f"сейчас {current.status.value}",
                {"expected": order.status.value, "actual": current.status.value},
            )

        await self._cache_order(updated)

        ledger_error: Optional[str] = None
        if target == OrderStatus.DELIVERED and updated.driver_id and self._ledger is not None:
            try:
                await self._ledger.on_delivered(updated)
            except Exception as e:
                ledger_error = getattr(e, "message", None) or str(e)
                await log_error(
                    f"Заказ {order_id} доставлен, но комиссия не записана: {ledger_error}",
                    exc_info=True,
                )

        await self._publish_transition(order, updated, actor)

        await log_info(
            f"Заказ {order_id}: {order.status.value} -> {target.value} ({actor.role.value} {actor.user_id})",
            type_msg=TypeMsg.INFO,
        )
        return TransitionResult(order=updated, previous_status=order.status, ledger_error=ledger_error)

    async def cancel_order(self, order_id: str, actor: Actor) -> TransitionResult:
        """Отменяет заказ (PENDING, ACCEPTED или PICKED_UP)."""
        return await self.transition(order_id, OrderStatus.CANCELLED, actor)

    # =========================================================================
    # СОБЫТИЯ
    # =========================================================================

    async def _publish_transition(self, before: Order, after: Order, actor: Actor) -> None:
        payload = {
            "order": after.model_dump(mode="json"),
            "previous_status": before.status.value,
            "new_status": after.status.value,
            "actor_id": actor.user_id,
            "actor_role": actor.role.value,
        }
        await self._publish(EventTypes.ORDER_STATUS_CHANGED, payload)

        if after.status == OrderStatus.ACCEPTED:
            await self._publish(EventTypes.ORDER_ACCEPTED, payload)
        elif after.status == OrderStatus.CANCELLED and before.driver_id:
            await self._publish(EventTypes.ORDER_CANCELLED, {
                **payload,
                "previous_driver_id": before.driver_id,
            })

    async def _publish(self, event_type: str, payload: dict[str, Any]) -> None:
        """Публикует событие; сбой шины не влияет на уже записанное состояние."""
        try:
            await self._event_bus.publish(DomainEvent(event_type=event_type, payload=payload))
        except Exception as pub_error:
            await log_error(f"Не удалось опубликовать {event_type}: {pub_error}")
