# src/core/orders/state_machine.py
"""
Граф статусов заказа и правила ролей.
Чистые функции без ввода-вывода: сервис вызывает их перед условной записью.
"""

from __future__ import annotations

from typing import Optional

from src.common.constants import OrderStatus, UserRole
from src.common.exceptions import PermissionDeniedError, ValidationError
from src.core.orders.models import Order
from src.core.users.models import Actor


class OrderStateMachine:
    ALLOWED_TRANSITIONS: dict[OrderStatus, tuple[OrderStatus, ...]] = {
        OrderStatus.PENDING: (OrderStatus.ACCEPTED, OrderStatus.CANCELLED),
        OrderStatus.ACCEPTED: (OrderStatus.PICKED_UP, OrderStatus.CANCELLED),
        OrderStatus.PICKED_UP: (OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED),
        OrderStatus.IN_TRANSIT: (OrderStatus.DELIVERED,),
        OrderStatus.DELIVERED: (),
        OrderStatus.CANCELLED: (),
    }

    # Клиент может отменить заказ, пока водитель не забрал посылку
    CLIENT_CANCELLABLE: tuple[OrderStatus, ...] = (OrderStatus.PENDING, OrderStatus.ACCEPTED)

    DRIVER_FORWARD: dict[OrderStatus, OrderStatus] = {
        OrderStatus.ACCEPTED: OrderStatus.PICKED_UP,
        OrderStatus.PICKED_UP: OrderStatus.IN_TRANSIT,
        OrderStatus.IN_TRANSIT: OrderStatus.DELIVERED,
    }
    DRIVER_CANCELLABLE: tuple[OrderStatus, ...] = (OrderStatus.ACCEPTED, OrderStatus.PICKED_UP)

    @staticmethod
    def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
        return target in OrderStateMachine.ALLOWED_TRANSITIONS.get(current, ())

    @staticmethod
    def parse_target(value: str | OrderStatus) -> OrderStatus:
        """
        Нормализует целевой статус.

        Raises:
            ValidationError: Значение не является статусом заказа
        """
        try:
            return OrderStatus.parse(value)
        except ValueError:
            raise ValidationError(
                f"Неизвестный статус заказа: {value!r}",
                {"allowed": [s.value for s in OrderStatus]},
            ) from None

    @staticmethod
    def ensure_edge(current: OrderStatus, target: OrderStatus) -> None:
        """
        Raises:
            ValidationError: Переход отсутствует в графе
        """
        if not OrderStateMachine.can_transition(current, target):
            raise ValidationError(
                f"Недопустимый переход {current.value} -> {target.value}",
                {"from": current.value, "to": target.value},
            )

    @staticmethod
    def ensure_actor_allowed(
        order: Order,
        target: OrderStatus,
        actor: Actor,
        *,
        driver_id: Optional[str] = None,
        eligibility_gated: bool = False,
    ) -> None:
        """
        Проверяет право актора на переход (ребро графа уже проверено).

        Args:
            order: Текущее состояние заказа
            target: Целевой статус
            actor: Вызывающий
            driver_id: Назначаемый водитель для PENDING -> ACCEPTED
            eligibility_gated: Переход идёт через проверку допуска водителя

        Raises:
            PermissionDeniedError: Роль или принадлежность не позволяют переход
        """
        current = order.status

        if actor.role == UserRole.ADMIN:
            if target == OrderStatus.ACCEPTED and not driver_id:
                raise PermissionDeniedError(
                    "Для назначения заказа администратор должен указать водителя",
                    {"order_id": order.id},
                )
            if target == OrderStatus.ACCEPTED and not eligibility_gated:
                raise PermissionDeniedError(
                    "Назначение водителя проходит только через проверку допуска",
                    {"order_id": order.id, "driver_id": driver_id},
                )
            return

        if actor.role == UserRole.CLIENT:
            if order.client_id != actor.user_id:
                raise PermissionDeniedError(
                    "Клиент может управлять только своими заказами",
                    {"order_id": order.id},
                )
            if target == OrderStatus.CANCELLED and current in OrderStateMachine.CLIENT_CANCELLABLE:
                return
            raise PermissionDeniedError(
                f"Клиент не может перевести заказ {current.value} -> {target.value}",
                {"order_id": order.id},
            )

        if actor.role == UserRole.DRIVER:
            if current == OrderStatus.PENDING and target == OrderStatus.ACCEPTED:
                if eligibility_gated and driver_id == actor.user_id:
                    return
                raise PermissionDeniedError(
                    "Водитель принимает заказ только через проверку допуска",
                    {"order_id": order.id},
                )
            if order.driver_id != actor.user_id:
                raise PermissionDeniedError(
                    "Заказ назначен другому водителю",
                    {"order_id": order.id},
                )
            if OrderStateMachine.DRIVER_FORWARD.get(current) == target:
                return
            if target == OrderStatus.CANCELLED and current in OrderStateMachine.DRIVER_CANCELLABLE:
                return
            raise PermissionDeniedError(
                f"Водитель не может перевести заказ {current.value} -> {target.value}",
                {"order_id": order.id},
            )

        raise PermissionDeniedError(f"Неизвестная роль: {actor.role}")
