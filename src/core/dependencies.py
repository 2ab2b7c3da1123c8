# src/core/dependencies.py
"""
Сборка доменных сервисов.
Инфраструктура передаётся явно, сервисы не обращаются к глобальным синглтонам.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.core.assignment.service import AssignmentGuard
from src.core.billing.repository import PaymentRepository
from src.core.billing.service import PaymentLedger
from src.core.notifications.repository import NotificationRepository
from src.core.notifications.service import NotificationDispatcher
from src.core.orders.repository import OrderRepository
from src.core.orders.service import OrderLifecycle
from src.core.users.repository import UserRepository
from src.infra.database import DatabaseManager
from src.infra.event_bus import EventBus
from src.infra.redis_client import RedisClient


@dataclass
class CoreServices:
    """Репозитории и сервисы подсистемы, собранные над одной инфраструктурой."""
    orders: OrderRepository
    payments: PaymentRepository
    users: UserRepository
    notifications: NotificationRepository
    lifecycle: OrderLifecycle
    assignment: AssignmentGuard
    ledger: PaymentLedger
    dispatcher: NotificationDispatcher


def build_core_services(
    db: DatabaseManager,
    redis: RedisClient,
    event_bus: EventBus,
) -> CoreServices:
    """
    Создаёт репозитории и сервисы.

    Args:
        db: Подключённый менеджер БД
        redis: Redis клиент (кэш заказов)
        event_bus: Шина событий

    Returns:
        CoreServices
    """
    orders = OrderRepository(db)
    payments = PaymentRepository(db)
    users = UserRepository(db)
    notifications = NotificationRepository(db)

    ledger = PaymentLedger(payments, orders, users, event_bus, redis=redis)
    lifecycle = OrderLifecycle(orders, redis, event_bus, ledger=ledger)
    assignment = AssignmentGuard(lifecycle, orders, payments, users)
    dispatcher = NotificationDispatcher(notifications, users, orders)

    return CoreServices(
        orders=orders,
        payments=payments,
        users=users,
        notifications=notifications,
        lifecycle=lifecycle,
        assignment=assignment,
        ledger=ledger,
        dispatcher=dispatcher,
    )
