# src/core/__init__.py
"""
Доменный слой (Core Domain).
Бизнес-логика заказов, назначения водителей, комиссий и уведомлений.
Инфраструктура передаётся в сервисы через конструктор.
"""

from src.core.assignment import AssignmentGuard
from src.core.billing import PaymentLedger
from src.core.notifications import NotificationDispatcher
from src.core.orders import Order, OrderLifecycle
from src.core.users import Actor, User

__all__ = [
    "AssignmentGuard",
    "PaymentLedger",
    "NotificationDispatcher",
    "Order",
    "OrderLifecycle",
    "Actor",
    "User",
]
