# src/core/orders/__init__.py
"""
Домен заказов.
Модели, граф статусов, репозиторий и жизненный цикл заказа.
"""

from src.core.orders.models import (
    Address,
    Order,
    OrderCreateDTO,
    PackageDetails,
    TransitionResult,
)
from src.core.orders.repository import OrderRepository
from src.core.orders.service import OrderLifecycle
from src.core.orders.state_machine import OrderStateMachine

__all__ = [
    "Address",
    "Order",
    "OrderCreateDTO",
    "PackageDetails",
    "TransitionResult",
    "OrderRepository",
    "OrderLifecycle",
    "OrderStateMachine",
]
