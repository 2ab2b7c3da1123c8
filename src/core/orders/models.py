# src/core/orders/models.py
"""
Модели данных заказов на доставку.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from src.common.constants import (
    ACTIVE_DRIVER_STATUSES,
    TERMINAL_STATUSES,
    ClientPaymentStatus,
    OrderStatus,
)


class Address(BaseModel):
    """Адрес забора или доставки."""

    street: str
    city: str
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class Dimensions(BaseModel):
    length: float = Field(..., gt=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class PackageDetails(BaseModel):
    """Описание посылки."""

    weight: float = Field(..., gt=0, description="Вес, кг")
    dimensions: Optional[Dimensions] = None
    description: Optional[str] = None
    fragile: bool = False


class Order(BaseModel):
    """Модель заказа на доставку."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID заказа")
    tracking_number: str = Field(..., description="Трекинг-номер")
    status: OrderStatus = Field(OrderStatus.PENDING, description="Статус заказа")

    client_id: str = Field(..., description="ID клиента")
    # Заполнен только в ACCEPTED, PICKED_UP, IN_TRANSIT, DELIVERED
    driver_id: Optional[str] = Field(None, description="ID назначенного водителя")

    price: Decimal = Field(..., ge=0, description="Стоимость доставки")
    payment_status: ClientPaymentStatus = Field(
        ClientPaymentStatus.PENDING,
        description="Оплата доставки клиентом (не комиссия)",
    )

    pickup_address: Address
    delivery_address: Address
    package_details: PackageDetails

    commission_paid: bool = Field(False, description="Подтверждена ли комиссия водителя")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    actual_delivery_time: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: str | OrderStatus) -> OrderStatus:
        return OrderStatus.parse(v)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active_for_driver(self) -> bool:
        """Заказ закреплён за водителем и ещё не доставлен."""
        return self.status in ACTIVE_DRIVER_STATUSES


def order_cache_key(order_id: str) -> str:
    """Ключ Redis для кэша заказа."""
    return f"order:{order_id}"


class OrderCreateDTO(BaseModel):
    """DTO для создания заказа."""

    client_id: str
    pickup_address: Address
    delivery_address: Address
    package_details: PackageDetails
    price: Decimal = Field(..., ge=0)


class TransitionResult(BaseModel):
    """
    Результат смены статуса.

    ledger_error заполняется, когда статус DELIVERED записан, но комиссионный
    платёж создать не удалось: статус не откатывается, вызывающий получает
    предупреждение вместо ошибки.
    """

    order: Order
    previous_status: OrderStatus
    ledger_error: Optional[str] = None

    @property
    def has_warning(self) -> bool:
        return self.ledger_error is not None
