# src/core/billing/models.py
"""
Модели комиссионных платежей водителей.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from src.common.constants import CommissionStatus, PENDING_PAYMENT_METHOD

CENT = Decimal("0.01")

# Статус в CommissionQuote, пока платёж по заказу не создан
UNPAID = "UNPAID"


def compute_commission(price: Decimal, rate_percent: Decimal) -> Decimal:
    """
    Комиссия с цены заказа, округлённая до копеек (half-up).

    Example:
        compute_commission(Decimal("33.33"), Decimal("2.5")) == Decimal("0.83")
    """
    return (Decimal(price) * Decimal(rate_percent) / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)


def placeholder_reference(order_id: str) -> str:
    """Референс платежа до того, как водитель отправил реквизиты перевода."""
    return f"{PENDING_PAYMENT_METHOD}-{order_id}"


class Payment(BaseModel):
    """Комиссионный платёж водителя по доставленному заказу (1:1 с заказом)."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID платежа")
    order_id: str = Field(..., description="ID заказа")
    driver_id: str = Field(..., description="ID водителя")
    amount: Decimal = Field(..., ge=0, description="Сумма комиссии")
    status: CommissionStatus = Field(CommissionStatus.PENDING)

    driver_confirmed: bool = Field(False, description="Водитель подтвердил перевод")
    has_issue: bool = False
    issue_details: Optional[str] = None

    payment_method: str = PENDING_PAYMENT_METHOD
    payment_reference: str = ""
    payment_screenshot: Optional[str] = None
    notes: Optional[str] = Field(None, description="Комментарий администратора")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        from_attributes = True


@dataclass
class CommissionQuote:
    """Комиссия по заказу для водителя или администратора."""
    order_id: str
    tracking_number: str
    price: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    # UNPAID, статус платежа или CONFIRMED, если комиссия уже зачтена
    payment_status: str
    commission_paid: bool
    payment: Optional[Payment] = None
