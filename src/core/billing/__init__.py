# src/core/billing/__init__.py
"""
Домен биллинга.
Комиссия платформы с доставленных заказов и контроль должников.
"""

from src.core.billing.models import CommissionQuote, Payment, compute_commission
from src.core.billing.repository import PaymentRepository
from src.core.billing.service import PaymentLedger

__all__ = [
    "CommissionQuote",
    "Payment",
    "compute_commission",
    "PaymentRepository",
    "PaymentLedger",
]
