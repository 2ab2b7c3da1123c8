# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UserRole(str, Enum):
    """Роли пользователей."""
    CLIENT = "CLIENT"
    DRIVER = "DRIVER"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value: "str | UserRole") -> "UserRole":
        """Нормализует роль (без учёта регистра)."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


class OrderStatus(str, Enum):
    """Статусы заказа."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: "str | OrderStatus") -> "OrderStatus":
        """Нормализует статус (без учёта регистра, пробелы -> '_')."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper().replace(" ", "_"))


# Статусы, в которых заказ закреплён за водителем и ещё не доставлен
ACTIVE_DRIVER_STATUSES: tuple[OrderStatus, ...] = (
    OrderStatus.ACCEPTED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
)

TERMINAL_STATUSES: tuple[OrderStatus, ...] = (
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
)


class ClientPaymentStatus(str, Enum):
    """Статус оплаты доставки клиентом (не комиссия водителя)."""
    PENDING = "PENDING"
    PAID = "PAID"
    REFUNDED = "REFUNDED"


class CommissionStatus(str, Enum):
    """Статус комиссионного платежа водителя."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class NotificationType(str, Enum):
    """Типы уведомлений."""
    NEW_ORDERS_AVAILABLE = "NEW_ORDERS_AVAILABLE"
    ORDER_ASSIGNED = "ORDER_ASSIGNED"
    ORDER_STATUS_UPDATE = "ORDER_STATUS_UPDATE"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    PAYMENT_REVIEWED = "PAYMENT_REVIEWED"
    PAYMENT_ISSUE = "PAYMENT_ISSUE"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"


# Плейсхолдер способа оплаты до того, как водитель отправит перевод
PENDING_PAYMENT_METHOD = "PENDING"
