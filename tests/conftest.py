# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")

from src.common.constants import UserRole
from src.config.loader import CommissionSettings, OrderSettings
from src.core.assignment.service import AssignmentGuard
from src.core.billing.service import PaymentLedger
from src.core.notifications.service import NotificationDispatcher
from src.core.orders.service import OrderLifecycle
from src.core.users.models import Actor, User
from tests.fakes import (
    InMemoryCache,
    InMemoryNotificationRepository,
    InMemoryOrderRepository,
    InMemoryPaymentRepository,
    InMemoryStore,
    InMemoryUserRepository,
    RecordingEventBus,
)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "shipment_dispatch_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "ENVIRONMENT": "test",
        "LOG_LEVEL": "DEBUG",
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "colored",
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "shipment_dispatch_test",
        "DB_USER": "postgres",
        "DB_MIN_POOL_SIZE": 2,
        "DB_MAX_POOL_SIZE": 5,
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "REDIS_NAMESPACE": "shipments_test",
        "ORDER_TTL": 600,
        "RABBITMQ_HOST": "localhost",
        "RABBITMQ_PORT": 5672,
        "RABBITMQ_EXCHANGE": "shipments.test",
        "COMMISSION_RATE_PERCENT": 2.5,
        "MAX_UNPAID_ORDERS": 3,
        "MAX_UNCONFIRMED_PAYMENTS": 3,
        "TRACKING_NUMBER_PREFIX": "TST",
        "TRACKING_NUMBER_ATTEMPTS": 4,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


@pytest.fixture
def commission_settings() -> CommissionSettings:
    return CommissionSettings(
        COMMISSION_RATE_PERCENT=Decimal("2.5"),
        MAX_UNPAID_ORDERS=3,
        MAX_UNCONFIRMED_PAYMENTS=3,
    )


@pytest.fixture
def order_settings() -> OrderSettings:
    return OrderSettings(TRACKING_NUMBER_PREFIX="SHP", TRACKING_NUMBER_ATTEMPTS=5)


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> MagicMock:
    """Мок менеджера базы данных."""
    db = MagicMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="INSERT 0 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.get_model = AsyncMock(return_value=None)
    redis.set_model = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=True)
    event_bus.subscribe = AsyncMock(return_value=None)
    event_bus.is_connected = True
    return event_bus


# =============================================================================
# IN-MEMORY ПОДСИСТЕМА
# =============================================================================

@dataclass
class Harness:
    """Сервисы подсистемы над in-memory хранилищем."""
    store: InMemoryStore
    orders: InMemoryOrderRepository
    payments: InMemoryPaymentRepository
    users: InMemoryUserRepository
    notifications: InMemoryNotificationRepository
    event_bus: RecordingEventBus
    cache: InMemoryCache
    lifecycle: OrderLifecycle
    assignment: AssignmentGuard
    ledger: PaymentLedger
    dispatcher: NotificationDispatcher


@pytest.fixture
def harness(commission_settings: CommissionSettings, order_settings: OrderSettings) -> Harness:
    store = InMemoryStore()
    orders = InMemoryOrderRepository(store)
    payments = InMemoryPaymentRepository(store)
    users = InMemoryUserRepository(store)
    notifications = InMemoryNotificationRepository(store)
    event_bus = RecordingEventBus()
    cache = InMemoryCache()

    ledger = PaymentLedger(
        payments, orders, users, event_bus,
        commission_settings=commission_settings, redis=cache,
    )
    lifecycle = OrderLifecycle(
        orders, cache, event_bus,
        ledger=ledger, order_settings=order_settings, cache_ttl=60,
    )
    assignment = AssignmentGuard(lifecycle, orders, payments, users, commission_settings=commission_settings)
    dispatcher = NotificationDispatcher(notifications, users, orders)

    return Harness(
        store=store,
        orders=orders,
        payments=payments,
        users=users,
        notifications=notifications,
        event_bus=event_bus,
        cache=cache,
        lifecycle=lifecycle,
        assignment=assignment,
        ledger=ledger,
        dispatcher=dispatcher,
    )


@pytest.fixture
def client(harness: Harness) -> User:
    return harness.store.add_user(name="Alice Client", email="alice@example.com", role=UserRole.CLIENT)


@pytest.fixture
def driver(harness: Harness) -> User:
    return harness.store.add_user(
        name="Bob Driver", email="bob@example.com", role=UserRole.DRIVER, is_confirmed=True,
    )


@pytest.fixture
def second_driver(harness: Harness) -> User:
    return harness.store.add_user(
        name="Carol Driver", email="carol@example.com", role=UserRole.DRIVER, is_confirmed=True,
    )


@pytest.fixture
def admin(harness: Harness) -> User:
    return harness.store.add_user(name="Dana Admin", email="dana@example.com", role=UserRole.ADMIN)


@pytest.fixture
def admin_actor(admin: User) -> Actor:
    return admin.as_actor()


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def pickup_address() -> dict[str, Any]:
    return {"street": "1 Main St", "city": "Springfield", "state": "IL", "zip_code": "62701", "country": "US"}


@pytest.fixture
def delivery_address() -> dict[str, Any]:
    return {"street": "500 Oak Ave", "city": "Shelbyville", "state": "IL", "zip_code": "62565", "country": "US"}


@pytest.fixture
def package_details() -> dict[str, Any]:
    return {
        "weight": 2.5,
        "dimensions": {"length": 30, "width": 20, "height": 10},
        "description": "Books",
        "fragile": False,
    }


@pytest.fixture
def order_factory(harness: Harness, client: User, pickup_address, delivery_address, package_details):
    """Создаёт заказ клиента через жизненный цикл."""
    async def create(price: str = "100.00", client_id: str | None = None):
        return await harness.lifecycle.create_order(
            client_id or client.id,
            pickup_address,
            delivery_address,
            package_details,
            Decimal(price),
        )
    return create


@pytest.fixture
def deliver(harness: Harness):
    """Проводит заказ водителем от PENDING до DELIVERED."""
    from src.common.constants import OrderStatus

    async def run(order_id: str, driver: User):
        await harness.assignment.accept_order(order_id, driver.id)
        actor = driver.as_actor()
        await harness.lifecycle.transition(order_id, OrderStatus.PICKED_UP, actor)
        await harness.lifecycle.transition(order_id, OrderStatus.IN_TRANSIT, actor)
        return await harness.lifecycle.transition(order_id, OrderStatus.DELIVERED, actor)
    return run
