# tests/worker/test_notifications_worker.py
import pytest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from src.common.constants import CommissionStatus, OrderStatus
from src.core.billing.models import Payment
from src.core.orders.models import Order
from src.infra.event_bus import DomainEvent, EventTypes
from src.worker.notifications import NotificationWorker

OCCURRED = "2026-03-01T10:00:00Z"
OCCURRED_AT = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def dispatcher():
    mock = MagicMock()
    for method in (
        "notify_new_orders_available",
        "notify_status_change",
        "notify_order_assigned",
        "notify_order_cancelled_driver",
        "notify_payment_reviewed",
        "notify_payment_issue",
        "notify_driver_deactivated",
        "notify_driver_reactivated",
    ):
        setattr(mock, method, AsyncMock())
    return mock


@pytest.fixture
def worker(dispatcher):
    return NotificationWorker(dispatcher, event_bus=AsyncMock())


@pytest.fixture
def order(pickup_address, delivery_address, package_details):
    return Order(
        tracking_number="SHP123456",
        status=OrderStatus.ACCEPTED,
        client_id="client-1",
        driver_id="driver-1",
        price=Decimal("100.00"),
        pickup_address=pickup_address,
        delivery_address=delivery_address,
        package_details=package_details,
    )


def _event(event_type, payload):
    return DomainEvent(event_type=event_type, timestamp=OCCURRED, payload=payload)


def test_subscriptions(worker):
    assert set(worker.subscriptions) == {
        EventTypes.ORDER_CREATED,
        EventTypes.ORDER_STATUS_CHANGED,
        EventTypes.ORDER_ACCEPTED,
        EventTypes.ORDER_CANCELLED,
        EventTypes.PAYMENT_CONFIRMED,
        EventTypes.PAYMENT_REJECTED,
        EventTypes.PAYMENT_ISSUE_REPORTED,
        EventTypes.DRIVER_DEACTIVATED,
        EventTypes.DRIVER_REACTIVATED,
    }
    assert EventTypes.PAYMENT_CREATED not in worker.subscriptions


@pytest.mark.asyncio
async def test_order_created(worker, dispatcher, order):
    await worker.handle_event(_event(EventTypes.ORDER_CREATED, {"order": order.model_dump(mode="json")}))

    dispatcher.notify_new_orders_available.assert_awaited_once_with(created_at=OCCURRED_AT)


@pytest.mark.asyncio
async def test_status_changed(worker, dispatcher, order):
    await worker.handle_event(_event(EventTypes.ORDER_STATUS_CHANGED, {
        "order": order.model_dump(mode="json"),
        "previous_status": "PENDING",
        "new_status": "ACCEPTED",
    }))

    args = dispatcher.notify_status_change.await_args
    assert args.args[0].id == order.id
    assert args.args[1:] == (OrderStatus.PENDING, OrderStatus.ACCEPTED)
    assert args.kwargs == {"created_at": OCCURRED_AT}


@pytest.mark.asyncio
async def test_order_accepted(worker, dispatcher, order):
    await worker.handle_event(_event(EventTypes.ORDER_ACCEPTED, {"order": order.model_dump(mode="json")}))

    args = dispatcher.notify_order_assigned.await_args
    assert args.args[0] == "driver-1"
    assert args.args[1].tracking_number == "SHP123456"


@pytest.mark.asyncio
async def test_order_cancelled_with_driver(worker, dispatcher, order):
    cancelled = order.model_copy(update={"status": OrderStatus.CANCELLED, "driver_id": None})

    await worker.handle_event(_event(EventTypes.ORDER_CANCELLED, {
        "order": cancelled.model_dump(mode="json"),
        "previous_status": "ACCEPTED",
        "new_status": "CANCELLED",
        "previous_driver_id": "driver-1",
    }))

    args = dispatcher.notify_order_cancelled_driver.await_args
    assert args.args[0] == "driver-1"
    assert args.args[2] == OrderStatus.ACCEPTED


@pytest.mark.asyncio
async def test_order_cancelled_without_driver(worker, dispatcher, order):
    await worker.handle_event(_event(EventTypes.ORDER_CANCELLED, {
        "order": order.model_dump(mode="json"),
        "previous_status": "PENDING",
    }))

    dispatcher.notify_order_cancelled_driver.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("event_type,status", [
    (EventTypes.PAYMENT_CONFIRMED, CommissionStatus.CONFIRMED),
    (EventTypes.PAYMENT_REJECTED, CommissionStatus.REJECTED),
])
async def test_payment_reviewed(worker, dispatcher, event_type, status):
    payment = Payment(order_id="o1", driver_id="driver-1", amount=Decimal("2.50"), status=status)

    await worker.handle_event(_event(event_type, {
        "payment": payment.model_dump(mode="json"),
        "tracking_number": "SHP1",
    }))

    args = dispatcher.notify_payment_reviewed.await_args
    assert args.args[0].status == status
    assert args.args[1] == "SHP1"


@pytest.mark.asyncio
async def test_payment_issue(worker, dispatcher):
    payment = Payment(order_id="o1", driver_id="driver-1", amount=Decimal("2.50"), has_issue=True)

    await worker.handle_event(_event(EventTypes.PAYMENT_ISSUE_REPORTED, {
        "payment": payment.model_dump(mode="json"),
        "tracking_number": "SHP1",
        "driver_name": "Bob Driver",
        "issue_details": "Bank declined",
    }))

    args = dispatcher.notify_payment_issue.await_args
    assert args.args[1:] == ("Bob Driver", "Bank declined", "SHP1")


@pytest.mark.asyncio
async def test_driver_account_events(worker, dispatcher):
    await worker.handle_event(_event(EventTypes.DRIVER_DEACTIVATED, {"driver_id": "driver-1", "unpaid_orders": 3}))
    await worker.handle_event(_event(EventTypes.DRIVER_REACTIVATED, {"driver_id": "driver-1"}))

    dispatcher.notify_driver_deactivated.assert_awaited_once_with("driver-1", 3, created_at=OCCURRED_AT)
    dispatcher.notify_driver_reactivated.assert_awaited_once_with("driver-1", created_at=OCCURRED_AT)


@pytest.mark.asyncio
async def test_unknown_event_ignored(worker, dispatcher):
    await worker.handle_event(_event(EventTypes.PAYMENT_CREATED, {}))

    for method in ("notify_new_orders_available", "notify_payment_reviewed"):
        getattr(dispatcher, method).assert_not_awaited()
