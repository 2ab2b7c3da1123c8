# tests/core/test_scenarios.py
"""
Сквозные сценарии: сервисы, шина событий и воркер уведомлений вместе.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
import pytest_asyncio

from src.common.constants import CommissionStatus, NotificationType, OrderStatus
from src.worker.notifications import NotificationWorker


@pytest_asyncio.fixture
async def worker(harness):
    worker = NotificationWorker(harness.dispatcher, event_bus=harness.event_bus)
    await worker.start()
    yield worker
    await worker.stop()


def _for(harness, user_id: str) -> list:
    return [n for n in harness.store.notifications if n.user_id == user_id]


class TestDeliveryScenario:
    @pytest.mark.asyncio
    async def test_client_follows_every_status(self, harness, worker, order_factory, client, driver, deliver) -> None:
        order = await order_factory()
        await harness.event_bus.deliver_pending()
        await deliver(order.id, driver)
        await harness.event_bus.deliver_pending()

        client_updates = [n for n in _for(harness, client.id) if n.type == NotificationType.ORDER_STATUS_UPDATE]
        assert [n.data["new_status"] for n in client_updates] == [
            "ACCEPTED", "PICKED_UP", "IN_TRANSIT", "DELIVERED",
        ]
        assert client_updates[-1].title == "Order Delivered"

        driver_types = [n.type for n in _for(harness, driver.id)]
        assert NotificationType.NEW_ORDERS_AVAILABLE in driver_types
        assert NotificationType.ORDER_ASSIGNED in driver_types

    @pytest.mark.asyncio
    async def test_notification_time_is_event_time(self, harness, worker, order_factory, client) -> None:
        order = await order_factory()
        await harness.lifecycle.cancel_order(order.id, client.as_actor())
        await harness.event_bus.deliver_pending()

        changed = next(e for e in harness.event_bus.published if e.payload.get("new_status") == "CANCELLED")
        cancelled = next(n for n in _for(harness, client.id) if n.title == "Order Cancelled")
        assert cancelled.created_at == changed.occurred_at

    @pytest.mark.asyncio
    async def test_cancel_notifies_removed_driver(self, harness, worker, order_factory, client, driver) -> None:
        order = await order_factory()
        await harness.assignment.accept_order(order.id, driver.id)

        await harness.lifecycle.cancel_order(order.id, client.as_actor())
        await harness.event_bus.deliver_pending()

        cancelled = [n for n in _for(harness, driver.id) if n.type == NotificationType.ORDER_CANCELLED]
        assert len(cancelled) == 1
        assert cancelled[0].data == {"order_id": order.id, "previous_status": "ACCEPTED"}
        stored = await harness.orders.get_by_id(order.id)
        assert stored.status == OrderStatus.CANCELLED
        assert stored.driver_id is None


class TestCommissionScenario:
    @pytest.mark.asyncio
    async def test_delivery_then_admin_confirmation(
        self, harness, worker, order_factory, driver, admin_actor, deliver,
    ) -> None:
        order = await order_factory("200.00")
        await deliver(order.id, driver)

        payment = await harness.payments.get_by_order(order.id)
        assert payment.amount == Decimal("5.00")
        assert payment.status == CommissionStatus.PENDING
        assert not (await harness.lifecycle.get_order(order.id)).commission_paid

        confirmed = await harness.ledger.confirm_payment(payment.id, "CONFIRMED", None, admin_actor)

        assert confirmed.status == CommissionStatus.CONFIRMED
        assert (await harness.lifecycle.get_order(order.id)).commission_paid

    @pytest.mark.asyncio
    async def test_unpaid_driver_is_deactivated_and_told(self, harness, worker, order_factory, driver, deliver) -> None:
        for _ in range(3):
            order = await order_factory()
            await deliver(order.id, driver)
        await harness.event_bus.deliver_pending()

        deactivated = [n for n in _for(harness, driver.id) if n.title == "Account Deactivated"]
        assert len(deactivated) == 1
        assert deactivated[0].data == {"unpaid_orders": 3}

    @pytest.mark.asyncio
    async def test_payment_review_and_issue(
        self, harness, worker, order_factory, driver, admin, admin_actor, deliver,
    ) -> None:
        order = await order_factory()
        await deliver(order.id, driver)
        payment = await harness.ledger.submit_payment(order.id, driver.id, "BANK_TRANSFER", "TX-1")

        await harness.ledger.driver_report_issue(payment.id, "Transfer bounced", driver.as_actor())
        await harness.ledger.confirm_payment(payment.id, "CONFIRMED", "Received", admin_actor)
        await harness.event_bus.deliver_pending()

        issue = [n for n in _for(harness, admin.id) if n.type == NotificationType.PAYMENT_ISSUE]
        assert len(issue) == 1
        assert issue[0].message == (
            f"Driver Bob Driver has reported an issue with payment for order #{order.tracking_number}"
        )

        reviewed = [n for n in _for(harness, driver.id) if n.type == NotificationType.PAYMENT_REVIEWED]
        assert len(reviewed) == 1
        assert reviewed[0].message == (
            f"Your commission payment of 2.50 for order #{order.tracking_number} has been confirmed: Received"
        )

    @pytest.mark.asyncio
    async def test_reactivation_notice(self, harness, worker, order_factory, driver, admin_actor, deliver) -> None:
        for _ in range(3):
            order = await order_factory()
            await deliver(order.id, driver)
        for payment in list(harness.store.payments.values()):
            await harness.ledger.confirm_payment(payment.id, "CONFIRMED", None, admin_actor)

        await harness.ledger.reactivate_driver(driver.id, admin_actor)
        await harness.event_bus.deliver_pending()

        reactivated = [n for n in _for(harness, driver.id) if n.title == "Account Reactivated"]
        assert len(reactivated) == 1
        assert (await harness.users.get_by_id(driver.id)).is_active


class TestWorkerIsolation:
    @pytest.mark.asyncio
    async def test_dispatcher_failure_does_not_break_delivery(self, harness, worker, order_factory, client) -> None:
        async def broken(*args, **kwargs):
            raise RuntimeError("notification store down")

        harness.dispatcher.notify_new_orders_available = broken
        order = await order_factory()
        await harness.lifecycle.cancel_order(order.id, client.as_actor())

        await harness.event_bus.deliver_pending()

        assert any(n.title == "Order Cancelled" for n in _for(harness, client.id))
