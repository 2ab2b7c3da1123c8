# tests/core/test_orders_service.py
"""
Тесты жизненного цикла заказа.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import RedisError

from src.common.constants import OrderStatus, UserRole
from src.common.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from src.core.orders.service import OrderLifecycle
from src.core.users.models import Actor
from src.infra.event_bus import EventTypes


class TestCreateOrder:
    @pytest.mark.asyncio
    async def test_creates_pending_order(self, harness, order_factory, client) -> None:
        order = await order_factory("250.00")

        assert order.status == OrderStatus.PENDING
        assert order.client_id == client.id
        assert order.driver_id is None
        assert order.price == Decimal("250.00")
        assert order.tracking_number.startswith("SHP")
        assert harness.event_bus.types() == [EventTypes.ORDER_CREATED]

    @pytest.mark.asyncio
    async def test_order_is_cached(self, harness, order_factory) -> None:
        order = await order_factory()
        assert f"order:{order.id}" in harness.cache.data

    @pytest.mark.asyncio
    async def test_invalid_price(self, harness, client, pickup_address, delivery_address, package_details) -> None:
        with pytest.raises(ValidationError):
            await harness.lifecycle.create_order(client.id, pickup_address, delivery_address, package_details, "abc")

    @pytest.mark.asyncio
    async def test_invalid_package(self, harness, client, pickup_address, delivery_address) -> None:
        with pytest.raises(ValidationError):
            await harness.lifecycle.create_order(client.id, pickup_address, delivery_address, {"weight": -1}, "10")

    @pytest.mark.asyncio
    async def test_tracking_number_collision_is_retried(self, harness, order_factory) -> None:
        numbers = iter(["SHP0000001", "SHP0000001", "SHP0000002"])
        with patch.object(OrderLifecycle, "_generate_tracking_number", side_effect=lambda: next(numbers)):
            first = await order_factory()
            second = await order_factory()

        assert first.tracking_number == "SHP0000001"
        assert second.tracking_number == "SHP0000002"

    @pytest.mark.asyncio
    async def test_tracking_number_attempts_exhausted(self, harness, order_factory) -> None:
        with patch.object(OrderLifecycle, "_generate_tracking_number", return_value="SHP0000001"):
            await order_factory()
            with pytest.raises(ConflictError):
                await order_factory()

    def test_tracking_number_format(self, harness) -> None:
        number = harness.lifecycle._generate_tracking_number()
        assert number.startswith("SHP")
        assert number[3:].isdigit()
        assert 9 <= len(number) <= 12


class TestGetOrder:
    @pytest.mark.asyncio
    async def test_reads_from_cache(self, harness, order_factory) -> None:
        order = await order_factory()
        harness.store.orders.clear()

        cached = await harness.lifecycle.get_order(order.id)

        assert cached.id == order.id

    @pytest.mark.asyncio
    async def test_not_found(self, harness) -> None:
        with pytest.raises(NotFoundError):
            await harness.lifecycle.get_order("missing")

    @pytest.mark.asyncio
    async def test_redis_failure_falls_back_to_db(self, harness, order_factory) -> None:
        order = await order_factory()
        harness.cache.get_model = AsyncMock(side_effect=RedisError("down"))
        harness.cache.set_model = AsyncMock(side_effect=RedisError("down"))

        loaded = await harness.lifecycle.get_order(order.id)

        assert loaded.id == order.id


class TestTransition:
    @pytest.mark.asyncio
    async def test_full_delivery_path(self, harness, order_factory, driver, deliver) -> None:
        order = await order_factory("100.00")

        result = await deliver(order.id, driver)

        assert result.order.status == OrderStatus.DELIVERED
        assert result.previous_status == OrderStatus.IN_TRANSIT
        assert result.order.actual_delivery_time is not None
        assert result.ledger_error is None
        payment = await harness.payments.get_by_order(order.id)
        assert payment is not None
        assert payment.amount == Decimal("2.50")

    @pytest.mark.asyncio
    async def test_unknown_status(self, harness, order_factory, admin_actor) -> None:
        order = await order_factory()
        with pytest.raises(ValidationError):
            await harness.lifecycle.transition(order.id, "TELEPORTED", admin_actor)

    @pytest.mark.asyncio
    async def test_missing_order(self, harness, admin_actor) -> None:
        with pytest.raises(NotFoundError):
            await harness.lifecycle.transition("missing", OrderStatus.CANCELLED, admin_actor)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", [UserRole.CLIENT, UserRole.DRIVER, UserRole.ADMIN])
    async def test_skip_to_delivered_is_validation_error_for_every_role(
        self, harness, order_factory, client, role,
    ) -> None:
        order = await order_factory()
        actor = Actor(user_id=client.id if role == UserRole.CLIENT else "someone", role=role)

        with pytest.raises(ValidationError):
            await harness.lifecycle.transition(order.id, OrderStatus.DELIVERED, actor)

    @pytest.mark.asyncio
    async def test_driver_cannot_accept_directly(self, harness, order_factory, driver) -> None:
        order = await order_factory()
        with pytest.raises(PermissionDeniedError):
            await harness.lifecycle.transition(order.id, OrderStatus.ACCEPTED, driver.as_actor())

    @pytest.mark.asyncio
    async def test_admin_cannot_assign_without_eligibility_check(
        self, harness, order_factory, driver, admin_actor,
    ) -> None:
        order = await order_factory()

        with pytest.raises(PermissionDeniedError):
            await harness.lifecycle.transition(
                order.id, OrderStatus.ACCEPTED, admin_actor, driver_id=driver.id,
            )

        stored = await harness.orders.get_by_id(order.id)
        assert stored.status == OrderStatus.PENDING
        assert stored.driver_id is None

    @pytest.mark.asyncio
    async def test_stale_expected_status_is_conflict(self, harness, order_factory, client, admin_actor) -> None:
        order = await order_factory()
        original = harness.orders.update_status_if

        async def race(order_id, expected, target, **kwargs):
            # Параллельная отмена успевает раньше
            await original(order_id, expected, OrderStatus.CANCELLED, driver_id=None)
            return await original(order_id, expected, target, **kwargs)

        harness.orders.update_status_if = race

        with pytest.raises(ConflictError) as exc_info:
            await harness.lifecycle.cancel_order(order.id, client.as_actor())

        assert exc_info.value.details == {"expected": "PENDING", "actual": "CANCELLED"}

    @pytest.mark.asyncio
    async def test_status_change_event_payload(self, harness, order_factory, client) -> None:
        order = await order_factory()

        await harness.lifecycle.cancel_order(order.id, client.as_actor())

        event = harness.event_bus.published[-1]
        assert event.event_type == EventTypes.ORDER_STATUS_CHANGED
        assert event.payload["previous_status"] == "PENDING"
        assert event.payload["new_status"] == "CANCELLED"
        assert event.payload["actor_role"] == "CLIENT"

    @pytest.mark.asyncio
    async def test_cached_order_refreshed_after_write(self, harness, order_factory, client) -> None:
        order = await order_factory()

        await harness.lifecycle.cancel_order(order.id, client.as_actor())
        cached = await harness.lifecycle.get_order(order.id)

        assert cached.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_transition(self, harness, order_factory, client) -> None:
        order = await order_factory()
        harness.event_bus.publish = AsyncMock(side_effect=ConnectionError("broker down"))

        result = await harness.lifecycle.cancel_order(order.id, client.as_actor())

        assert result.order.status == OrderStatus.CANCELLED


class TestCancellation:
    @pytest.mark.asyncio
    async def test_client_cancels_accepted_order(self, harness, order_factory, client, driver) -> None:
        order = await order_factory()
        await harness.assignment.accept_order(order.id, driver.id)

        result = await harness.lifecycle.cancel_order(order.id, client.as_actor())

        assert result.order.status == OrderStatus.CANCELLED
        assert result.order.driver_id is None
        cancelled = [e for e in harness.event_bus.published if e.event_type == EventTypes.ORDER_CANCELLED]
        assert cancelled[0].payload["previous_driver_id"] == driver.id

    @pytest.mark.asyncio
    async def test_pending_cancel_has_no_driver_event(self, harness, order_factory, client) -> None:
        order = await order_factory()

        await harness.lifecycle.cancel_order(order.id, client.as_actor())

        assert EventTypes.ORDER_CANCELLED not in harness.event_bus.types()

    @pytest.mark.asyncio
    async def test_driver_cancels_picked_up(self, harness, order_factory, driver) -> None:
        order = await order_factory()
        await harness.assignment.accept_order(order.id, driver.id)
        await harness.lifecycle.transition(order.id, OrderStatus.PICKED_UP, driver.as_actor())

        result = await harness.lifecycle.cancel_order(order.id, driver.as_actor())

        assert result.previous_status == OrderStatus.PICKED_UP

    @pytest.mark.asyncio
    async def test_in_transit_cannot_be_cancelled(self, harness, order_factory, driver, admin_actor) -> None:
        order = await order_factory()
        await harness.assignment.accept_order(order.id, driver.id)
        await harness.lifecycle.transition(order.id, OrderStatus.PICKED_UP, driver.as_actor())
        await harness.lifecycle.transition(order.id, OrderStatus.IN_TRANSIT, driver.as_actor())

        with pytest.raises(ValidationError):
            await harness.lifecycle.cancel_order(order.id, admin_actor)

    @pytest.mark.asyncio
    async def test_cancelled_is_terminal(self, harness, order_factory, client, admin_actor) -> None:
        order = await order_factory()
        await harness.lifecycle.cancel_order(order.id, client.as_actor())

        with pytest.raises(ValidationError):
            await harness.lifecycle.cancel_order(order.id, admin_actor)


class TestLedgerFailure:
    @pytest.mark.asyncio
    async def test_delivered_status_kept_with_warning(self, harness, order_factory, driver, deliver) -> None:
        order = await order_factory()
        harness.payments.create_if_absent = AsyncMock(side_effect=RuntimeError("ledger offline"))

        result = await deliver(order.id, driver)

        assert result.order.status == OrderStatus.DELIVERED
        assert result.has_warning
        assert "ledger offline" in result.ledger_error
        stored = await harness.orders.get_by_id(order.id)
        assert stored.status == OrderStatus.DELIVERED
