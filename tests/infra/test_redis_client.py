# tests/infra/test_redis_client.py
"""
Тесты для клиента Redis.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.core.billing.models import Payment
from src.infra.redis_client import RedisClient


@pytest.fixture
def redis_client() -> RedisClient:
    client = RedisClient(namespace="shipments_test")
    client._client = AsyncMock()
    return client


class TestRedisClient:
    """Тесты для RedisClient."""

    def test_make_key(self) -> None:
        assert RedisClient(namespace="ns")._make_key("order:1") == "ns:order:1"

    def test_client_not_initialized(self) -> None:
        with pytest.raises(RuntimeError):
            _ = RedisClient().client

    @pytest.mark.asyncio
    async def test_set_uses_namespace_and_ttl(self, redis_client: RedisClient) -> None:
        redis_client._client.set.return_value = True

        assert await redis_client.set("order:1", "{}", ttl=60)

        redis_client._client.set.assert_awaited_once_with("shipments_test:order:1", "{}", ex=60)

    @pytest.mark.asyncio
    async def test_delete_uses_namespace(self, redis_client: RedisClient) -> None:
        redis_client._client.delete.return_value = 1

        assert await redis_client.delete("order:1") == 1

        redis_client._client.delete.assert_awaited_once_with("shipments_test:order:1")

    @pytest.mark.asyncio
    async def test_model_roundtrip(self, redis_client: RedisClient) -> None:
        payment = Payment(order_id="o1", driver_id="d1", amount=Decimal("2.50"))
        stored: dict[str, str] = {}

        async def fake_set(key, value, ex=None):
            stored[key] = value
            return True

        redis_client._client.set.side_effect = fake_set
        async def fake_get(key):
            return stored.get(key)

        redis_client._client.get.side_effect = fake_get

        await redis_client.set_model("payment:1", payment, ttl=30)
        loaded = await redis_client.get_model("payment:1", Payment)

        assert loaded == payment

    @pytest.mark.asyncio
    async def test_get_model_miss(self, redis_client: RedisClient) -> None:
        redis_client._client.get.return_value = None
        assert await redis_client.get_model("payment:missing", Payment) is None

    @pytest.mark.asyncio
    async def test_get_model_corrupted(self, redis_client: RedisClient) -> None:
        """Битая запись считается промахом кэша."""
        redis_client._client.get.return_value = '{"order_id": 1}'
        assert await redis_client.get_model("payment:1", Payment) is None

    @pytest.mark.asyncio
    async def test_health_check_failure(self, redis_client: RedisClient) -> None:
        redis_client._client.ping.side_effect = RedisConnectionError("down")
        assert await redis_client.health_check() is False

    @pytest.mark.asyncio
    async def test_disconnect(self, redis_client: RedisClient) -> None:
        inner = redis_client._client

        await redis_client.disconnect()

        inner.aclose.assert_awaited_once()
        with pytest.raises(RuntimeError):
            _ = redis_client.client
