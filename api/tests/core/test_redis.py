"""Tests for the Redis helpers."""

from unittest.mock import AsyncMock, patch

import pytest
import redis.asyncio as redis

from src.core.redis import incr_window, ping_redis


class TestIncrWindow:
    """Tests for incr_window."""

    @pytest.mark.asyncio
    async def test_first_hit_starts_window(self) -> None:
        client = AsyncMock()
        client.incr.return_value = 1

        with patch("src.core.redis.get_redis", return_value=client):
            assert await incr_window("rate_limit:k", 60) == 1

        client.incr.assert_awaited_once_with("rate_limit:k")
        client.expire.assert_awaited_once_with("rate_limit:k", 60)

    @pytest.mark.asyncio
    async def test_later_hit_keeps_ttl(self) -> None:
        client = AsyncMock()
        client.incr.return_value = 3

        with patch("src.core.redis.get_redis", return_value=client):
            assert await incr_window("rate_limit:k", 60) == 3

        client.expire.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_connected(self) -> None:
        with patch("src.core.redis.get_redis", return_value=None):
            assert await incr_window("rate_limit:k", 60) is None


class TestPingRedis:
    """Tests for ping_redis."""

    @pytest.mark.asyncio
    async def test_connected(self) -> None:
        client = AsyncMock()
        client.ping.return_value = True

        with patch("src.core.redis.get_redis", return_value=client):
            assert await ping_redis() is True

    @pytest.mark.asyncio
    async def test_error_reports_down(self) -> None:
        client = AsyncMock()
        client.ping.side_effect = redis.ConnectionError("refused")

        with patch("src.core.redis.get_redis", return_value=client):
            assert await ping_redis() is False

    @pytest.mark.asyncio
    async def test_not_connected(self) -> None:
        with patch("src.core.redis.get_redis", return_value=None):
            assert await ping_redis() is False
