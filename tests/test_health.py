# tests/test_health.py
import pytest
from unittest.mock import AsyncMock
from redis.exceptions import ConnectionError as RedisConnectionError

from app.geo.location_index import RedisLocationIndex
from app.health import HealthState, ServiceLifecycle


@pytest.mark.asyncio
class TestServiceLifecycle:
    """Transitions de l'état de santé."""

    async def test_starts_initializing(self, mock_db_connector):
        lifecycle = ServiceLifecycle(mock_db_connector)
        assert lifecycle.status == HealthState.INIT

    async def test_connect_ok(self, mock_db_connector, mock_redis):
        lifecycle = ServiceLifecycle(mock_db_connector, RedisLocationIndex(client=mock_redis))
        assert await lifecycle.connect() == HealthState.OK
        mock_db_connector.connect.assert_awaited_once()
        mock_redis.ping.assert_awaited_once()

    async def test_connect_failure(self, mock_db_connector):
        mock_db_connector.connect = AsyncMock(side_effect=OSError("connection refused"))
        lifecycle = ServiceLifecycle(mock_db_connector)
        assert await lifecycle.connect() == HealthState.DB_CONN

    async def test_ping_tracks_redis(self, mock_db_connector, mock_redis):
        lifecycle = ServiceLifecycle(mock_db_connector, RedisLocationIndex(client=mock_redis))
        await lifecycle.connect()

        mock_redis.ping = AsyncMock(side_effect=RedisConnectionError("down"))
        assert await lifecycle.ping() == HealthState.DB_CONN

        mock_redis.ping = AsyncMock(return_value=True)
        assert await lifecycle.ping() == HealthState.OK

    async def test_unexpected_error(self, mock_db_connector):
        mock_db_connector.ping = AsyncMock(side_effect=RuntimeError("??"))
        lifecycle = ServiceLifecycle(mock_db_connector)
        assert await lifecycle.ping() == HealthState.UNKNOWN

    async def test_close(self, mock_db_connector, mock_redis):
        lifecycle = ServiceLifecycle(mock_db_connector, RedisLocationIndex(client=mock_redis))
        await lifecycle.close()
        mock_db_connector.close.assert_awaited_once()
        mock_redis.aclose.assert_awaited_once()
