"""État de santé du service, possédé par le cycle de vie."""
from enum import Enum
from typing import Optional

import asyncpg
from redis.exceptions import RedisError

from app.db.postgres_connector import PostgresConnector
from app.geo.location_index import RedisLocationIndex
from app.logger import logger


CONNECTION_ERRORS = (OSError, asyncpg.PostgresError, asyncpg.InterfaceError, RedisError)


class HealthState(str, Enum):
    INIT = "initializing"
    OK = "ok"
    DB_CONN = "no connection to database"
    UNKNOWN = "unknown error"


class ServiceLifecycle:
    """
    Connexions du service et état de santé.

    `status` ne change qu'à la connexion et aux pings ; le coordinateur et
    les opérations CRUD n'y touchent jamais.
    """

    def __init__(self, db_connector: PostgresConnector,
                 location_index: Optional[RedisLocationIndex] = None):
        self.db = db_connector
        self.location_index = location_index
        self.status = HealthState.INIT

    async def connect(self) -> HealthState:
        """Ouvre le pool Postgres et vérifie Redis (mode index)."""
        try:
            await self.db.connect()
            logger.info("PostgreSQL connection pool established successfully.")
        except CONNECTION_ERRORS as e:
            logger.error("Failed to connect to PostgreSQL: {error}", error=e)
            self.status = HealthState.DB_CONN
            return self.status
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unexpected error while connecting to PostgreSQL")
            self.status = HealthState.UNKNOWN
            return self.status
        return await self.ping()

    async def ping(self) -> HealthState:
        """Ping des deux stores ; met à jour `status`."""
        try:
            await self.db.ping()
            if self.location_index is not None:
                await self.location_index.ping()
            self.status = HealthState.OK
        except CONNECTION_ERRORS as e:
            logger.error("Health check failed: {error}", error=e)
            self.status = HealthState.DB_CONN
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Health check failed with unexpected error: {error}", error=e)
            self.status = HealthState.UNKNOWN
        return self.status

    async def close(self):
        await self.db.close()
        logger.info("PostgreSQL connection pool closed.")
        if self.location_index is not None:
            await self.location_index.close()
            logger.info("Redis connection closed.")
