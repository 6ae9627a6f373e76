"""Store principal des documents de terrains."""
import json
import math
import re
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import asyncpg

from app.db.postgres_connector import PostgresConnector
from app.exceptions import StoreError
from app.geo.coordinates import EARTH_RADIUS_METERS, METERS_PER_MILE, Coordinate

EARTH_RADIUS_MILES = EARTH_RADIUS_METERS / METERS_PER_MILE

_TABLE_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")


class FieldStore(ABC):
    """Contrat du store principal (CRUD clé -> document + requêtes filtrées)."""

    @abstractmethod
    async def insert(self, doc: Dict[str, Any]) -> None:
        """Insère un document ; `doc['id']` est la clé."""

    @abstractmethod
    async def find_by_id(self, field_id: str) -> Optional[Dict[str, Any]]:
        """Le document, ou None s'il n'existe pas."""

    @abstractmethod
    async def find_many(self, filters: Dict[str, Any], limit: int) -> List[Dict[str, Any]]:
        """Documents dont les champs nommés sont égaux aux valeurs de `filters`."""

    @abstractmethod
    async def update(self, field_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Applique un changement partiel ; renvoie le document mis à jour ou None."""

    @abstractmethod
    async def delete(self, field_id: str) -> int:
        """Supprime le document ; renvoie le nombre de lignes supprimées."""

    @abstractmethod
    async def find_near(
            self,
            center: Coordinate,
            radius_miles: float,
            limit: int) -> List[Dict[str, Any]]:
        """Requête géo native : documents dans le rayon, du plus proche au plus lointain."""


@contextmanager
def _store_errors(action: str, field_id: Optional[str] = None):
    """Traduit les erreurs du driver en StoreError."""
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        target = f" {field_id}" if field_id else ""
        raise StoreError(f"{action}{target} failed: {e}") from e


def _location_columns(doc: Dict[str, Any]) -> tuple:
    point = Coordinate.from_geojson(doc.get("location"))
    if point is None:
        return None, None
    return point.longitude, point.latitude


def _decode(raw: Any) -> Dict[str, Any]:
    # asyncpg renvoie le jsonb sous forme de texte sans codec dédié
    if isinstance(raw, str):
        return json.loads(raw)
    return dict(raw)


class PostgresFieldStore(FieldStore):
    """
    Documents `jsonb` dans une table Postgres.

    La longitude et la latitude sont recopiées dans deux colonnes pour la
    requête géo native ; le document reste la source de vérité.
    """

    def __init__(self, db_connector: PostgresConnector, table: str = "fields"):
        if not _TABLE_NAME_RE.match(table):
            raise ValueError(f"Invalid table name: {table}")
        self.db = db_connector
        self.table = table

    async def ensure_schema(self) -> None:
        """Crée la table et l'index de coordonnées s'ils n'existent pas."""
        # Safe: table name validated in __init__
        with _store_errors("create schema"):
            await self.db.execute(
                f"""CREATE TABLE IF NOT EXISTS {self.table} (
                    id TEXT PRIMARY KEY,
                    doc JSONB NOT NULL,
                    longitude DOUBLE PRECISION,
                    latitude DOUBLE PRECISION
                )"""  # nosec B608
            )
            await self.db.execute(
                f"CREATE INDEX IF NOT EXISTS {self.table}_lat_lon_idx "
                f"ON {self.table} (latitude, longitude)"  # nosec B608
            )

    async def insert(self, doc: Dict[str, Any]) -> None:
        longitude, latitude = _location_columns(doc)
        with _store_errors("insert", doc.get("id")):
            await self.db.execute(
                f"INSERT INTO {self.table} (id, doc, longitude, latitude) "
                "VALUES ($1, $2::jsonb, $3, $4)",  # nosec B608
                doc["id"], json.dumps(doc), longitude, latitude
            )

    async def find_by_id(self, field_id: str) -> Optional[Dict[str, Any]]:
        with _store_errors("find", field_id):
            row = await self.db.fetchrow(
                f"SELECT doc FROM {self.table} WHERE id = $1",  # nosec B608
                field_id
            )
        return _decode(row["doc"]) if row else None

    async def find_many(self, filters: Dict[str, Any], limit: int) -> List[Dict[str, Any]]:
        with _store_errors("find many"):
            rows = await self.db.execute_query(
                f"SELECT doc FROM {self.table} WHERE doc @> $1::jsonb "
                "ORDER BY id LIMIT $2",  # nosec B608
                json.dumps(filters or {}), limit
            )
        return [_decode(row["doc"]) for row in rows]

    async def update(self, field_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        longitude, latitude = _location_columns(changes)
        with _store_errors("update", field_id):
            row = await self.db.fetchrow(
                f"UPDATE {self.table} SET doc = doc || $2::jsonb, "
                "longitude = COALESCE($3, longitude), "
                "latitude = COALESCE($4, latitude) "
                "WHERE id = $1 RETURNING doc",  # nosec B608
                field_id, json.dumps(changes), longitude, latitude
            )
        return _decode(row["doc"]) if row else None

    async def delete(self, field_id: str) -> int:
        with _store_errors("delete", field_id):
            status = await self.db.execute(
                f"DELETE FROM {self.table} WHERE id = $1",  # nosec B608
                field_id
            )
        # statut asyncpg : "DELETE <n>"
        try:
            return int(status.split()[-1])
        except (ValueError, IndexError, AttributeError):
            return 0

    async def find_near(
            self,
            center: Coordinate,
            radius_miles: float,
            limit: int) -> List[Dict[str, Any]]:
        # bande de latitude autour du centre : seule partie du filtre servie par l'index
        lat_span = math.degrees(radius_miles / EARTH_RADIUS_MILES)
        lat_min = max(-90.0, center.latitude - lat_span)
        lat_max = min(90.0, center.latitude + lat_span)
        sql = f"""
            WITH candidates AS (
                SELECT doc, 2.0 * $5::float8 * asin(least(1.0, sqrt(
                    power(sin(radians(latitude - $2::float8) / 2), 2)
                    + cos(radians($2::float8)) * cos(radians(latitude))
                    * power(sin(radians(longitude - $1::float8) / 2), 2)
                ))) AS distance
                FROM {self.table}
                WHERE latitude BETWEEN $6::float8 AND $7::float8
                  AND longitude IS NOT NULL
            )
            SELECT doc, distance FROM candidates
            WHERE distance <= $3::float8
            ORDER BY distance ASC, doc->>'id'
            LIMIT $4::int
        """  # nosec B608
        with _store_errors("geo query"):
            rows = await self.db.execute_query(
                sql,
                float(center.longitude), float(center.latitude),
                float(radius_miles), limit, EARTH_RADIUS_MILES,
                lat_min, lat_max
            )
        return [_decode(row["doc"]) for row in rows]
