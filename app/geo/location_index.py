"""Index de localisation : id de terrain -> (longitude, latitude)."""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config import settings
from app.exceptions import IndexQueryError, IndexWriteError
from app.geo.coordinates import Coordinate, haversine_miles
from app.logger import logger

# Bande de latitude acceptée par les commandes GEO de Redis (projection Web Mercator)
REDIS_GEO_MAX_LATITUDE = 85.05112878


class LocationIndex(ABC):
    """Contrat d'un index de localisation secondaire."""

    @abstractmethod
    async def upsert(self, field_id: str, longitude: float, latitude: float) -> None:
        """Ajoute ou remplace l'entrée de `field_id`."""

    @abstractmethod
    async def remove(self, field_id: str) -> None:
        """Supprime l'entrée de `field_id` ; une entrée absente n'est pas une erreur."""

    @abstractmethod
    async def radius_query(
            self,
            center_lon: float,
            center_lat: float,
            radius_miles: float,
            limit: Optional[int] = None) -> List[str]:
        """Ids dans le rayon, du plus proche au plus lointain."""


def _in_geo_band(latitude: float) -> bool:
    return abs(latitude) <= REDIS_GEO_MAX_LATITUDE


class RedisLocationIndex(LocationIndex):
    """
    Index de localisation sur un sorted set GEO Redis.

    Les points au-delà de ±85.05112878° de latitude sont refusés par GEOADD :
    ils sont rangés dans un hash annexe (`<key>:polar`, id -> "lon,lat") et
    fusionnés par distance haversine au moment de la recherche.
    """

    def __init__(self, redis_url: str = settings.REDIS_URL, key: str = settings.GEO_INDEX_KEY,
                 client: Optional[redis.Redis] = None):
        self.key = key
        self.polar_key = f"{key}:polar"
        self.redis = client or redis.from_url(redis_url, encoding="utf-8", decode_responses=True)

    async def upsert(self, field_id: str, longitude: float, latitude: float) -> None:
        try:
            if _in_geo_band(latitude):
                # GEOADD attend la longitude AVANT la latitude
                changed = await self.redis.geoadd(self.key, [longitude, latitude, field_id], ch=True)
                # un point qui quitte la zone polaire ne doit pas y rester
                await self.redis.hdel(self.polar_key, field_id)
            else:
                changed = await self.redis.hset(self.polar_key, field_id, f"{longitude},{latitude}")
                await self.redis.zrem(self.key, field_id)
        except RedisError as e:
            raise IndexWriteError(f"index write failed for field {field_id}: {e}") from e
        logger.debug(
            "upsert {key} {lon} {lat} {field_id} -> {changed}",
            key=self.key, lon=longitude, lat=latitude, field_id=field_id, changed=changed
        )

    async def remove(self, field_id: str) -> None:
        try:
            removed = await self.redis.zrem(self.key, field_id)
            removed += await self.redis.hdel(self.polar_key, field_id)
        except RedisError as e:
            raise IndexWriteError(f"ZREM failed for field {field_id}: {e}") from e
        if not removed:
            # Entrée déjà absente : rien à faire
            logger.debug("ZREM {key} {field_id}: no entry", key=self.key, field_id=field_id)

    async def radius_query(
            self,
            center_lon: float,
            center_lat: float,
            radius_miles: float,
            limit: Optional[int] = None) -> List[str]:
        center = Coordinate(longitude=center_lon, latitude=center_lat)
        # GEOSEARCH refuse aussi un centre hors bande : on cherche depuis le point
        # le plus proche dans la bande, avec un rayon élargi de l'écart, puis on refiltre
        search_lat = max(-REDIS_GEO_MAX_LATITUDE, min(REDIS_GEO_MAX_LATITUDE, center_lat))
        shift = haversine_miles(center, Coordinate(longitude=center_lon, latitude=search_lat))
        try:
            hits = await self.redis.geosearch(
                self.key,
                longitude=center_lon,
                latitude=search_lat,
                radius=radius_miles + shift,
                unit="mi",
                sort="ASC",
                count=None if shift else limit,
                withdist=True,
                withcoord=True,
            )
            polar = await self.redis.hgetall(self.polar_key)
        except RedisError as e:
            raise IndexQueryError(f"GEOSEARCH failed on {self.key}: {e}") from e

        found: Dict[str, float] = {}
        for field_id, dist, (lon, lat) in hits:
            if shift:
                dist = haversine_miles(center, Coordinate(longitude=lon, latitude=lat))
            if dist <= radius_miles:
                found[field_id] = dist
        for field_id, raw in polar.items():
            dist = haversine_miles(center, _parse_point(raw))
            if dist <= radius_miles and dist < found.get(field_id, float("inf")):
                found[field_id] = dist

        # tri stable : l'ordre de Redis est conservé à distance égale
        ids = [field_id for field_id, _ in sorted(found.items(), key=lambda item: item[1])]
        return ids[:limit] if limit else ids

    async def position(self, field_id: str) -> Optional[Coordinate]:
        """Point indexé pour `field_id`, ou None."""
        try:
            raw = await self.redis.hget(self.polar_key, field_id)
            if raw is not None:
                return _parse_point(raw)
            (pos,) = await self.redis.geopos(self.key, field_id)
        except RedisError as e:
            raise IndexQueryError(f"GEOPOS failed for field {field_id}: {e}") from e
        if pos is None:
            return None
        return Coordinate(longitude=pos[0], latitude=pos[1])

    async def ping(self) -> bool:
        """PING Redis (health check)."""
        return await self.redis.ping()

    async def close(self):
        """Close the Redis connection."""
        await self.redis.aclose()


def _parse_point(raw: str) -> Coordinate:
    lon, lat = raw.split(",")
    return Coordinate(longitude=float(lon), latitude=float(lat))
