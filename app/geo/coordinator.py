"""Coordination entre le store principal et l'index de localisation."""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.exceptions import InvalidSearchLimit
from app.geo.coordinates import Coordinate, SearchQuery, validate_radius
from app.geo.location_index import LocationIndex
from app.db.field_store import FieldStore
from app.logger import logger

FetchFn = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]


@dataclass
class SearchResult:
    """Documents du plus proche au plus lointain, sans doublons d'id."""
    fields: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.fields)


class GeoSearchCoordinator:
    """
    Garde la découvrabilité géographique cohérente avec le store principal
    et répond aux recherches par rayon.

    Deux modes, même contrat public :
      - index : `location_index` fourni, les ids viennent de l'index puis
        chaque document est lu dans le store ;
      - native : pas d'index, la requête géo est faite par le store lui-même.

    Aucun verrou, aucun retry : les erreurs des collaborateurs remontent
    telles quelles et l'annulation n'est jamais interceptée.
    """

    def __init__(self, store: FieldStore, location_index: Optional[LocationIndex] = None):
        self.store = store
        self.location_index = location_index

    @property
    def mode(self) -> str:
        return "index" if self.location_index is not None else "native"

    async def index_location(self, field_id: str, longitude: float, latitude: float) -> None:
        """
        Ajoute ou remplace l'entrée d'index de `field_id`.

        Raises:
            InvalidCoordinate: point non fini ou hors limites (aucune écriture)
            IndexWriteError: échec d'écriture de l'index
        """
        point = Coordinate(longitude=longitude, latitude=latitude).validate()
        if self.location_index is None:
            # mode natif : la localisation vit dans le document
            return
        await self.location_index.upsert(field_id, point.longitude, point.latitude)
        logger.debug("Field {field_id} indexed at ({lon}, {lat})",
                     field_id=field_id, lon=point.longitude, lat=point.latitude)

    async def remove_location(self, field_id: str) -> None:
        """Supprime l'entrée d'index ; une entrée absente est un succès."""
        if self.location_index is None:
            return
        await self.location_index.remove(field_id)
        logger.debug("Field {field_id} removed from location index", field_id=field_id)

    def _validate_search(self, center: Coordinate, radius_miles: float, limit: int) -> float:
        radius = validate_radius(radius_miles)
        center.validate()
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise InvalidSearchLimit(f"limit must be a positive integer, got {limit}")
        return radius

    async def search_nearby(self, center: Coordinate, radius_miles: float, limit: int) -> List[str]:
        """
        Ids à moins de `radius_miles` de `center`, du plus proche au plus lointain.

        L'ordre et le filtrage sont ceux du collaborateur ; rien n'est retrié ici.

        Raises:
            InvalidRadius: rayon <= 0
            InvalidCoordinate: centre hors limites
            InvalidSearchLimit: limit <= 0
        """
        radius = self._validate_search(center, radius_miles, limit)
        if self.location_index is None:
            docs = await self.store.find_near(center, radius, limit)
            return [doc["id"] for doc in docs]
        return await self.location_index.radius_query(
            center.longitude, center.latitude, radius, limit
        )

    async def resolve_results(self, ids: List[str], fetch: Optional[FetchFn] = None) -> SearchResult:
        """
        Lit chaque document dans l'ordre de `ids`.

        Un id sans document (index en retard sur le store) est ignoré : la
        recherche est moins complète mais n'échoue pas.
        """
        fetch = fetch or self.store.find_by_id
        result = SearchResult()
        seen = set()
        for field_id in ids:
            if field_id in seen:
                continue
            seen.add(field_id)
            doc = await fetch(field_id)
            if doc is None:
                logger.warning("Field {field_id} is in the location index but not in the store, skipped",
                               field_id=field_id)
                continue
            result.fields.append(doc)
        return result

    async def search(self, query: SearchQuery, fetch: Optional[FetchFn] = None) -> SearchResult:
        """Recherche complète : ids proches puis documents."""
        center = query.center
        radius = query.radius_miles
        if self.location_index is not None:
            ids = await self.search_nearby(center, radius, query.max_results)
            return await self.resolve_results(ids, fetch)

        # mode natif : les documents sont déjà matérialisés par le store
        self._validate_search(center, radius, query.max_results)
        docs = await self.store.find_near(center, radius, query.max_results)
        result = SearchResult()
        seen = set()
        for doc in docs:
            if doc["id"] not in seen:
                seen.add(doc["id"])
                result.fields.append(doc)
        return result
