"""Cycle de vie des terrains : création, mise à jour, suppression, recherche."""
import secrets
import time
from typing import Any, Dict, List

import psutil

from app.db.field_store import FieldStore
from app.exceptions import LocationIndexError, NotFound
from app.geo.coordinates import Coordinate, SearchQuery
from app.geo.coordinator import GeoSearchCoordinator, SearchResult
from app.logger import logger
from app.models import FieldCreate, FieldUpdate, SportsField


def new_field_id() -> str:
    """Identifiant opaque de 24 caractères hexadécimaux."""
    return secrets.token_hex(12)


def _check_point(longitude: float, latitude: float) -> None:
    Coordinate(longitude=longitude, latitude=latitude).validate()


class FieldService:
    """
    Opérations CRUD sur les terrains.

    Les écritures touchent deux stores sans transaction commune : si
    l'index échoue après l'écriture du document, le document existe mais
    n'est pas trouvable par proximité. L'échec est journalisé, pas annulé.
    """

    def __init__(self, store: FieldStore, coordinator: GeoSearchCoordinator):
        self.store = store
        self.coordinator = coordinator

    async def create_field(self, req: FieldCreate) -> SportsField:
        """Crée le document puis l'entrée d'index."""
        location = req.location
        # Validation avant toute écriture
        _check_point(location.longitude, location.latitude)

        field = SportsField(id=new_field_id(), **req.model_dump())
        await self.store.insert(field.to_document())
        logger.info("Field {field_id} created ({name})", field_id=field.id, name=field.name)

        try:
            await self.coordinator.index_location(field.id, location.longitude, location.latitude)
        except LocationIndexError as e:
            logger.error("Field {field_id} stored but not indexed: {error}", field_id=field.id, error=e)
        return field

    async def get_field(self, field_id: str) -> SportsField:
        doc = await self.store.find_by_id(field_id)
        if doc is None:
            raise NotFound(field_id)
        return SportsField.model_validate(doc)

    async def list_fields(self, filters: Dict[str, Any], limit: int) -> List[SportsField]:
        """Recherche par égalité sur des attributs nommés."""
        docs = await self.store.find_many(filters, limit)
        return [SportsField.model_validate(doc) for doc in docs]

    async def update_field(self, field_id: str, req: FieldUpdate) -> SportsField:
        """
        Applique les attributs fournis.

        Seul un changement de `location` passe par le coordinateur
        (ré-indexation par écrasement).
        """
        changes = req.changes()
        if req.location is not None:
            _check_point(req.location.longitude, req.location.latitude)

        if changes:
            doc = await self.store.update(field_id, changes)
        else:
            doc = await self.store.find_by_id(field_id)
        if doc is None:
            raise NotFound(field_id)

        if req.location is not None:
            try:
                await self.coordinator.index_location(
                    field_id, req.location.longitude, req.location.latitude
                )
            except LocationIndexError as e:
                logger.error("Field {field_id} updated but not re-indexed: {error}",
                             field_id=field_id, error=e)
        logger.info("Field {field_id} updated ({keys})", field_id=field_id, keys=sorted(changes))
        return SportsField.model_validate(doc)

    async def delete_field(self, field_id: str) -> None:
        """
        Supprime le document puis l'entrée d'index.

        La suppression dans l'index est tentée même si le document n'existait
        plus, pour ne pas laisser d'entrée orpheline.
        """
        removed = await self.store.delete(field_id)
        try:
            await self.coordinator.remove_location(field_id)
        except LocationIndexError as e:
            logger.error("Field {field_id} deleted but still indexed: {error}", field_id=field_id, error=e)
        if not removed:
            raise NotFound(field_id)
        logger.info("Field {field_id} deleted", field_id=field_id)

    async def search_fields(self, query: SearchQuery) -> SearchResult:
        """Recherche par proximité, du plus proche au plus lointain."""
        start_time = time.time()
        result = await self.coordinator.search(query, self.store.find_by_id)

        duration = time.time() - start_time
        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
        logger.info(
            "Recherche ({mode}) autour de ({lon}, {lat}), rayon {radius} {unit} : "
            "{count} terrains | Durée = {duration:.4f}s | RAM = {memory:.2f} Mo",
            mode=self.coordinator.mode, lon=query.center_longitude, lat=query.center_latitude,
            radius=query.radius, unit=query.unit, count=result.total_count,
            duration=duration, memory=memory_mb
        )
        return result
