"""Main module for the FastAPI application."""
import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Path, Query, Request, Response, status
from fastapi.responses import JSONResponse

from .auth import TokenClaims, require_claims
from .config import settings
from .db.field_store import PostgresFieldStore
from .db.postgres_connector import PostgresConnector
from .exceptions import InvalidInput, LocationIndexError, NotFound, StoreError
from .geo.coordinates import SearchQuery
from .geo.coordinator import GeoSearchCoordinator
from .geo.location_index import RedisLocationIndex
from .health import HealthState, ServiceLifecycle
from .logger import logger
from .models import FieldCreate, FieldsResponse, FieldUpdate, HealthResponse, SportsField
from .services.field_service import FieldService


# --- Initialisation des variables globales ---

db_connector: PostgresConnector = PostgresConnector(settings.DATABASE_URL, settings.DB_POOL_MAX_SIZE)
field_store: PostgresFieldStore = PostgresFieldStore(db_connector, settings.FIELDS_TABLE)

# Mode index : Redis GEO ; mode natif : requête géo sur Postgres
location_index: Optional[RedisLocationIndex] = (
    RedisLocationIndex(settings.REDIS_URL, settings.GEO_INDEX_KEY)
    if settings.SEARCH_MODE == "index" else None
)

coordinator: GeoSearchCoordinator = GeoSearchCoordinator(field_store, location_index)
field_service: FieldService = FieldService(field_store, coordinator)
# Alias `service` pour les tests qui patchent `main.service`
service = field_service

lifecycle: ServiceLifecycle = ServiceLifecycle(db_connector, location_index)

FIELD_ID_PATTERN = r"^[0-9a-f]{24}$"


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Handle FastAPI startup and shutdown events."""
    logger.info("Starting up field service (search mode: {mode})...", mode=settings.SEARCH_MODE)

    state = await lifecycle.connect()
    if state == HealthState.OK:
        try:
            await field_store.ensure_schema()
        except StoreError as e:
            logger.error("Failed to create fields table: {error}", error=e)

    yield

    logger.info("Shutting down field service...")
    await lifecycle.close()


app = FastAPI(
    title="Field Service",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan
)


def get_service() -> FieldService:
    """Dépendance FastAPI pour obtenir l'instance du service de terrains."""
    return service


async def _with_deadline(coro):
    """Applique REQUEST_TIMEOUT_SECONDS ; l'annulation descend jusqu'aux stores."""
    try:
        return await asyncio.wait_for(coro, timeout=settings.REQUEST_TIMEOUT_SECONDS)
    except asyncio.TimeoutError as e:
        logger.error("Request exceeded {timeout}s", timeout=settings.REQUEST_TIMEOUT_SECONDS)
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="timeout") from e


# --- Gestion des erreurs du coeur ---

@app.exception_handler(InvalidInput)
async def invalid_input_handler(_request: Request, exc: InvalidInput) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"msg": str(exc)})


@app.exception_handler(NotFound)
async def not_found_handler(_request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"msg": "field not found"})


@app.exception_handler(StoreError)
@app.exception_handler(LocationIndexError)
async def storage_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error("Storage failure: {error}", error=exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"msg": "storage failure"})


# --- Routes ---

@app.get("/")
def root():
    """Root endpoint to check API status."""
    return {"service": settings.SERVICE_NAME, "version": settings.SERVICE_VERSION, "status": "running"}


@app.get("/healthz", response_model=HealthResponse, tags=["Monitoring"])
async def healthz():
    """
    Health check endpoint.

    Renvoie 200 si les stores répondent, 503 sinon.
    """
    state = await lifecycle.ping()
    body = {"service": settings.SERVICE_NAME, "status": state.value}
    if state != HealthState.OK:
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body


@app.get("/v1/fields", response_model=FieldsResponse)
async def search_fields(
        longitude: float = 0.0,
        latitude: float = 0.0,
        radius: Optional[float] = None,
        unit: Literal["mi", "km", "m", "ft"] = "mi",
        limit: int = Query(settings.DEFAULT_SEARCH_LIMIT, ge=1, le=settings.MAX_SEARCH_LIMIT),
        svc: FieldService = Depends(get_service)):
    """Terrains autour d'un point, du plus proche au plus lointain (204 si aucun)."""
    if longitude == 0 or latitude == 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="you need longitude/latitude")

    query = SearchQuery(
        center_latitude=latitude,
        center_longitude=longitude,
        radius=settings.DEFAULT_RADIUS_MILES if radius is None else radius,
        unit=unit,
        max_results=limit,
    )
    result = await _with_deadline(svc.search_fields(query))
    if result.total_count == 0:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return FieldsResponse(
        total_fields=result.total_count,
        fields=[SportsField.model_validate(doc) for doc in result.fields],
    )


@app.get("/v1/fields/query", response_model=List[SportsField])
async def query_fields(
        owner: Optional[str] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
        country: Optional[str] = None,
        is_public: Optional[bool] = Query(None, alias="isPublic"),
        limit: int = Query(settings.DEFAULT_SEARCH_LIMIT, ge=1, le=settings.MAX_SEARCH_LIMIT),
        svc: FieldService = Depends(get_service)):
    """Terrains dont les attributs sont égaux aux valeurs données."""
    filters: Dict[str, Any] = {
        key: value for key, value in {
            "owner": owner, "city": city, "state": state,
            "country": country, "isPublic": is_public,
        }.items() if value is not None
    }
    return await _with_deadline(svc.list_fields(filters, limit))


@app.post("/v1/fields", response_model=SportsField, status_code=status.HTTP_201_CREATED)
async def create_field(
        req: FieldCreate,
        svc: FieldService = Depends(get_service),
        _claims: Optional[TokenClaims] = Depends(require_claims)):
    field = await _with_deadline(svc.create_field(req))
    logger.info("POST /v1/fields -> {field_id}", field_id=field.id)
    return field


@app.get("/v1/fields/{field_id}", response_model=SportsField)
async def get_field(
        field_id: str = Path(pattern=FIELD_ID_PATTERN),
        svc: FieldService = Depends(get_service)):
    return await _with_deadline(svc.get_field(field_id))


@app.put("/v1/fields/{field_id}", response_model=SportsField)
async def update_field(
        req: FieldUpdate,
        field_id: str = Path(pattern=FIELD_ID_PATTERN),
        svc: FieldService = Depends(get_service),
        _claims: Optional[TokenClaims] = Depends(require_claims)):
    return await _with_deadline(svc.update_field(field_id, req))


@app.delete("/v1/fields/{field_id}")
async def delete_field(
        field_id: str = Path(pattern=FIELD_ID_PATTERN),
        svc: FieldService = Depends(get_service),
        _claims: Optional[TokenClaims] = Depends(require_claims)):
    await _with_deadline(svc.delete_field(field_id))
    return {"id": field_id, "status": "deleted"}
