"""Modèles Pydantic pour les requêtes et réponses."""
import math
from typing import List, Literal, Optional, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, field_validator


class GeoJSONPoint(BaseModel): # pylint: disable=too-few-public-methods
    """Point GeoJSON : coordinates = [longitude, latitude]."""
    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(min_length=2, max_length=2)

    @field_validator("coordinates")
    @classmethod
    def _check_range(cls, value: List[float]) -> List[float]:
        lon, lat = value
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise ValueError("coordinates must be finite")
        if not -180.0 <= lon <= 180.0:
            raise ValueError(f"longitude {lon} out of range [-180, 180]")
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"latitude {lat} out of range [-90, 90]")
        return value

    @property
    def longitude(self) -> float:
        return self.coordinates[0]

    @property
    def latitude(self) -> float:
        return self.coordinates[1]


class FieldAttributes(BaseModel): # pylint: disable=too-few-public-methods
    """Attributs descriptifs d'un terrain (ignorés par la recherche géo)."""
    owner: str = ""
    name: str = ""
    notes: str = ""
    sports: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    city: str = ""
    state: str = ""
    country: str = ""
    ownership: str = ""
    is_public: bool = Field(default=False, alias="isPublic")

    model_config = ConfigDict(populate_by_name=True)


class FieldCreate(FieldAttributes): # pylint: disable=too-few-public-methods
    """Corps de POST /v1/fields."""
    location: GeoJSONPoint


class FieldUpdate(BaseModel): # pylint: disable=too-few-public-methods
    """Corps de PUT /v1/fields/{id} : seuls les attributs fournis sont modifiés."""
    owner: Optional[str] = None
    name: Optional[str] = None
    notes: Optional[str] = None
    sports: Optional[List[str]] = None
    images: Optional[List[str]] = None
    location: Optional[GeoJSONPoint] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    ownership: Optional[str] = None
    is_public: Optional[bool] = Field(default=None, alias="isPublic")

    model_config = ConfigDict(populate_by_name=True)

    def changes(self) -> Dict[str, Any]:
        """Changements partiels, au format stocké (alias JSON)."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class SportsField(FieldCreate): # pylint: disable=too-few-public-methods
    """Terrain tel que stocké et renvoyé."""
    id: str

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class FieldsResponse(BaseModel): # pylint: disable=too-few-public-methods
    """Réponse de recherche par proximité."""
    total_fields: int = Field(alias="totalFields")
    fields: List[SportsField]

    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel): # pylint: disable=too-few-public-methods
    """Réponse de /healthz."""
    service: str
    status: str
