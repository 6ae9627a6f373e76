"""Primitives géographiques : coordonnées, rayons, distances."""
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.exceptions import InvalidCoordinate, InvalidRadius

# Même rayon terrestre que les commandes GEO de Redis
EARTH_RADIUS_METERS = 6372797.560856
METERS_PER_MILE = 1609.344

# Facteurs de conversion vers les miles
UNIT_TO_MILES: Dict[str, float] = {
    "mi": 1.0,
    "km": 1000.0 / METERS_PER_MILE,
    "m": 1.0 / METERS_PER_MILE,
    "ft": 0.3048 / METERS_PER_MILE,
}


@dataclass(frozen=True)
class Coordinate:
    """
    Point géographique, toujours (longitude, latitude) dans cet ordre.

    C'est l'ordre de GeoJSON et de GEOADD ; inverser les deux valeurs
    donne un point valide mais faux pour la plupart des latitudes.
    """
    longitude: float
    latitude: float

    def validate(self) -> 'Coordinate':
        """
        Vérifie que le point est fini et dans les bornes.

        Raises:
            InvalidCoordinate: longitude hors [-180, 180] ou latitude hors [-90, 90]
        """
        lon, lat = self.longitude, self.latitude
        if isinstance(lon, bool) or isinstance(lat, bool):
            raise InvalidCoordinate(f"invalid coordinate ({lon}, {lat})")
        try:
            finite = math.isfinite(lon) and math.isfinite(lat)
        except TypeError as e:
            raise InvalidCoordinate(f"invalid coordinate ({lon}, {lat})") from e
        if not finite:
            raise InvalidCoordinate(f"non-finite coordinate ({lon}, {lat})")
        if not -180.0 <= lon <= 180.0:
            raise InvalidCoordinate(f"longitude {lon} out of range [-180, 180]")
        if not -90.0 <= lat <= 90.0:
            raise InvalidCoordinate(f"latitude {lat} out of range [-90, 90]")
        return self

    def to_geojson(self) -> Dict[str, Any]:
        """Forme stockée dans les documents."""
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}

    @classmethod
    def from_geojson(cls, data: Optional[Dict[str, Any]]) -> Optional['Coordinate']:
        """Crée un Coordinate depuis un point GeoJSON ; None si la forme ne convient pas."""
        if not data:
            return None
        try:
            coords = data["coordinates"]
            if len(coords) != 2:
                return None
            return cls(longitude=float(coords[0]), latitude=float(coords[1]))
        except (ValueError, TypeError, KeyError):
            return None


def validate_radius(radius: float) -> float:
    """Un rayon doit être fini et strictement positif."""
    if isinstance(radius, bool):
        raise InvalidRadius(f"invalid radius {radius}")
    try:
        ok = math.isfinite(radius) and radius > 0
    except TypeError as e:
        raise InvalidRadius(f"invalid radius {radius}") from e
    if not ok:
        raise InvalidRadius(f"radius must be > 0, got {radius}")
    return float(radius)


def to_miles(value: float, unit: str = "mi") -> float:
    """Convertit une distance exprimée dans `unit` en miles."""
    factor = UNIT_TO_MILES.get(unit)
    if factor is None:
        raise InvalidRadius(f"unknown distance unit '{unit}'")
    return value * factor


def haversine_miles(a: Coordinate, b: Coordinate) -> float:
    """Distance orthodromique entre deux points, en miles."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    meters = 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))
    return meters / METERS_PER_MILE


@dataclass
class SearchQuery:
    """Requête de proximité, construite à chaque appel et jamais persistée."""
    center_latitude: float
    center_longitude: float
    radius: float
    unit: str = "mi"
    max_results: int = 100

    @property
    def center(self) -> Coordinate:
        return Coordinate(longitude=self.center_longitude, latitude=self.center_latitude)

    @property
    def radius_miles(self) -> float:
        return to_miles(validate_radius(self.radius), self.unit)
