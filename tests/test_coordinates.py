# tests/test_coordinates.py
import math

import pytest

from app.exceptions import InvalidCoordinate, InvalidRadius
from app.geo.coordinates import (
    Coordinate,
    SearchQuery,
    haversine_miles,
    to_miles,
    validate_radius,
)


@pytest.mark.parametrize("lon, lat", [
    (0.0, 0.0),
    (-180.0, -90.0),
    (180.0, 90.0),
    (-122.42, 37.77),
])
def test_valid_coordinates(lon, lat):
    point = Coordinate(longitude=lon, latitude=lat).validate()
    assert point.longitude == lon
    assert point.latitude == lat


@pytest.mark.parametrize("lon, lat", [
    (200.0, 0.0),
    (0.0, -95.0),
    (math.nan, 0.0),
    (0.0, math.inf),
    (-180.0001, 10.0),
])
def test_invalid_coordinates(lon, lat):
    with pytest.raises(InvalidCoordinate):
        Coordinate(longitude=lon, latitude=lat).validate()


def test_geojson_keeps_longitude_first():
    point = Coordinate(longitude=-122.42, latitude=37.77)
    geojson = point.to_geojson()
    assert geojson == {"type": "Point", "coordinates": [-122.42, 37.77]}
    assert Coordinate.from_geojson(geojson) == point


def test_from_geojson_rejects_bad_shapes():
    assert Coordinate.from_geojson(None) is None
    assert Coordinate.from_geojson({"type": "Point"}) is None
    assert Coordinate.from_geojson({"coordinates": [1.0]}) is None
    assert Coordinate.from_geojson({"coordinates": ["a", "b"]}) is None


@pytest.mark.parametrize("radius", [0, -1.0, math.nan, math.inf])
def test_invalid_radius(radius):
    with pytest.raises(InvalidRadius):
        validate_radius(radius)


def test_unit_conversion():
    assert to_miles(5, "mi") == 5
    assert to_miles(1.609344, "km") == pytest.approx(1.0)
    assert to_miles(1609.344, "m") == pytest.approx(1.0)
    assert to_miles(5280, "ft") == pytest.approx(1.0)
    with pytest.raises(InvalidRadius):
        to_miles(1, "furlong")


def test_haversine_known_distance():
    # San Francisco -> Los Angeles, environ 347 miles
    sf = Coordinate(longitude=-122.4194, latitude=37.7749)
    la = Coordinate(longitude=-118.2437, latitude=34.0522)
    assert haversine_miles(sf, la) == pytest.approx(347, abs=3)
    assert haversine_miles(sf, sf) == 0


def test_search_query_helpers():
    query = SearchQuery(center_latitude=37.77, center_longitude=-122.42, radius=2, unit="km")
    assert query.center == Coordinate(longitude=-122.42, latitude=37.77)
    assert query.radius_miles == pytest.approx(2 / 1.609344)

    with pytest.raises(InvalidRadius):
        _ = SearchQuery(center_latitude=1, center_longitude=1, radius=0).radius_miles
