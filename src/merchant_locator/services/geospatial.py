"""Geospatial helper functions."""

from __future__ import annotations

import math
from numbers import Real
from typing import Any, Sequence

import numpy as np
from shapely.geometry import Point, Polygon

from ..errors import InvalidCoordinateError, InvariantViolationError
from ..models.domain import Coordinate

EARTH_RADIUS_METERS = 6371000.0


def _check_component(name: str, value: Any, bound: float) -> None:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidCoordinateError(f"{name.capitalize()} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidCoordinateError(f"{name.capitalize()} must be finite, got {value!r}")
    if value < -bound or value > bound:
        raise InvalidCoordinateError(f"{name.capitalize()} must be between -{bound:g} and {bound:g} degrees, got {value!r}")


def validate_coordinate(coordinate: Coordinate) -> Coordinate:
    """Return the coordinate unchanged, or raise InvalidCoordinateError."""

    _check_component("latitude", coordinate.latitude, 90.0)
    _check_component("longitude", coordinate.longitude, 180.0)
    return coordinate


def parse_coordinate(latitude: Any, longitude: Any) -> Coordinate:
    """Coerce raw boundary values (strings, ints) into a validated Coordinate."""

    values = []
    for name, raw in (("latitude", latitude), ("longitude", longitude)):
        if isinstance(raw, bool) or raw is None:
            raise InvalidCoordinateError(f"{name.capitalize()} is required")
        try:
            values.append(float(str(raw).strip()) if isinstance(raw, str) else float(raw))
        except (TypeError, ValueError) as exc:
            raise InvalidCoordinateError(f"{name.capitalize()} must be a number, got {raw!r}") from exc
    return validate_coordinate(Coordinate(latitude=values[0], longitude=values[1]))


def haversine_meters(a: Coordinate, b: Coordinate, earth_radius_meters: float = EARTH_RADIUS_METERS) -> float:
    """Great-circle distance between two validated coordinates, in meters."""

    phi1, phi2 = math.radians(a.latitude), math.radians(b.latitude)
    d_phi = math.radians(b.latitude - a.latitude)
    d_lambda = math.radians(b.longitude - a.longitude)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    h = min(h, 1.0)
    distance = 2 * earth_radius_meters * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    if not math.isfinite(distance):
        raise InvariantViolationError(f"Non-finite distance between {a} and {b}")
    return distance


def haversine_meters_many(
    origin: Coordinate,
    latitudes: Sequence[float] | np.ndarray,
    longitudes: Sequence[float] | np.ndarray,
    earth_radius_meters: float = EARTH_RADIUS_METERS,
) -> np.ndarray:
    """Vectorised haversine from one origin to many points; same formula as haversine_meters."""

    lat = np.asarray(latitudes, dtype=np.float64)
    lon = np.asarray(longitudes, dtype=np.float64)
    phi1 = math.radians(origin.latitude)
    d_phi = np.radians(lat - origin.latitude)
    d_lambda = np.radians(lon - origin.longitude)

    h = np.sin(d_phi / 2) ** 2 + math.cos(phi1) * np.cos(np.radians(lat)) * np.sin(d_lambda / 2) ** 2
    # guard against h drifting a hair past 1.0 for antipodal points
    h = np.clip(h, 0.0, 1.0)
    distances = 2 * earth_radius_meters * np.arctan2(np.sqrt(h), np.sqrt(1 - h))
    if not np.all(np.isfinite(distances)):
        raise InvariantViolationError(f"Non-finite distance computed from origin {origin}")
    return distances


def build_polygon(vertices: Sequence[tuple[float, float]]) -> Polygon:
    """Build a shapely polygon from (lat, lon) vertices."""

    return Polygon([(lng, lat) for lat, lng in vertices])


def point_in_polygon(lat: float, lon: float, polygon_coords: Sequence[tuple[float, float]]) -> bool:
    """Return True if the point is inside the polygon denoted by (lat, lon) pairs."""

    return build_polygon(polygon_coords).contains(Point(lon, lat))
