"""Merchant data loader with database-first approach, falling back to a CSV/Excel file.

This is the only place that knows the store's field names. Everything it
returns is a canonical ``MerchantLocation``.
"""

from __future__ import annotations

import csv
import json
import logging
import math
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional

from openpyxl import load_workbook

from ..config import settings
from ..db.supabase import get_supabase_client
from ..models.domain import Coordinate, MerchantLocation, PolygonVertices

logger = logging.getLogger(__name__)

DATABASE_PAGE_SIZE = 1000

_TRUE_VALUES = {"true", "t", "1", "yes", "y", "on"}
_FALSE_VALUES = {"false", "f", "0", "no", "n", "off"}

# Each canonical field lists the spellings seen across the store, most specific first.
ID_FIELDS = ("id", "merchant_id", "merchantId", "MerchantId", "outletCode", "outlet_code")
NAME_FIELDS = ("outletName", "outlet_name", "name", "Name")
LATITUDE_FIELDS = ("merchant_latitude", "merchantLatitude", "latitude", "Latitude", "lat")
LONGITUDE_FIELDS = ("merchant_longitude", "merchantLongitude", "longitude", "Longitude", "lng", "lon")
RADIUS_METER_FIELDS = ("delivery_radius_meters", "deliveryRadiusMeters", "DeliveryRadiusMeters")
RADIUS_KM_FIELDS = ("delivery_radius_km", "deliveryRadiusKm")
MAX_RADIUS_METER_FIELDS = ("max_delivery_radius_meters", "maxDeliveryRadiusMeters", "MaxDeliveryRadiusMeters")
MAX_RADIUS_KM_FIELDS = ("max_delivery_radius_km", "maxDeliveryRadiusKm")
ACTIVE_FIELDS = ("isActive", "is_active", "IsActive", "active")
ACCEPTING_FIELDS = ("isAcceptingOrders", "is_accepting_orders", "IsAcceptingOrders", "accepting_orders")
PREPARATION_FIELDS = (
    "preparation_time_minutes",
    "preparationTimeMinutes",
    "averagePreparationTimeMinutes",
    "average_preparation_time_minutes",
    "avg_preparation_time_minutes",
)
RATING_FIELDS = ("rating", "averageRating", "average_rating", "Rating")
PRIORITY_ZONE_FIELDS = ("priority_zones", "priorityZones")
CUISINE_FIELDS = ("cuisine_types", "cuisineTypes", "cuisines", "cuisine")
STATUS_FIELDS = ("operational_status", "operationalStatus", "status")
MIN_ORDER_FIELDS = ("min_order_amount", "minOrderAmount", "minimumOrderAmount")


def _flatten(row: Mapping[str, Any]) -> dict[str, Any]:
    """Lift nested groups (``location``, ``metrics``) so their fields resolve like top-level ones."""

    flat: dict[str, Any] = {}
    for key, value in row.items():
        if isinstance(value, Mapping) and key in {"location", "metrics", "deliverySettings", "delivery_settings"}:
            for nested_key, nested_value in value.items():
                flat.setdefault(nested_key, nested_value)
        else:
            flat[key] = value
    return flat


def _first(row: Mapping[str, Any], fields: Iterable[str]) -> Any:
    for name in fields:
        value = row.get(name)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def _coerce_float(value: Any, field_name: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Unable to parse {field_name} from boolean value '{value}'")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).replace(",", "").strip())
        except ValueError as exc:
            raise ValueError(f"Unable to parse {field_name} from value '{value}'") from exc
    if not math.isfinite(number):
        raise ValueError(f"{field_name.capitalize()} must be a finite number, got '{value}'")
    return number


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Unable to parse boolean from value '{value}'")


def _ring_to_vertices(ring: Iterable[Iterable[float]]) -> PolygonVertices:
    # GeoJSON rings are [lng, lat]
    return tuple((float(point[1]), float(point[0])) for point in ring)


def _parse_priority_zones(value: Any) -> tuple[PolygonVertices, ...]:
    """Accept GeoJSON Polygon/MultiPolygon objects, or lists of them."""

    if value is None:
        return ()
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Priority zones are not valid JSON: {exc}") from exc
    if isinstance(value, Mapping):
        geometry_type = value.get("type")
        coordinates = value.get("coordinates") or []
        if geometry_type == "Polygon":
            return (_ring_to_vertices(coordinates[0]),) if coordinates else ()
        if geometry_type == "MultiPolygon":
            return tuple(_ring_to_vertices(polygon[0]) for polygon in coordinates if polygon)
        if geometry_type == "FeatureCollection":
            return _parse_priority_zones([feature.get("geometry") for feature in value.get("features", [])])
        if geometry_type == "Feature":
            return _parse_priority_zones(value.get("geometry"))
        raise ValueError(f"Unsupported priority zone geometry type '{geometry_type}'")
    if isinstance(value, list):
        zones: list[PolygonVertices] = []
        for item in value:
            zones.extend(_parse_priority_zones(item))
        return tuple(zones)
    raise ValueError(f"Unsupported priority zone value of type {type(value).__name__}")


def _parse_string_list(value: Any) -> tuple[str, ...]:
    """Accept a list, a JSON array string or comma-separated text."""

    if value is None:
        return ()
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Unable to parse list from value '{text}': {exc}") from exc
        else:
            value = text.split(",")
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Unsupported list value of type {type(value).__name__}")
    return tuple(str(item).strip() for item in value if item is not None and str(item).strip())


def _radius(row: Mapping[str, Any], meter_fields: tuple[str, ...], km_fields: tuple[str, ...], label: str) -> Optional[float]:
    meters = _coerce_float(_first(row, meter_fields), label)
    if meters is not None:
        return meters
    kilometers = _coerce_float(_first(row, km_fields), label)
    return kilometers * 1000 if kilometers is not None else None


def merchant_from_record(row: Mapping[str, Any]) -> MerchantLocation:
    """Translate one store record, in any of its naming conventions, into a MerchantLocation.

    Raises ValueError when the record lacks an id or coordinates, or holds
    unparseable values.
    """

    flat = _flatten(row)
    merchant_id = _first(flat, ID_FIELDS)
    if merchant_id is None:
        raise ValueError("Merchant record has no id")
    latitude = _coerce_float(_first(flat, LATITUDE_FIELDS), "latitude")
    longitude = _coerce_float(_first(flat, LONGITUDE_FIELDS), "longitude")
    if latitude is None or longitude is None:
        raise ValueError(f"Merchant '{merchant_id}' has no coordinates")

    soft_radius = _radius(flat, RADIUS_METER_FIELDS, RADIUS_KM_FIELDS, "delivery radius")
    if soft_radius is None or soft_radius <= 0:
        soft_radius = settings.default_delivery_radius_meters
    hard_radius = _radius(flat, MAX_RADIUS_METER_FIELDS, MAX_RADIUS_KM_FIELDS, "max delivery radius")
    if hard_radius is None:
        hard_radius = soft_radius

    preparation = _coerce_float(_first(flat, PREPARATION_FIELDS), "preparation time")
    rating = _coerce_float(_first(flat, RATING_FIELDS), "rating")
    name = _first(flat, NAME_FIELDS)
    status = _first(flat, STATUS_FIELDS)
    min_order = _coerce_float(_first(flat, MIN_ORDER_FIELDS), "minimum order amount")

    return MerchantLocation(
        id=str(merchant_id).strip(),
        coordinate=Coordinate(latitude=latitude, longitude=longitude),
        delivery_radius_meters=soft_radius,
        max_delivery_radius_meters=hard_radius,
        is_active=_coerce_bool(_first(flat, ACTIVE_FIELDS), default=True),
        is_accepting_orders=_coerce_bool(_first(flat, ACCEPTING_FIELDS), default=True),
        preparation_time_minutes=(
            preparation if preparation is not None else settings.default_preparation_time_minutes
        ),
        rating=rating if rating is not None else 0.0,
        name=str(name).strip() if name is not None else None,
        priority_zones=_parse_priority_zones(_first(flat, PRIORITY_ZONE_FIELDS)),
        cuisine_types=_parse_string_list(_first(flat, CUISINE_FIELDS)),
        operational_status=str(status).strip() if status is not None else None,
        min_order_amount=Decimal(str(min_order)) if min_order is not None else None,
    )


def _translate_rows(rows: Iterable[Mapping[str, Any]], source: str) -> Iterator[MerchantLocation]:
    for index, row in enumerate(rows):
        try:
            yield merchant_from_record(row)
        except (KeyError, ValueError, TypeError, IndexError) as e:
            # Skip invalid rows but continue processing
            logger.warning(f"Skipping invalid merchant row {index} from {source}: {e}")


def _load_merchants_from_database() -> tuple[MerchantLocation, ...] | None:
    """Load merchants from Supabase. Returns None if database not available or empty."""
    supabase = get_supabase_client()
    if not supabase:
        return None

    try:
        rows: list[dict] = []
        start = 0
        while True:
            response = (
                supabase.table(settings.supabase_merchants_table)
                .select("*")
                .range(start, start + DATABASE_PAGE_SIZE - 1)
                .execute()
            )
            page = response.data or []
            rows.extend(page)
            if len(page) < DATABASE_PAGE_SIZE:
                break
            start += DATABASE_PAGE_SIZE
    except Exception as e:
        # If database query fails, return None to fall back to file
        logger.warning(f"Merchant query failed, falling back to file: {e}")
        return None

    if not rows:
        return None
    merchants = tuple(_translate_rows(rows, "database"))
    return merchants or None


def _load_merchants_from_file(source: Path | None = None) -> tuple[MerchantLocation, ...]:
    """Load merchants from a CSV or Excel file."""
    path = source or settings.merchant_file
    if not path.exists():
        raise FileNotFoundError(f"Merchant file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        with path.open(mode="r", encoding="utf-8-sig", newline="") as handle:
            reader = csv.DictReader(handle)
            if not reader.fieldnames:
                raise ValueError(f"Merchant file '{path}' is missing a header row.")
            return tuple(_translate_rows(reader, path.name))

    if suffix == ".xlsx":
        workbook = load_workbook(path, data_only=True, read_only=True)
        try:
            rows = workbook.active.iter_rows(values_only=True)
            header = next(rows, None)
            if header is None:
                raise ValueError(f"Merchant workbook '{path}' is empty.")
            names = [str(cell).strip() if cell is not None else "" for cell in header]
            records = (
                {names[i]: value for i, value in enumerate(row) if i < len(names) and names[i]}
                for row in rows
                if any(value is not None for value in row)
            )
            return tuple(_translate_rows(records, path.name))
        finally:
            workbook.close()

    raise ValueError(f"Unsupported merchant file type '{suffix}'. Use .csv or .xlsx")


def load_merchants(source: Path | None = None) -> tuple[MerchantLocation, ...]:
    """Get merchants from the database first, falling back to the merchant file."""
    if source is None:
        db_merchants = _load_merchants_from_database()
        if db_merchants:
            logger.info(f"Loaded {len(db_merchants)} merchants from database")
            return db_merchants

    file_merchants = _load_merchants_from_file(source)
    logger.info(f"Loaded {len(file_merchants)} merchants from {source or settings.merchant_file}")
    return file_merchants
