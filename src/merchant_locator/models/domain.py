"""Domain models for merchant discovery queries."""

from dataclasses import dataclass
from datetime import time
from decimal import Decimal
from enum import Enum
from typing import Optional

PolygonVertices = tuple[tuple[float, float], ...]


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A WGS84 point in decimal degrees."""

    latitude: float
    longitude: float


@dataclass(frozen=True, slots=True)
class MerchantLocation:
    """Read-only view of a merchant outlet as delivered by the merchant store."""

    id: str
    coordinate: Coordinate
    delivery_radius_meters: float
    max_delivery_radius_meters: float
    is_active: bool
    is_accepting_orders: bool
    preparation_time_minutes: float
    rating: float
    name: Optional[str] = None
    priority_zones: tuple[PolygonVertices, ...] = ()
    cuisine_types: tuple[str, ...] = ()
    operational_status: Optional[str] = None
    min_order_amount: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class DeliveryZoneTier:
    """Distance band of the fee schedule; the last band is unbounded."""

    max_distance_meters: float
    base_fee: Decimal
    per_km_rate: Decimal


@dataclass(frozen=True, slots=True)
class PeakWindow:
    """Local wall-clock range, start inclusive and end exclusive."""

    start: time
    end: time


@dataclass(frozen=True, slots=True)
class QueryRequest:
    origin: Coordinate
    search_radius_meters: Optional[float] = None
    limit: int = 50
    offset: int = 0
    require_accepting_orders: bool = True
    include_ineligible: bool = False
    min_rating: Optional[float] = None
    max_eta_minutes: Optional[int] = None
    # customer basket value; merchants whose minimum order exceeds it are left out
    order_amount: Optional[Decimal] = None
    cuisine_types: tuple[str, ...] = ()
    operational_statuses: tuple[str, ...] = ()


class IneligibilityReason(str, Enum):
    INACTIVE = "INACTIVE"
    NOT_ACCEPTING_ORDERS = "NOT_ACCEPTING_ORDERS"
    OUT_OF_RANGE = "OUT_OF_RANGE"


@dataclass(frozen=True, slots=True)
class ResultEntry:
    """Per-query outcome for one merchant. Fee and ETA are only set when eligible."""

    merchant_id: str
    distance_meters: float
    delivery_fee: Optional[Decimal]
    eta_minutes: Optional[int]
    eligible: bool
    ineligibility_reason: Optional[IneligibilityReason] = None
    rating: float = 0.0
    is_extended_range: bool = False
    is_priority_zone: bool = False


@dataclass(frozen=True, slots=True)
class QueryResult:
    entries: list[ResultEntry]
    total_count: int
    is_peak_hour: bool
    snapshot_version: int
    searched_radius_meters: float = 0.0
