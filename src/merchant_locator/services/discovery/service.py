"""High-level orchestration for merchant discovery queries."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Callable, Optional, Sequence

from ...config import Settings, settings
from ...data.merchants_repository import load_merchants
from ...errors import InvalidQueryParameterError, QueryCancelledError
from ...models.domain import DeliveryZoneTier, MerchantLocation, PeakWindow, QueryRequest, QueryResult, ResultEntry
from ..geospatial import haversine_meters_many, validate_coordinate
from .eligibility import is_eligible, is_extended_range
from .eta import estimate_eta
from .pricing import Clock, calculate_fee, is_peak_hour, parse_peak_windows, tiers_from_settings, zone_clock
from .ranking import paginate, rank_entries
from .snapshot import MerchantSnapshot, snapshot_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DiscoveryConfig:
    """The configuration values a single query depends on, frozen for its duration."""

    tiers: tuple[DeliveryZoneTier, ...]
    peak_windows: tuple[PeakWindow, ...] = ()
    earth_radius_meters: float = 6371000.0
    average_speed_meters_per_minute: float = 300.0
    peak_fee_multiplier: Decimal = Decimal("1.2")
    extended_range_surcharge_multiplier: Decimal = Decimal("1.5")
    peak_eta_multiplier: float = 1.3
    max_limit: int = 200
    candidate_batch_size: int = 512
    timezone: str = "UTC"

    @classmethod
    def from_settings(cls, source: Settings | None = None) -> "DiscoveryConfig":
        source = source or settings
        return cls(
            tiers=tiers_from_settings(source.delivery_zone_tiers),
            peak_windows=parse_peak_windows(source.peak_hour_windows),
            earth_radius_meters=source.earth_radius_meters,
            average_speed_meters_per_minute=source.average_speed_meters_per_minute,
            peak_fee_multiplier=Decimal(str(source.peak_fee_multiplier)),
            extended_range_surcharge_multiplier=Decimal(str(source.extended_range_surcharge_multiplier)),
            peak_eta_multiplier=source.peak_eta_multiplier,
            max_limit=source.max_limit,
            candidate_batch_size=source.candidate_batch_size,
            timezone=source.timezone,
        )


@lru_cache()
def get_discovery_config() -> DiscoveryConfig:
    """Discovery configuration built once from the process settings."""
    return DiscoveryConfig.from_settings()


def validate_query_request(request: QueryRequest, max_limit: int | None = None) -> QueryRequest:
    """Reject invalid requests before any computation runs."""

    validate_coordinate(request.origin)
    if isinstance(request.limit, bool) or not isinstance(request.limit, int) or request.limit <= 0:
        raise InvalidQueryParameterError(f"limit must be a positive integer, got {request.limit!r}")
    if max_limit is not None and request.limit > max_limit:
        raise InvalidQueryParameterError(f"limit must not exceed {max_limit}, got {request.limit}")
    if isinstance(request.offset, bool) or not isinstance(request.offset, int) or request.offset < 0:
        raise InvalidQueryParameterError(f"offset must be a non-negative integer, got {request.offset!r}")
    radius = request.search_radius_meters
    if radius is not None and (not math.isfinite(radius) or radius <= 0):
        raise InvalidQueryParameterError(f"radius must be a positive number of meters, got {radius!r}")
    if request.min_rating is not None and (not math.isfinite(request.min_rating) or request.min_rating < 0):
        raise InvalidQueryParameterError(f"minRating must be a non-negative number, got {request.min_rating!r}")
    max_eta = request.max_eta_minutes
    if max_eta is not None and (isinstance(max_eta, bool) or not isinstance(max_eta, int) or max_eta <= 0):
        raise InvalidQueryParameterError(f"maxDeliveryTime must be a positive number of minutes, got {max_eta!r}")
    if request.order_amount is not None and (not request.order_amount.is_finite() or request.order_amount < 0):
        raise InvalidQueryParameterError(f"orderAmount must be a non-negative amount, got {request.order_amount}")
    return request


def _matches_filters(merchant: MerchantLocation, request: QueryRequest) -> bool:
    """Catalogue filters; a merchant failing one is left out of the result entirely."""

    if request.min_rating is not None and merchant.rating < request.min_rating:
        return False
    if request.cuisine_types:
        wanted = {cuisine.casefold() for cuisine in request.cuisine_types}
        if not any(cuisine.casefold() in wanted for cuisine in merchant.cuisine_types):
            return False
    if request.operational_statuses:
        if merchant.operational_status is None:
            return False
        allowed = {status.casefold() for status in request.operational_statuses}
        if merchant.operational_status.casefold() not in allowed:
            return False
    if request.order_amount is not None and merchant.min_order_amount is not None:
        if merchant.min_order_amount > request.order_amount:
            return False
    return True


def query_merchants(
    request: QueryRequest,
    snapshot: Optional[MerchantSnapshot] = None,
    *,
    config: Optional[DiscoveryConfig] = None,
    clock: Optional[Clock] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> QueryResult:
    """Find, price and rank the merchants serving ``request.origin``.

    Deterministic for a given request, snapshot, config and clock reading.
    ``should_cancel`` is polled between candidate batches.
    """

    if config is None:
        config = get_discovery_config()
    validate_query_request(request, config.max_limit)
    if snapshot is None:
        snapshot = snapshot_store.current()
    if clock is None:
        clock = zone_clock(config.timezone)
    peak = is_peak_hour(clock(), config.peak_windows)

    origin = request.origin
    radius = (
        request.search_radius_meters
        if request.search_radius_meters is not None
        else snapshot.max_delivery_radius_meters
    )
    candidates = snapshot.grid.candidates(origin, radius)
    logger.debug(
        f"Snapshot v{snapshot.version}: {len(candidates)} of {snapshot.merchant_count} merchants "
        f"are candidates within {radius:.0f} m"
    )

    entries: list[ResultEntry] = []
    batch_size = config.candidate_batch_size
    for start in range(0, len(candidates), batch_size):
        if should_cancel is not None and should_cancel():
            raise QueryCancelledError(f"Query cancelled after {start} of {len(candidates)} candidates")
        batch = candidates[start : start + batch_size]
        distances = haversine_meters_many(
            origin,
            [merchant.coordinate.latitude for merchant in batch],
            [merchant.coordinate.longitude for merchant in batch],
            config.earth_radius_meters,
        )
        for merchant, raw_distance in zip(batch, distances):
            distance = float(raw_distance)
            if distance > radius:
                continue
            if not _matches_filters(merchant, request):
                continue
            eligible, reason = is_eligible(merchant, distance, request)
            if not eligible:
                if request.include_ineligible:
                    entries.append(
                        ResultEntry(
                            merchant_id=merchant.id,
                            distance_meters=distance,
                            delivery_fee=None,
                            eta_minutes=None,
                            eligible=False,
                            ineligibility_reason=reason,
                            rating=merchant.rating,
                        )
                    )
                continue
            eta = estimate_eta(
                distance,
                merchant.preparation_time_minutes,
                peak,
                average_speed_meters_per_minute=config.average_speed_meters_per_minute,
                peak_multiplier=config.peak_eta_multiplier,
            )
            if request.max_eta_minutes is not None and eta > request.max_eta_minutes:
                continue
            extended = is_extended_range(merchant, distance)
            entries.append(
                ResultEntry(
                    merchant_id=merchant.id,
                    distance_meters=distance,
                    delivery_fee=calculate_fee(
                        distance,
                        config.tiers,
                        peak,
                        extended_range=extended,
                        peak_multiplier=config.peak_fee_multiplier,
                        extended_range_multiplier=config.extended_range_surcharge_multiplier,
                    ),
                    eta_minutes=eta,
                    eligible=True,
                    rating=merchant.rating,
                    is_extended_range=extended,
                    is_priority_zone=snapshot.in_priority_zone(merchant.id, origin),
                )
            )

    ranked = rank_entries(entries)
    return QueryResult(
        entries=paginate(ranked, request.limit, request.offset),
        total_count=len(ranked),
        is_peak_hour=peak,
        snapshot_version=snapshot.version,
        searched_radius_meters=radius,
    )


def refresh_snapshot(loader: Optional[Callable[[], Sequence]] = None) -> MerchantSnapshot:
    """Reload merchants from the store and publish a new snapshot."""

    return snapshot_store.rebuild(
        loader or load_merchants,
        cell_size_degrees=settings.grid_cell_size_degrees,
        earth_radius_meters=settings.earth_radius_meters,
    )
