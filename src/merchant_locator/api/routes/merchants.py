"""Merchant discovery endpoints."""

from __future__ import annotations

import logging
import time
from decimal import Decimal
from typing import Callable, Optional

from fastapi import APIRouter, HTTPException, Query, status

from ...config import settings
from ...errors import DiscoveryError
from ...models.domain import Coordinate, QueryRequest
from ...schemas.merchants import (
    ErrorResponse,
    MerchantsByLocationResponse,
    SnapshotMetricsModel,
    SnapshotMetricsResponse,
)
from ...services.discovery import query_merchants, refresh_snapshot, snapshot_store
from ...services.discovery.ranking import page_metadata

logger = logging.getLogger(__name__)

router = APIRouter(tags=["merchants"])

_ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
}


def _deadline(timeout_seconds: float) -> Optional[Callable[[], bool]]:
    """Turn the configured per-query timeout into a cancellation predicate."""
    if timeout_seconds <= 0:
        return None
    expires_at = time.monotonic() + timeout_seconds
    return lambda: time.monotonic() >= expires_at


def _split_values(values: Optional[list[str]]) -> tuple[str, ...]:
    # accepts repeated parameters as well as comma-separated values
    if not values:
        return ()
    return tuple(part.strip() for value in values for part in value.split(",") if part.strip())


@router.get(
    "/merchants-by-location",
    response_model=MerchantsByLocationResponse,
    responses=_ERROR_RESPONSES,
    status_code=status.HTTP_200_OK,
)
def merchants_by_location(
    latitude: float = Query(..., description="Customer latitude in decimal degrees."),
    longitude: float = Query(..., description="Customer longitude in decimal degrees."),
    radius: float | None = Query(default=None, description="Optional search radius in meters."),
    limit: int | None = Query(default=None, description="Page size; defaults to the configured limit."),
    offset: int = Query(default=0, description="Number of results to skip."),
    require_accepting_orders: bool = Query(default=True, alias="requireAcceptingOrders"),
    include_ineligible: bool = Query(
        default=False,
        alias="includeIneligible",
        description="Diagnostic view: also return merchants that cannot serve the location, with the reason.",
    ),
    min_rating: float | None = Query(default=None, alias="minRating"),
    max_delivery_time: int | None = Query(
        default=None, alias="maxDeliveryTime", description="Upper bound on the estimated delivery time in minutes."
    ),
    order_amount: Decimal | None = Query(
        default=None, alias="orderAmount", description="Basket value; merchants with a higher minimum order are left out."
    ),
    cuisine_types: list[str] | None = Query(default=None, alias="cuisineTypes"),
    operational_status: list[str] | None = Query(default=None, alias="operationalStatus"),
) -> MerchantsByLocationResponse:
    effective_limit = limit if limit is not None else settings.default_limit
    request = QueryRequest(
        origin=Coordinate(latitude=latitude, longitude=longitude),
        search_radius_meters=radius,
        limit=effective_limit,
        offset=offset,
        require_accepting_orders=require_accepting_orders,
        include_ineligible=include_ineligible,
        min_rating=min_rating,
        max_eta_minutes=max_delivery_time,
        order_amount=order_amount,
        cuisine_types=_split_values(cuisine_types),
        operational_statuses=_split_values(operational_status),
    )
    try:
        result = query_merchants(request, should_cancel=_deadline(settings.query_timeout_seconds))
    except DiscoveryError as exc:
        if exc.status_code >= 500:
            logger.warning(f"Merchant query failed: {exc}")
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Unexpected error while searching merchants")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to find merchants by location: {exc}",
        ) from exc

    return MerchantsByLocationResponse.from_result(
        result,
        latitude=latitude,
        longitude=longitude,
        pagination=page_metadata(result.total_count, effective_limit, offset),
    )


def _metrics() -> SnapshotMetricsResponse:
    snapshot = snapshot_store.current()
    return SnapshotMetricsResponse(
        data=SnapshotMetricsModel(
            totalMerchants=snapshot.merchant_count,
            totalActiveMerchants=snapshot.active_count,
            snapshotVersion=snapshot.version,
            builtAt=snapshot.built_at.isoformat(),
            occupiedGridCells=snapshot.grid.occupied_cells,
            maxDeliveryRadiusMeters=snapshot.max_delivery_radius_meters,
        )
    )


@router.get("/merchants/metrics", response_model=SnapshotMetricsResponse, responses=_ERROR_RESPONSES)
def merchant_metrics() -> SnapshotMetricsResponse:
    """Catalogue counts for monitoring."""
    try:
        return _metrics()
    except DiscoveryError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


@router.post("/merchants/snapshot/refresh", response_model=SnapshotMetricsResponse, responses=_ERROR_RESPONSES)
def refresh_merchant_snapshot() -> SnapshotMetricsResponse:
    """Reload merchants from the store and publish a new snapshot."""
    try:
        refresh_snapshot()
    except Exception as exc:
        logger.error(f"Manual merchant snapshot refresh failed: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to refresh merchant snapshot: {exc}",
        ) from exc
    return _metrics()
