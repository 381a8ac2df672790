"""Immutable merchant snapshots and the store that publishes them."""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, Optional, Sequence

from shapely.geometry import Point
from shapely.prepared import PreparedGeometry, prep

from ...errors import InvalidCoordinateError, SnapshotUnavailableError
from ...models.domain import Coordinate, MerchantLocation
from ..geospatial import EARTH_RADIUS_METERS, build_polygon, validate_coordinate
from .grid import SpatialGrid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MerchantSnapshot:
    """One consistent, versioned view of the merchant catalogue and its spatial index."""

    version: int
    built_at: datetime
    merchants: tuple[MerchantLocation, ...]
    grid: SpatialGrid
    priority_zones: Mapping[str, tuple[PreparedGeometry, ...]] = field(default_factory=dict)
    # largest hard radius in the catalogue; no merchant is eligible beyond it
    max_delivery_radius_meters: float = 0.0

    @property
    def merchant_count(self) -> int:
        return len(self.merchants)

    @property
    def active_count(self) -> int:
        return sum(1 for merchant in self.merchants if merchant.is_active)

    def in_priority_zone(self, merchant_id: str, point: Coordinate) -> bool:
        zones = self.priority_zones.get(merchant_id, ())
        if not zones:
            return False
        shapely_point = Point(point.longitude, point.latitude)
        return any(zone.intersects(shapely_point) for zone in zones)


def _numeric_problem(merchant: MerchantLocation) -> Optional[str]:
    """Describe the first unusable numeric field of a record, or return None."""

    soft, hard = merchant.delivery_radius_meters, merchant.max_delivery_radius_meters
    if not math.isfinite(soft) or soft <= 0:
        return f"delivery radius must be a positive number of meters, got {soft!r}"
    if not math.isfinite(hard) or hard < soft:
        return f"max delivery radius {hard!r} must be finite and not below soft radius {soft!r}"
    preparation = merchant.preparation_time_minutes
    if not math.isfinite(preparation) or preparation < 0:
        return f"preparation time must be a non-negative number of minutes, got {preparation!r}"
    if not math.isfinite(merchant.rating) or merchant.rating < 0:
        return f"rating must be a non-negative number, got {merchant.rating!r}"
    if merchant.min_order_amount is not None and (
        not merchant.min_order_amount.is_finite() or merchant.min_order_amount < 0
    ):
        return f"minimum order amount must be non-negative, got {merchant.min_order_amount}"
    return None


def build_snapshot(
    merchants: Iterable[MerchantLocation],
    *,
    version: int,
    cell_size_degrees: float = 0.01,
    earth_radius_meters: float = EARTH_RADIUS_METERS,
    built_at: Optional[datetime] = None,
) -> MerchantSnapshot:
    """Validate merchant records and index them into a new snapshot.

    Records with invalid coordinates, unusable radii, preparation time or
    rating, or a duplicate id are skipped with a warning so that one bad row
    never blocks a rebuild or fails a query.
    """

    accepted: list[MerchantLocation] = []
    seen: set[str] = set()
    zones: dict[str, tuple[PreparedGeometry, ...]] = {}
    for merchant in merchants:
        if merchant.id in seen:
            logger.warning(f"Skipping duplicate merchant id '{merchant.id}'")
            continue
        try:
            validate_coordinate(merchant.coordinate)
        except InvalidCoordinateError as exc:
            logger.warning(f"Skipping merchant '{merchant.id}' with invalid coordinates: {exc}")
            continue
        problem = _numeric_problem(merchant)
        if problem is not None:
            logger.warning(f"Skipping merchant '{merchant.id}': {problem}")
            continue
        seen.add(merchant.id)
        accepted.append(merchant)
        if merchant.priority_zones:
            zones[merchant.id] = tuple(
                prep(build_polygon(vertices)) for vertices in merchant.priority_zones if len(vertices) >= 3
            )

    merchants_tuple = tuple(accepted)
    grid = SpatialGrid(merchants_tuple, cell_size_degrees=cell_size_degrees, earth_radius_meters=earth_radius_meters)
    return MerchantSnapshot(
        version=version,
        built_at=built_at or datetime.now(timezone.utc),
        merchants=merchants_tuple,
        grid=grid,
        priority_zones=zones,
        max_delivery_radius_meters=max((m.max_delivery_radius_meters for m in merchants_tuple), default=0.0),
    )


class SnapshotStore:
    """Holds the currently published snapshot.

    Readers take the reference without locking; publishers are serialized so
    version numbers stay monotonic.
    """

    def __init__(self) -> None:
        self._snapshot: Optional[MerchantSnapshot] = None
        self._write_lock = threading.Lock()
        self._rebuild_lock = threading.Lock()

    def current(self) -> MerchantSnapshot:
        snapshot = self._snapshot
        if snapshot is None:
            raise SnapshotUnavailableError("Merchant snapshot has not been built yet; retry shortly.")
        return snapshot

    def peek(self) -> Optional[MerchantSnapshot]:
        return self._snapshot

    def next_version(self) -> int:
        snapshot = self._snapshot
        return 1 if snapshot is None else snapshot.version + 1

    def publish(self, snapshot: MerchantSnapshot) -> MerchantSnapshot:
        with self._write_lock:
            previous = self._snapshot
            if previous is not None and snapshot.version <= previous.version:
                raise ValueError(
                    f"Snapshot version {snapshot.version} is not newer than published version {previous.version}"
                )
            self._snapshot = snapshot
        logger.info(f"Published merchant snapshot v{snapshot.version} with {snapshot.merchant_count} merchants")
        return snapshot

    def rebuild(
        self,
        loader: Callable[[], Sequence[MerchantLocation]],
        *,
        cell_size_degrees: float,
        earth_radius_meters: float,
    ) -> MerchantSnapshot:
        """Load merchants, build a snapshot off to the side, then publish it."""

        with self._rebuild_lock:
            merchants = loader()
            snapshot = build_snapshot(
                merchants,
                version=self.next_version(),
                cell_size_degrees=cell_size_degrees,
                earth_radius_meters=earth_radius_meters,
            )
            return self.publish(snapshot)

    def clear(self) -> None:
        with self._write_lock:
            self._snapshot = None


snapshot_store = SnapshotStore()


class SnapshotRefresher:
    """Background thread that rebuilds the snapshot on a fixed interval."""

    def __init__(self, refresh: Callable[[], MerchantSnapshot], interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._refresh = refresh
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="merchant-snapshot-refresher", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._refresh()
            except Exception as exc:
                logger.error(f"Merchant snapshot refresh failed, keeping previous snapshot: {exc}")
