"""Grid-based spatial index used to narrow merchant candidates before exact distances."""

from __future__ import annotations

import math
from collections import defaultdict
from typing import Iterable, Sequence

from ...models.domain import Coordinate, MerchantLocation
from ..geospatial import EARTH_RADIUS_METERS

CellKey = tuple[int, int]


class SpatialGrid:
    """Buckets merchants by fixed-size latitude/longitude cells.

    ``candidates`` returns every merchant whose cell intersects the square
    circumscribing the search circle. The square is widened with a
    ``1/cos(latitude)`` longitude correction, so the result may contain
    merchants outside the circle but never misses one inside it.
    """

    def __init__(
        self,
        merchants: Sequence[MerchantLocation],
        cell_size_degrees: float = 0.01,
        earth_radius_meters: float = EARTH_RADIUS_METERS,
    ) -> None:
        if cell_size_degrees <= 0:
            raise ValueError("cell_size_degrees must be > 0")
        self.cell_size_degrees = cell_size_degrees
        self.earth_radius_meters = earth_radius_meters
        self._positions: dict[str, int] = {}
        cells: dict[CellKey, list[MerchantLocation]] = defaultdict(list)
        for position, merchant in enumerate(merchants):
            self._positions[merchant.id] = position
            cells[self.cell_key(merchant.coordinate)].append(merchant)
        self._cells: dict[CellKey, tuple[MerchantLocation, ...]] = {
            key: tuple(bucket) for key, bucket in cells.items()
        }

    def __len__(self) -> int:
        return len(self._positions)

    @property
    def occupied_cells(self) -> int:
        return len(self._cells)

    def cell_key(self, coordinate: Coordinate) -> CellKey:
        return (
            math.floor(coordinate.latitude / self.cell_size_degrees),
            math.floor(coordinate.longitude / self.cell_size_degrees),
        )

    def bounding_box(self, origin: Coordinate, radius_meters: float) -> tuple[float, float, list[tuple[float, float]]]:
        """Return (lat_min, lat_max, longitude ranges) of the square around the search circle."""

        angular = radius_meters / self.earth_radius_meters
        delta_lat = math.degrees(angular)
        lat_min = origin.latitude - delta_lat
        lat_max = origin.latitude + delta_lat
        if lat_min <= -90.0 or lat_max >= 90.0 or angular >= math.pi / 2:
            # circle reaches a pole: every meridian passes through it
            return max(lat_min, -90.0), min(lat_max, 90.0), [(-180.0, 180.0)]

        far_latitude = math.radians(max(abs(lat_min), abs(lat_max)))
        delta_lng = delta_lat / math.cos(far_latitude)
        ratio = math.sin(angular) / math.cos(math.radians(origin.latitude))
        if ratio < 1.0:
            delta_lng = max(delta_lng, math.degrees(math.asin(ratio)))
        else:
            delta_lng = 180.0
        if delta_lng >= 180.0:
            return lat_min, lat_max, [(-180.0, 180.0)]

        lng_min = origin.longitude - delta_lng
        lng_max = origin.longitude + delta_lng
        if lng_min < -180.0:
            ranges = [(lng_min + 360.0, 180.0), (-180.0, lng_max)]
        elif lng_max > 180.0:
            ranges = [(lng_min, 180.0), (-180.0, lng_max - 360.0)]
        else:
            ranges = [(lng_min, lng_max)]
        return lat_min, lat_max, ranges

    def _cell_ranges(self, origin: Coordinate, radius_meters: float) -> tuple[range, list[range]]:
        lat_min, lat_max, lng_ranges = self.bounding_box(origin, radius_meters)
        size = self.cell_size_degrees
        rows = range(math.floor(lat_min / size), math.floor(lat_max / size) + 1)
        columns = [range(math.floor(low / size), math.floor(high / size) + 1) for low, high in lng_ranges]
        return rows, columns

    def candidate_cells(self, origin: Coordinate, radius_meters: float) -> list[CellKey]:
        """Occupied cells intersecting the bounding square, in deterministic order."""

        if radius_meters < 0 or not math.isfinite(radius_meters):
            raise ValueError(f"radius_meters must be a finite, non-negative number, got {radius_meters!r}")
        rows, columns = self._cell_ranges(origin, radius_meters)
        box_cells = len(rows) * sum(len(column_range) for column_range in columns)
        if box_cells > len(self._cells):
            # cheaper to test every occupied cell than to enumerate the box
            keys = [
                key
                for key in self._cells
                if key[0] in rows and any(key[1] in column_range for column_range in columns)
            ]
        else:
            keys = [
                (row, column)
                for row in rows
                for column_range in columns
                for column in column_range
                if (row, column) in self._cells
            ]
        return sorted(set(keys))

    def candidates(self, origin: Coordinate, radius_meters: float) -> list[MerchantLocation]:
        """Merchants possibly within ``radius_meters`` of ``origin``, in snapshot order."""

        found: Iterable[MerchantLocation] = (
            merchant for key in self.candidate_cells(origin, radius_meters) for merchant in self._cells[key]
        )
        return sorted(found, key=lambda merchant: self._positions[merchant.id])
