"""Delivery fee schedule and peak-hour evaluation."""

from __future__ import annotations

import math
from datetime import datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, Sequence
from zoneinfo import ZoneInfo

from ...config import DeliveryZoneTierSetting
from ...models.domain import DeliveryZoneTier, PeakWindow

Clock = Callable[[], datetime]

CENT = Decimal("0.01")


def _to_decimal(value: float | int | str | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps the shortest repr of the float instead of its binary expansion
    return Decimal(str(value))


def tiers_from_settings(entries: Iterable[DeliveryZoneTierSetting]) -> tuple[DeliveryZoneTier, ...]:
    return tuple(
        DeliveryZoneTier(
            max_distance_meters=float(entry.maxDistanceMeters),
            base_fee=_to_decimal(entry.baseFee),
            per_km_rate=_to_decimal(entry.perKmRate),
        )
        for entry in entries
    )


def select_tier(distance_meters: float, tiers: Sequence[DeliveryZoneTier]) -> DeliveryZoneTier:
    """First tier covering the distance; the last tier catches anything beyond."""

    if not tiers:
        raise ValueError("At least one delivery zone tier is required")
    for tier in tiers:
        if tier.max_distance_meters >= distance_meters:
            return tier
    return tiers[-1]


def calculate_fee(
    distance_meters: float,
    tiers: Sequence[DeliveryZoneTier],
    is_peak_hour: bool,
    *,
    extended_range: bool = False,
    peak_multiplier: float | Decimal = Decimal("1.2"),
    extended_range_multiplier: float | Decimal = Decimal("1.5"),
) -> Decimal:
    """Compute the delivery fee for a distance.

    ``base_fee + per_km_rate * km``, then the extended-range surcharge, then
    the peak multiplier. Multipliers compound in that order and the result is
    rounded to cents once, at the end.
    """

    if distance_meters < 0 or not math.isfinite(distance_meters):
        raise ValueError(f"distance_meters must be a finite, non-negative number, got {distance_meters!r}")

    tier = select_tier(distance_meters, tiers)
    fee = tier.base_fee + tier.per_km_rate * _to_decimal(distance_meters) / Decimal(1000)
    if extended_range:
        fee *= _to_decimal(extended_range_multiplier)
    if is_peak_hour:
        fee *= _to_decimal(peak_multiplier)
    return fee.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_peak_window(text: str) -> PeakWindow:
    """Parse ``HH:MM-HH:MM``."""

    try:
        start_text, end_text = (part.strip() for part in text.split("-", 1))
        start = time.fromisoformat(start_text)
        end = time.fromisoformat(end_text)
    except ValueError as exc:
        raise ValueError(f"Invalid peak window '{text}'. Expected HH:MM-HH:MM") from exc
    if start == end:
        raise ValueError(f"Peak window '{text}' is empty")
    return PeakWindow(start=start, end=end)


def parse_peak_windows(values: Iterable[str]) -> tuple[PeakWindow, ...]:
    return tuple(parse_peak_window(value) for value in values)


def is_peak_hour(moment: datetime | time, windows: Iterable[PeakWindow]) -> bool:
    """Pure check of a wall-clock time against peak windows. Windows may wrap midnight."""

    clock_time = moment.time() if isinstance(moment, datetime) else moment
    clock_time = clock_time.replace(tzinfo=None)
    for window in windows:
        if window.start < window.end:
            if window.start <= clock_time < window.end:
                return True
        elif clock_time >= window.start or clock_time < window.end:
            return True
    return False


def zone_clock(zone_name: str) -> Clock:
    """Clock returning the current time in the given IANA zone."""

    zone = timezone.utc if zone_name.upper() == "UTC" else ZoneInfo(zone_name)

    def _now() -> datetime:
        return datetime.now(zone)

    return _now
