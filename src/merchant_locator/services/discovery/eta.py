"""Delivery time estimation."""

from __future__ import annotations

import math

# float noise tolerated before rounding up, in minutes
_ROUNDING_TOLERANCE_DIGITS = 9


def _ceil_minutes(value: float) -> int:
    return math.ceil(round(value, _ROUNDING_TOLERANCE_DIGITS))


def estimate_eta(
    distance_meters: float,
    preparation_time_minutes: float,
    is_peak_hour: bool,
    *,
    average_speed_meters_per_minute: float = 300.0,
    peak_multiplier: float = 1.3,
) -> int:
    """Estimate minutes from order to doorstep: preparation plus travel, rounded up.

    Travel is distance over the average speed, scaled by the congestion
    factor during peak hours before rounding.
    """

    if distance_meters < 0 or not math.isfinite(distance_meters):
        raise ValueError(f"distance_meters must be a finite, non-negative number, got {distance_meters!r}")
    if preparation_time_minutes < 0 or not math.isfinite(preparation_time_minutes):
        raise ValueError(f"preparation_time_minutes must be non-negative, got {preparation_time_minutes!r}")
    if average_speed_meters_per_minute <= 0:
        raise ValueError("average_speed_meters_per_minute must be > 0")

    travel = distance_meters / average_speed_meters_per_minute
    if is_peak_hour:
        travel *= peak_multiplier
    travel_minutes = _ceil_minutes(travel)
    return _ceil_minutes(preparation_time_minutes + travel_minutes)
