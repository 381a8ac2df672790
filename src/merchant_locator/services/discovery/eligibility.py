"""Business rules deciding whether a merchant can serve a location."""

from __future__ import annotations

from typing import Optional

from ...models.domain import IneligibilityReason, MerchantLocation, QueryRequest


def is_eligible(
    merchant: MerchantLocation,
    distance_meters: float,
    request: QueryRequest,
) -> tuple[bool, Optional[IneligibilityReason]]:
    """Return (eligible, reason). Reasons are checked in a fixed order and only the first is reported."""

    if not merchant.is_active:
        return False, IneligibilityReason.INACTIVE
    if request.require_accepting_orders and not merchant.is_accepting_orders:
        return False, IneligibilityReason.NOT_ACCEPTING_ORDERS
    if distance_meters > merchant.max_delivery_radius_meters:
        return False, IneligibilityReason.OUT_OF_RANGE
    return True, None


def is_extended_range(merchant: MerchantLocation, distance_meters: float) -> bool:
    """True between the soft and hard radius, where the surcharge applies."""

    return merchant.delivery_radius_meters < distance_meters <= merchant.max_delivery_radius_meters
