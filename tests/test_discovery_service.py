import math
from datetime import datetime, time
from decimal import Decimal

import pytest

from merchant_locator.errors import (
    InvalidCoordinateError,
    InvalidQueryParameterError,
    QueryCancelledError,
    SnapshotUnavailableError,
)
from merchant_locator.models.domain import (
    Coordinate,
    DeliveryZoneTier,
    IneligibilityReason,
    MerchantLocation,
    PeakWindow,
    QueryRequest,
)
from merchant_locator.schemas.merchants import MerchantResultModel
from merchant_locator.services.discovery import DiscoveryConfig, get_discovery_config, query_merchants, refresh_snapshot
from merchant_locator.services.discovery.snapshot import build_snapshot, snapshot_store

ORIGIN = Coordinate(14.5995, 120.9842)
EARTH_RADIUS = 6371000.0

CONFIG = DiscoveryConfig(
    tiers=(
        DeliveryZoneTier(3000, Decimal("49"), Decimal("0")),
        DeliveryZoneTier(6000, Decimal("49"), Decimal("10")),
        DeliveryZoneTier(float("inf"), Decimal("69"), Decimal("12")),
    ),
    peak_windows=(PeakWindow(time(11, 0), time(13, 0)),),
)


def _off_peak() -> datetime:
    return datetime(2026, 10, 19, 9, 0)


def _peak() -> datetime:
    return datetime(2026, 10, 19, 12, 0)


def _north(meters: float) -> Coordinate:
    """Point due north of ORIGIN at the given great-circle distance."""
    return Coordinate(ORIGIN.latitude + math.degrees(meters / EARTH_RADIUS), ORIGIN.longitude)


def _merchant(mid: str, coordinate: Coordinate = ORIGIN, **overrides) -> MerchantLocation:
    values = dict(
        id=mid,
        coordinate=coordinate,
        delivery_radius_meters=3000,
        max_delivery_radius_meters=5000,
        is_active=True,
        is_accepting_orders=True,
        preparation_time_minutes=20,
        rating=4.0,
    )
    values.update(overrides)
    return MerchantLocation(**values)


def _query(merchants, clock=_off_peak, **request_fields):
    snapshot = build_snapshot(merchants, version=1)
    request = QueryRequest(origin=ORIGIN, **request_fields)
    return query_merchants(request, snapshot, config=CONFIG, clock=clock)


@pytest.fixture(autouse=True)
def _empty_store():
    snapshot_store.clear()
    yield
    snapshot_store.clear()


def test_merchant_at_origin_is_eligible_at_base_fee():
    result = _query([_merchant("M1")])

    assert result.total_count == 1
    entry = result.entries[0]
    assert entry.merchant_id == "M1"
    assert entry.distance_meters == 0.0
    assert entry.eligible
    assert entry.delivery_fee == Decimal("49.00")
    assert entry.eta_minutes == 20
    assert not entry.is_extended_range
    assert not result.is_peak_hour


def test_merchant_beyond_hard_radius_is_reported_out_of_range():
    result = _query([_merchant("M2", _north(6000))], search_radius_meters=10000, include_ineligible=True)

    entry = result.entries[0]
    assert not entry.eligible
    assert entry.ineligibility_reason is IneligibilityReason.OUT_OF_RANGE
    assert entry.delivery_fee is None
    assert entry.eta_minutes is None


def test_ineligible_merchants_hidden_by_default():
    result = _query([_merchant("M2", _north(6000))], search_radius_meters=10000)
    assert result.entries == []
    assert result.total_count == 0


def test_inactive_merchant_reason():
    result = _query([_merchant("M3", is_active=False)], include_ineligible=True)
    assert result.entries[0].ineligibility_reason is IneligibilityReason.INACTIVE


def test_not_accepting_orders_respects_request_flag():
    merchants = [_merchant("M4", is_accepting_orders=False)]

    hidden = _query(merchants, include_ineligible=True)
    assert hidden.entries[0].ineligibility_reason is IneligibilityReason.NOT_ACCEPTING_ORDERS

    shown = _query(merchants, require_accepting_orders=False)
    assert shown.entries[0].eligible


def test_pagination_returns_second_nearest():
    merchants = [_merchant("far", _north(2000)), _merchant("near", _north(1000))]
    result = _query(merchants, limit=1, offset=1)

    assert [entry.merchant_id for entry in result.entries] == ["far"]
    assert result.total_count == 2


def test_equal_distance_ranks_higher_rating_first():
    merchants = [_merchant("low", rating=3.2), _merchant("high", rating=4.8), _merchant("mid", rating=4.0)]
    result = _query(merchants)
    assert [entry.merchant_id for entry in result.entries] == ["high", "mid", "low"]


def test_extended_range_and_peak_pricing():
    merchant = _merchant("M5", _north(4500))

    off_peak = _query([merchant]).entries[0]
    assert off_peak.is_extended_range
    assert off_peak.delivery_fee == Decimal("141.00")
    assert off_peak.eta_minutes == 20 + 15

    peak = _query([merchant], clock=_peak)
    assert peak.is_peak_hour
    assert peak.entries[0].delivery_fee == Decimal("169.20")
    assert peak.entries[0].eta_minutes == 20 + 20


def test_search_radius_limits_results():
    merchants = [_merchant("near", _north(500)), _merchant("edge", _north(2500))]
    result = _query(merchants, search_radius_meters=1000)
    assert [entry.merchant_id for entry in result.entries] == ["near"]
    assert result.searched_radius_meters == 1000


def test_default_radius_is_largest_hard_radius():
    merchants = [_merchant("wide", _north(9000), delivery_radius_meters=8000, max_delivery_radius_meters=10000)]
    result = _query(merchants)
    assert result.searched_radius_meters == 10000
    assert [entry.merchant_id for entry in result.entries] == ["wide"]


def test_min_rating_filters_out_merchants():
    merchants = [_merchant("good", rating=4.6), _merchant("meh", rating=3.9)]
    result = _query(merchants, min_rating=4.5, include_ineligible=True)
    assert [entry.merchant_id for entry in result.entries] == ["good"]


def test_priority_zone_is_flagged():
    zone = ((14.5, 120.9), (14.7, 120.9), (14.7, 121.1), (14.5, 121.1))
    result = _query([_merchant("zoned", priority_zones=(zone,)), _merchant("plain")])
    flags = {entry.merchant_id: entry.is_priority_zone for entry in result.entries}
    assert flags == {"zoned": True, "plain": False}


def test_repeated_queries_are_identical():
    merchants = [_merchant(f"M{i}", _north(i * 137.0), rating=(i % 5) + 0.5) for i in range(60)]
    snapshot = build_snapshot(merchants, version=7)
    request = QueryRequest(origin=ORIGIN, limit=25, offset=5, include_ineligible=True)

    first = query_merchants(request, snapshot, config=CONFIG, clock=_off_peak)
    second = query_merchants(request, snapshot, config=CONFIG, clock=_off_peak)

    assert first == second
    dumped = [MerchantResultModel.from_entry(entry).model_dump_json() for entry in first.entries]
    assert dumped == [MerchantResultModel.from_entry(entry).model_dump_json() for entry in second.entries]
    assert first.snapshot_version == 7


def test_batches_cover_every_candidate():
    merchants = [_merchant(f"M{i:03d}", _north(i * 10.0)) for i in range(300)]
    config = DiscoveryConfig(tiers=CONFIG.tiers, candidate_batch_size=7)
    snapshot = build_snapshot(merchants, version=1)

    result = query_merchants(QueryRequest(origin=ORIGIN, limit=200), snapshot, config=config, clock=_off_peak)

    assert result.total_count == 300
    distances = [entry.distance_meters for entry in result.entries]
    assert distances == sorted(distances)


def test_cancellation_is_observed():
    snapshot = build_snapshot([_merchant("M1")], version=1)
    with pytest.raises(QueryCancelledError):
        query_merchants(QueryRequest(origin=ORIGIN), snapshot, config=CONFIG, clock=_off_peak, should_cancel=lambda: True)


def test_query_without_snapshot_is_unavailable():
    with pytest.raises(SnapshotUnavailableError):
        query_merchants(QueryRequest(origin=ORIGIN), config=CONFIG, clock=_off_peak)


def test_query_uses_published_snapshot():
    refresh_snapshot(lambda: [_merchant("M1")])
    result = query_merchants(QueryRequest(origin=ORIGIN), config=CONFIG, clock=_off_peak)
    assert result.snapshot_version == 1
    assert result.entries[0].merchant_id == "M1"


@pytest.mark.parametrize(
    "fields",
    [
        {"limit": 0},
        {"limit": 201},
        {"limit": True},
        {"offset": -1},
        {"search_radius_meters": 0},
        {"search_radius_meters": float("nan")},
        {"min_rating": -1},
    ],
)
def test_invalid_parameters_rejected(fields):
    with pytest.raises(InvalidQueryParameterError):
        _query([_merchant("M1")], **fields)


@pytest.mark.parametrize("origin", [Coordinate(91, 0), Coordinate(0, float("nan")), Coordinate(0, -180.1)])
def test_invalid_origin_rejected(origin):
    snapshot = build_snapshot([_merchant("M1")], version=1)
    with pytest.raises(InvalidCoordinateError):
        query_merchants(QueryRequest(origin=origin), snapshot, config=CONFIG, clock=_off_peak)


def test_max_delivery_time_filters_on_computed_eta():
    merchants = [_merchant("quick", _north(600)), _merchant("slow", _north(4500))]
    # quick: 20 + 2 minutes (23 at peak), slow: 20 + 15 minutes
    result = _query(merchants, max_eta_minutes=30)
    assert [entry.merchant_id for entry in result.entries] == ["quick"]
    assert result.total_count == 1

    peak = _query(merchants, clock=_peak, max_eta_minutes=23)
    assert [entry.eta_minutes for entry in peak.entries] == [23]


def test_cuisine_filter_is_case_insensitive():
    merchants = [
        _merchant("pizza", cuisine_types=("Italian", "Pizza")),
        _merchant("ramen", cuisine_types=("Japanese",)),
        _merchant("unknown"),
    ]
    result = _query(merchants, cuisine_types=("italian", "THAI"))
    assert [entry.merchant_id for entry in result.entries] == ["pizza"]


def test_operational_status_filter():
    merchants = [
        _merchant("open", operational_status="OPEN"),
        _merchant("busy", operational_status="busy"),
        _merchant("closed", operational_status="CLOSED"),
        _merchant("unset"),
    ]
    result = _query(merchants, operational_statuses=("open", "BUSY"))
    assert sorted(entry.merchant_id for entry in result.entries) == ["busy", "open"]


def test_order_amount_leaves_out_higher_minimums():
    merchants = [
        _merchant("cheap", min_order_amount=Decimal("100")),
        _merchant("exact", min_order_amount=Decimal("250")),
        _merchant("pricey", min_order_amount=Decimal("500")),
        _merchant("no-minimum"),
    ]
    result = _query(merchants, order_amount=Decimal("250"))
    assert sorted(entry.merchant_id for entry in result.entries) == ["cheap", "exact", "no-minimum"]


@pytest.mark.parametrize(
    "fields",
    [{"max_eta_minutes": 0}, {"max_eta_minutes": 2.5}, {"order_amount": Decimal("-1")}, {"order_amount": Decimal("NaN")}],
)
def test_invalid_filter_values_rejected(fields):
    with pytest.raises(InvalidQueryParameterError):
        _query([_merchant("M1")], **fields)


def test_default_clock_uses_configured_timezone(monkeypatch: pytest.MonkeyPatch):
    from merchant_locator.services.discovery import service as discovery_service

    zones = []

    def _clock_for(zone_name):
        zones.append(zone_name)
        return _peak

    monkeypatch.setattr(discovery_service, "zone_clock", _clock_for)
    config = DiscoveryConfig(tiers=CONFIG.tiers, peak_windows=CONFIG.peak_windows, timezone="Asia/Manila")
    snapshot = build_snapshot([_merchant("M1")], version=1)

    result = query_merchants(QueryRequest(origin=ORIGIN), snapshot, config=config)

    assert zones == ["Asia/Manila"]
    assert result.is_peak_hour


def test_process_config_is_built_once():
    get_discovery_config.cache_clear()
    try:
        assert get_discovery_config() is get_discovery_config()
    finally:
        get_discovery_config.cache_clear()
