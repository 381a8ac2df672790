import math
from datetime import time
from decimal import Decimal

import pytest
from pydantic import ValidationError

from merchant_locator.config import Settings
from merchant_locator.services.discovery import DiscoveryConfig


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def test_defaults():
    config = _settings()
    assert config.earth_radius_meters == 6371000
    assert config.grid_cell_size_degrees == 0.01
    assert config.peak_hour_windows == ("11:00-13:00", "18:00-20:00")
    assert [tier.maxDistanceMeters for tier in config.delivery_zone_tiers] == [3000, 6000, math.inf]


def test_values_from_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PEAK_HOUR_WINDOWS", "10:00-11:30, 21:00-01:00")
    monkeypatch.setenv("EARTH_RADIUS_METERS", "6378137")
    monkeypatch.setenv(
        "DELIVERY_ZONE_TIERS",
        '[{"maxDistanceMeters": 2000, "baseFee": 39}, {"maxDistanceMeters": null, "baseFee": 59, "perKmRate": 8}]',
    )
    monkeypatch.setenv("FRONTEND_ALLOWED_ORIGINS", '["https://shop.example.com"]')

    config = _settings()

    assert config.peak_hour_windows == ("10:00-11:30", "21:00-01:00")
    assert config.earth_radius_meters == 6378137
    assert config.delivery_zone_tiers[1].maxDistanceMeters == math.inf
    assert config.delivery_zone_tiers[0].perKmRate == 0
    assert config.frontend_allowed_origins == ("https://shop.example.com",)


def test_single_peak_window_without_comma(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("PEAK_HOUR_WINDOWS", "17:00-19:00")
    assert _settings().peak_hour_windows == ("17:00-19:00",)


@pytest.mark.parametrize(
    "tiers",
    [
        [],
        [{"maxDistanceMeters": 6000, "baseFee": 49}, {"maxDistanceMeters": 3000, "baseFee": 49}],
        [{"maxDistanceMeters": 3000, "baseFee": -1}],
    ],
)
def test_invalid_tier_schedules_rejected(tiers):
    with pytest.raises(ValidationError):
        _settings(delivery_zone_tiers=tiers)


def test_malformed_tier_json_rejected(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DELIVERY_ZONE_TIERS", "not json")
    with pytest.raises(ValidationError):
        _settings()


def test_default_limit_cannot_exceed_max():
    with pytest.raises(ValidationError):
        _settings(default_limit=300, max_limit=200)


def test_discovery_config_from_settings():
    config = DiscoveryConfig.from_settings(_settings(peak_hour_windows=("22:00-02:00",), peak_fee_multiplier=1.25))

    assert config.peak_windows[0].start == time(22, 0)
    assert config.peak_fee_multiplier == Decimal("1.25")
    assert config.tiers[0].base_fee == Decimal("49.0")
    assert config.tiers[-1].max_distance_meters == math.inf


def test_discovery_config_carries_timezone():
    assert DiscoveryConfig.from_settings(_settings()).timezone == "UTC"
    assert DiscoveryConfig.from_settings(_settings(timezone="Asia/Manila")).timezone == "Asia/Manila"
