"""Merchant discovery service exports."""

from .service import (
    DiscoveryConfig,
    get_discovery_config,
    query_merchants,
    refresh_snapshot,
    validate_query_request,
)
from .snapshot import MerchantSnapshot, SnapshotRefresher, build_snapshot, snapshot_store

__all__ = [
    "DiscoveryConfig",
    "MerchantSnapshot",
    "SnapshotRefresher",
    "build_snapshot",
    "get_discovery_config",
    "query_merchants",
    "refresh_snapshot",
    "snapshot_store",
    "validate_query_request",
]
