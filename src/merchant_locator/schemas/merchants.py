"""Pydantic response models for merchant discovery endpoints."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from ..models.domain import QueryResult, ResultEntry


class MerchantResultModel(BaseModel):
    merchantId: str
    distanceMeters: float
    distanceKm: float
    deliveryFee: Optional[float] = None
    etaMinutes: Optional[int] = None
    eligible: bool
    ineligibilityReason: Optional[str] = None
    rating: float
    isExtendedRange: bool = False
    isPriorityZone: bool = False

    @classmethod
    def from_entry(cls, entry: ResultEntry) -> "MerchantResultModel":
        return cls(
            merchantId=entry.merchant_id,
            # distances are only rounded here, never inside the core
            distanceMeters=round(entry.distance_meters, 2),
            distanceKm=round(entry.distance_meters / 1000, 2),
            deliveryFee=float(entry.delivery_fee) if entry.delivery_fee is not None else None,
            etaMinutes=entry.eta_minutes,
            eligible=entry.eligible,
            ineligibilityReason=entry.ineligibility_reason.value if entry.ineligibility_reason else None,
            rating=entry.rating,
            isExtendedRange=entry.is_extended_range,
            isPriorityZone=entry.is_priority_zone,
        )


class PaginationModel(BaseModel):
    limit: int
    offset: int
    page: int
    totalPages: int
    hasNextPage: bool
    hasPrevPage: bool


class SearchCenterModel(BaseModel):
    latitude: float
    longitude: float


class MerchantsByLocationData(BaseModel):
    merchants: List[MerchantResultModel]
    totalCount: int
    pagination: PaginationModel
    searchCenter: SearchCenterModel
    searchRadiusMeters: float
    isPeakHour: bool
    snapshotVersion: int


class MerchantsByLocationResponse(BaseModel):
    data: MerchantsByLocationData
    success: bool = True

    @classmethod
    def from_result(
        cls, result: QueryResult, *, latitude: float, longitude: float, pagination: dict
    ) -> "MerchantsByLocationResponse":
        return cls(
            data=MerchantsByLocationData(
                merchants=[MerchantResultModel.from_entry(entry) for entry in result.entries],
                totalCount=result.total_count,
                pagination=PaginationModel(**pagination),
                searchCenter=SearchCenterModel(latitude=latitude, longitude=longitude),
                searchRadiusMeters=round(result.searched_radius_meters, 2),
                isPeakHour=result.is_peak_hour,
                snapshotVersion=result.snapshot_version,
            )
        )


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class SnapshotMetricsModel(BaseModel):
    totalMerchants: int
    totalActiveMerchants: int
    snapshotVersion: int
    builtAt: str
    occupiedGridCells: int
    maxDeliveryRadiusMeters: float


class SnapshotMetricsResponse(BaseModel):
    data: SnapshotMetricsModel
    success: bool = True
