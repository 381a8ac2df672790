"""Ordering and pagination of query results."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import ResultEntry


def rank_key(entry: ResultEntry) -> tuple[float, float, str]:
    # nearest first, better rated first on ties, id keeps the order total
    return (entry.distance_meters, -entry.rating, entry.merchant_id)


def rank_entries(entries: Sequence[ResultEntry]) -> list[ResultEntry]:
    return sorted(entries, key=rank_key)


def paginate(entries: Sequence[ResultEntry], limit: int, offset: int) -> list[ResultEntry]:
    if limit <= 0:
        raise ValueError("limit must be > 0")
    if offset < 0:
        raise ValueError("offset must be >= 0")
    return list(entries[offset : offset + limit])


def page_metadata(total_count: int, limit: int, offset: int) -> dict:
    total_pages = -(-total_count // limit) if total_count else 0
    return {
        "limit": limit,
        "offset": offset,
        "page": offset // limit + 1,
        "totalPages": total_pages,
        "hasNextPage": offset + limit < total_count,
        "hasPrevPage": offset > 0,
    }
