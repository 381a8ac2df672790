"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/snapshot", status_code=status.HTTP_200_OK)
def health_snapshot() -> dict:
    """Report whether a merchant snapshot is published and how old it is."""
    from ...services.discovery import snapshot_store

    snapshot = snapshot_store.peek()
    if snapshot is None:
        return {"service": "snapshot", "healthy": False, "message": "Merchant snapshot not built yet."}
    return {
        "service": "snapshot",
        "healthy": True,
        "version": snapshot.version,
        "merchants": snapshot.merchant_count,
        "builtAt": snapshot.built_at.isoformat(),
    }


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check database connection and merchant table status."""
    from ...db.supabase import get_supabase_client, supabase_configured

    if not supabase_configured():
        return {
            "configured": False,
            "message": f"Supabase not configured; serving merchants from {settings.merchant_file.name}.",
        }
    supabase = get_supabase_client()
    if supabase is None:
        return {"configured": True, "connected": False, "message": "Supabase client could not be created."}

    try:
        response = supabase.table(settings.supabase_merchants_table).select("id", count="exact").limit(1).execute()
        return {
            "configured": True,
            "connected": True,
            "merchants_count": response.count,
            "message": f"Database connected. Found {response.count} merchants.",
        }
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
