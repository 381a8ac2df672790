"""Supabase client for the merchant store."""

import logging
from functools import lru_cache

from supabase import Client, create_client

from ..config import settings

logger = logging.getLogger(__name__)


def supabase_configured() -> bool:
    return bool(settings.supabase_url and settings.supabase_key)


@lru_cache()
def get_supabase_client() -> Client | None:
    """Return the shared client, or None when the merchant file should be used instead.

    Creating the client does not open a connection; queries can still fail.
    """
    if not supabase_configured():
        logger.info(f"SUPABASE_URL/SUPABASE_KEY not set; merchants will be read from {settings.merchant_file}")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as exc:
        logger.error(f"Could not create Supabase client for {settings.supabase_url}: {exc}")
        return None
