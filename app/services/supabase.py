"""
Supabase client (storage backend).
"""
from supabase import create_client, Client
from functools import lru_cache
import logging

from app.core.config import settings
from app.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client() -> Client:
    """
    Cached Supabase client.
    Uses the service key (full access, server side only).
    """
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
        raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required")

    return create_client(
        settings.SUPABASE_URL,
        settings.SUPABASE_SERVICE_KEY
    )


async def check_supabase_connection() -> bool:
    """True if Supabase answers a trivial query."""
    try:
        get_supabase_client().table("campaigns").select("id").limit(1).execute()
        return True
    except Exception as e:
        logger.error(f"Supabase not reachable: {e}")
        return False
