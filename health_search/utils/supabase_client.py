"""
Supabase client wrapper for the Health Search Engine
"""
from supabase import create_client, Client
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client(url: str, key: str) -> Client:
    """
    Get Supabase client instance (cached per url/key)

    Args:
        url: Supabase project URL
        key: Service role key (the service only reads published content)

    Returns:
        Supabase client instance
    """
    try:
        client = create_client(url, key)
        logger.info("Supabase client created")
        return client
    except Exception as e:
        logger.error(f"Failed to create Supabase client: {e}")
        raise
