"""Supabase client construction. One client per (url, key) for the life of the process."""
from functools import lru_cache

from supabase import create_client, Client

from .config import Settings


@lru_cache(maxsize=4)
def _client(url: str, key: str) -> Client:
    return create_client(url, key)


def get_supabase(settings: Settings) -> Client:
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
    return _client(settings.supabase_url, settings.supabase_key)
