"""
Supabase client initialization helpers.
"""

import logging
import os
from typing import Optional

from supabase import create_client, Client
from yarl import URL

logger = logging.getLogger(__name__)


def normalize_supabase_url(url: Optional[str]) -> Optional[str]:
    """Ensure Supabase URL ends with a trailing slash to satisfy storage client."""
    if not url:
        return None
    normalized = url if url.endswith("/") else f"{url}/"
    os.environ["SUPABASE_URL"] = normalized
    return normalized


def _fix_storage_url(supabase: Client) -> None:
    # Ensure storage_url ends with a slash to avoid storage3 warnings.
    try:
        storage_url = str(supabase.storage_url)
        if not storage_url.endswith("/"):
            supabase.storage_url = URL(f"{storage_url}/")
    except Exception as e:
        logger.debug(f"Could not normalize storage URL: {e}")


def get_supabase_client(access_token: Optional[str] = None) -> Optional[Client]:
    """
    Initialize and return a Supabase client from environment variables.
    If access_token is provided, it is sent as the Bearer token for
    PostgREST/Storage requests while the anon key stays the apiKey header.

    Requires:
        - SUPABASE_URL
        - SUPABASE_ANON_KEY

    Returns:
        Supabase client instance, or None if credentials are missing
    """
    supabase_url = normalize_supabase_url(os.environ.get("SUPABASE_URL"))
    supabase_key = os.environ.get("SUPABASE_ANON_KEY")
    if not supabase_url or not supabase_key:
        return None

    try:
        supabase: Client = create_client(supabase_url, supabase_key)
    except Exception as e:
        logger.error(f"❌ Error initializing Supabase client: {e}")
        return None

    if access_token:
        bearer = f"Bearer {access_token}"
        try:
            supabase.postgrest.auth(access_token)
        except Exception as e:
            logger.warning(f"⚠️ Could not apply access token to PostgREST client: {e}")
        try:
            supabase.storage._client.headers["Authorization"] = bearer
        except Exception as e:
            logger.warning(f"⚠️ Could not apply access token to Storage client: {e}")

    _fix_storage_url(supabase)
    return supabase


def get_service_client() -> Optional[Client]:
    """
    Return a client using SUPABASE_SERVICE_ROLE_KEY (bypasses RLS).
    Used by workers that read the whole assignment corpus.
    """
    supabase_url = normalize_supabase_url(os.environ.get("SUPABASE_URL"))
    service_key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
    if not supabase_url or not service_key:
        return None
    supabase = create_client(supabase_url, service_key)
    _fix_storage_url(supabase)
    return supabase
