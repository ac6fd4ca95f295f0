import logging
from typing import Any, List, Dict, Optional

from supabase import create_client, Client

from lib.config import get_settings, Settings
from lib.error_handler import StoreError

logger = logging.getLogger(__name__)

def create_supabase_client(settings: Optional[Settings] = None) -> Client:
    """Create the Supabase client used by every store"""
    settings = settings or get_settings()
    logger.info("Initializing Supabase client...")
    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
        logger.info("Supabase client initialized successfully")
        return client
    except Exception as e:
        logger.error(f"Error initializing Supabase client: {str(e)}")
        raise

def rows(result: Any, action: str) -> List[Dict[str, Any]]:
    """Return the rows of a Supabase response, raising StoreError on an error payload"""
    if hasattr(result, 'error') and result.error:
        raise StoreError(f"Supabase error while {action}: {result.error}")
    return list(result.data or [])
