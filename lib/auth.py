import logging
from typing import Optional

from lib.error_handler import NotAuthenticated

logger = logging.getLogger(__name__)

def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()

def get_user_id(supabase, authorization: Optional[str]) -> str:
    """Resolve the Supabase user behind an Authorization header or raise NotAuthenticated"""
    token = _bearer_token(authorization)
    if token is None:
        raise NotAuthenticated("Missing bearer token")

    try:
        response = supabase.auth.get_user(token)
    except Exception as e:
        logger.warning(f"Token verification failed: {str(e)}")
        raise NotAuthenticated("Invalid bearer token")

    user = getattr(response, 'user', None)
    if user is None or not getattr(user, 'id', None):
        raise NotAuthenticated("Invalid bearer token")
    return str(user.id)

def optional_user_id(supabase, authorization: Optional[str]) -> Optional[str]:
    """Like get_user_id, but anonymous requests resolve to None"""
    if not authorization:
        return None
    return get_user_id(supabase, authorization)
