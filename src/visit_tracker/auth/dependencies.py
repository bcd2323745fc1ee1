"""Authentication dependencies for FastAPI."""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..domain.actors import Actor
from ..utils.logging_config import get_logger
from .jwt_auth import get_jwt_manager

logger = get_logger("auth")

# Missing credentials are reported as 401 by get_current_actor
security = HTTPBearer(auto_error=False)


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """
    Get the authenticated caller from the Bearer access token.

    Raises:
        HTTPException: 401 when the token is missing or invalid
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return get_jwt_manager().extract_actor(credentials.credentials)


def require_professional(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Allow only field professionals."""
    if not actor.is_professional:
        logger.info(f"Rejected {actor.role.value} {actor.actor_id} on professional route")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Professional role required",
        )
    return actor


def require_monitoring(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Allow only monitoring-center staff."""
    if not actor.is_monitoring:
        logger.info(f"Rejected {actor.role.value} {actor.actor_id} on monitoring route")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Monitoring role required",
        )
    return actor
