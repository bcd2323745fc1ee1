"""JWT access tokens carrying the caller's id and role."""

import jwt
from datetime import datetime, timezone, timedelta
from functools import lru_cache
from typing import Dict, Any, Optional, Tuple
from uuid import uuid4

from fastapi import HTTPException, status

from ..config import get_config
from ..core.enums import ActorRole
from ..domain.actors import Actor


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


class JWTTokenManager:
    """Issues and verifies HS256 access tokens for platform users."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        access_token_expires_minutes: Optional[int] = None,
    ):
        config = get_config()
        self.secret_key = secret_key or config.app.jwt_secret_key
        self.algorithm = "HS256"
        self.access_token_expires_minutes = (
            access_token_expires_minutes or config.app.jwt_access_token_expires_minutes
        )

    def create_access_token(
        self,
        actor_id: str,
        role: ActorRole,
        expires_minutes: Optional[int] = None,
        additional_claims: Optional[Dict[str, Any]] = None,
    ) -> Tuple[str, datetime]:
        """
        Create an access token.

        Args:
            actor_id: Platform user id, stored as ``sub``
            role: Role of the user
            expires_minutes: Override of the configured lifetime
            additional_claims: Optional additional claims to include

        Returns:
            Tuple of (access_token, expires_at)
        """
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(
            minutes=expires_minutes or self.access_token_expires_minutes
        )
        payload = {
            "sub": str(actor_id),
            "role": ActorRole(role).value,
            "iat": now,
            "exp": expires_at,
            "jti": str(uuid4()),
            "type": "access",
        }
        if additional_claims:
            payload.update(additional_claims)

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return token, expires_at

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """
        Verify and decode access token.

        Raises:
            HTTPException: If token is invalid, expired, or wrong type
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise _unauthorized("Access token has expired")
        except jwt.InvalidTokenError:
            raise _unauthorized("Invalid access token")

        if payload.get("type") != "access":
            raise _unauthorized("Invalid token type")

        return payload

    def extract_actor(self, token: str) -> Actor:
        """
        Turn a valid access token into the caller's identity.

        Raises:
            HTTPException: If the token is invalid or lacks subject or role
        """
        payload = self.verify_access_token(token)
        try:
            return Actor(actor_id=str(payload["sub"]), role=ActorRole(payload["role"]))
        except (KeyError, ValueError):
            raise _unauthorized("Invalid or malformed token")


@lru_cache(maxsize=1)
def get_jwt_manager() -> JWTTokenManager:
    """Process-wide token manager built from the loaded configuration."""
    return JWTTokenManager()
