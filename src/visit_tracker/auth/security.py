"""Share-token generation and format checks."""

import re
import secrets

# token_urlsafe output alphabet
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

MIN_TOKEN_LENGTH = 22  # 16 random bytes
MAX_TOKEN_LENGTH = 128


def generate_share_token(nbytes: int = 32) -> str:
    """
    Generate an unguessable share token.

    Args:
        nbytes: Bytes of randomness; 32 bytes gives a 43-character token

    Returns:
        URL-safe token string
    """
    if nbytes < 16:
        raise ValueError("share tokens need at least 16 random bytes")
    return secrets.token_urlsafe(nbytes)


def is_plausible_share_token(token: str) -> bool:
    """Cheap syntactic check run before any database lookup."""
    if not token or not (MIN_TOKEN_LENGTH <= len(token) <= MAX_TOKEN_LENGTH):
        return False
    return bool(_TOKEN_PATTERN.match(token))
