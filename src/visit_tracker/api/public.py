"""Anonymous tracking-link lookups for shared contacts."""

from fastapi import APIRouter, Depends

from ..auth.rate_limiter import limit_public_lookup
from ..services.sharing import ShareTokenManager
from .dependencies import get_share_manager
from .schemas import ProblemDetails, PublicTrackingResponse

router = APIRouter(prefix="/v1/public", tags=["public"])


@router.get(
    "/track/{token}",
    response_model=PublicTrackingResponse,
    responses={
        404: {"model": ProblemDetails, "description": "Link is invalid or has expired"},
        429: {"model": ProblemDetails, "description": "Too many lookups"},
    },
    dependencies=[Depends(limit_public_lookup)],
)
def track_by_token(
    token: str,
    sharing: ShareTokenManager = Depends(get_share_manager),
) -> PublicTrackingResponse:
    """
    Public view behind a share link.

    Shows the professional's first name, the service category, the last
    known position, the session status and whether help has been requested.
    Until the professional reports a first position, the last known position
    is the visit destination the session was started with.
    Unknown, revoked and expired links all get the same 404.
    """
    return PublicTrackingResponse.from_view(sharing.resolve_public(token))
