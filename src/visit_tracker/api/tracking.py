"""Professional-facing tracking endpoints."""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status

from ..domain.actors import Actor
from ..auth.dependencies import get_current_actor, require_professional
from ..notifications.outbox import NotificationDispatcher
from ..services.panic import PanicWorkflow
from ..services.sharing import ContactDetails, ShareTokenManager
from ..services.tracking import TrackingLifecycle
from .dependencies import (
    get_lifecycle,
    get_notification_dispatcher,
    get_panic_workflow,
    get_share_manager,
)
from .schemas import (
    CheckInRequest,
    EventCatchUpResponse,
    LocationUpdateRequest,
    PanicAlertResponse,
    PanicCancelRequest,
    PanicRequest,
    ProblemDetails,
    ShareRequest,
    SharedContactResponse,
    StartTrackingRequest,
    TrackingEventResponse,
    TrackingSessionResponse,
)

router = APIRouter(prefix="/v1/tracking", tags=["tracking"])

_OWNED_SESSION_ERRORS = {
    403: {"model": ProblemDetails, "description": "Not the owning professional"},
    404: {"model": ProblemDetails, "description": "No tracking session for this visit"},
    409: {"model": ProblemDetails, "description": "Session is not active"},
}


@router.post(
    "/start",
    response_model=TrackingSessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Tracking started"},
        409: {"model": ProblemDetails, "description": "Visit already tracked"},
        422: {"model": ProblemDetails, "description": "Validation error"},
    },
)
def start_tracking(
    request_data: StartTrackingRequest,
    actor: Actor = Depends(require_professional),
    lifecycle: TrackingLifecycle = Depends(get_lifecycle),
) -> TrackingSessionResponse:
    """
    Start tracking a visit.

    The session begins with a ``service_started`` event at the patient's
    address and the first check-in falls due one interval later.
    """
    tracking = lifecycle.start(
        visit_id=request_data.visit_id,
        professional_id=actor.actor_id,
        patient_id=request_data.patient_id,
        destination=request_data.patient_address,
        interval_minutes=request_data.check_in_interval_minutes,
        audio_recording_enabled=request_data.audio_recording_enabled,
    )
    return TrackingSessionResponse.from_model(tracking)


@router.post(
    "/{visit_id}/check-in",
    response_model=TrackingSessionResponse,
    responses=_OWNED_SESSION_ERRORS,
)
def check_in(
    visit_id: str,
    request_data: CheckInRequest,
    actor: Actor = Depends(require_professional),
    lifecycle: TrackingLifecycle = Depends(get_lifecycle),
) -> TrackingSessionResponse:
    """Record a check-in, resetting the missed counter."""
    tracking = lifecycle.check_in(
        visit_id, actor.actor_id, request_data.location, message=request_data.message
    )
    return TrackingSessionResponse.from_model(tracking)


@router.post(
    "/{visit_id}/location",
    response_model=TrackingSessionResponse,
    responses=_OWNED_SESSION_ERRORS,
)
def update_location(
    visit_id: str,
    request_data: LocationUpdateRequest,
    actor: Actor = Depends(require_professional),
    lifecycle: TrackingLifecycle = Depends(get_lifecycle),
) -> TrackingSessionResponse:
    tracking = lifecycle.update_location(visit_id, actor.actor_id, request_data.location)
    return TrackingSessionResponse.from_model(tracking)


@router.post(
    "/{visit_id}/check-out",
    response_model=TrackingSessionResponse,
    responses=_OWNED_SESSION_ERRORS,
)
def check_out(
    visit_id: str,
    request_data: LocationUpdateRequest,
    actor: Actor = Depends(require_professional),
    lifecycle: TrackingLifecycle = Depends(get_lifecycle),
) -> TrackingSessionResponse:
    """End the visit. Shared links keep working until revoked or expired."""
    tracking = lifecycle.check_out(visit_id, actor.actor_id, request_data.location)
    return TrackingSessionResponse.from_model(tracking)


@router.post(
    "/{visit_id}/panic",
    response_model=PanicAlertResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_OWNED_SESSION_ERRORS,
)
def activate_panic(
    visit_id: str,
    request_data: PanicRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_professional),
    panic: PanicWorkflow = Depends(get_panic_workflow),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> PanicAlertResponse:
    """
    Raise a panic alert.

    Notifications to shared contacts and the monitoring center are queued
    with the alert and delivered once the response has been sent.
    """
    alert = panic.activate(
        visit_id,
        actor.actor_id,
        request_data.level,
        request_data.location,
        audio_recording_url=request_data.audio_recording_url,
    )
    response = PanicAlertResponse.model_validate(alert)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return response


@router.post(
    "/{visit_id}/panic/cancel",
    response_model=PanicAlertResponse,
    responses=_OWNED_SESSION_ERRORS,
)
def cancel_panic(
    visit_id: str,
    request_data: PanicCancelRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_professional),
    panic: PanicWorkflow = Depends(get_panic_workflow),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> PanicAlertResponse:
    """Withdraw the earliest active alert as a false alarm."""
    alert = panic.cancel(
        visit_id, actor.actor_id, request_data.location, reason=request_data.reason
    )
    response = PanicAlertResponse.model_validate(alert)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return response


@router.post(
    "/{visit_id}/share",
    response_model=SharedContactResponse,
    responses=_OWNED_SESSION_ERRORS,
)
def share_session(
    visit_id: str,
    request_data: ShareRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_professional),
    sharing: ShareTokenManager = Depends(get_share_manager),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> SharedContactResponse:
    """Share the session with a contact. Sharing twice with one phone reuses the link."""
    contact = sharing.share(
        visit_id,
        actor.actor_id,
        ContactDetails(
            name=request_data.name,
            phone=request_data.phone,
            relationship=request_data.relationship,
        ),
        expires_in_minutes=request_data.expires_in_minutes,
    )
    response = SharedContactResponse.from_model(contact)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return response


@router.delete(
    "/{visit_id}/share/{phone}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        403: {"model": ProblemDetails, "description": "Not the owning professional"},
        404: {"model": ProblemDetails, "description": "No tracking session for this visit"},
    },
)
def revoke_share(
    visit_id: str,
    phone: str,
    actor: Actor = Depends(require_professional),
    sharing: ShareTokenManager = Depends(get_share_manager),
) -> Response:
    sharing.revoke(visit_id, actor.actor_id, phone)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/professional/active",
    response_model=Optional[TrackingSessionResponse],
)
def get_active_session(
    actor: Actor = Depends(require_professional),
    lifecycle: TrackingLifecycle = Depends(get_lifecycle),
) -> Optional[TrackingSessionResponse]:
    """The caller's active session, or null."""
    tracking = lifecycle.get_active_for_professional(actor.actor_id)
    if tracking is None:
        return None
    return TrackingSessionResponse.from_model(tracking)


@router.get(
    "/{visit_id}",
    response_model=TrackingSessionResponse,
    responses={
        403: {"model": ProblemDetails, "description": "Access denied"},
        404: {"model": ProblemDetails, "description": "No tracking session for this visit"},
    },
)
def get_session(
    visit_id: str,
    actor: Actor = Depends(get_current_actor),
    lifecycle: TrackingLifecycle = Depends(get_lifecycle),
) -> TrackingSessionResponse:
    return TrackingSessionResponse.from_model(lifecycle.get_session(visit_id, actor))


@router.get(
    "/{visit_id}/events",
    response_model=EventCatchUpResponse,
    responses={
        403: {"model": ProblemDetails, "description": "Access denied"},
        404: {"model": ProblemDetails, "description": "No tracking session for this visit"},
    },
)
def get_events(
    visit_id: str,
    since_seq: Optional[int] = Query(None, ge=0, description="Return events after this sequence"),
    limit: int = Query(100, ge=1, le=1000),
    actor: Actor = Depends(get_current_actor),
    lifecycle: TrackingLifecycle = Depends(get_lifecycle),
) -> EventCatchUpResponse:
    """
    Catch-up read of the event log.

    Clients pass the last ``seq`` they saw and receive everything after it,
    in order.
    """
    envelopes = lifecycle.get_events(visit_id, actor, since_seq=since_seq, limit=limit)
    tracking = lifecycle.get_session(visit_id, actor)
    return EventCatchUpResponse(
        visit_id=visit_id,
        events=[TrackingEventResponse.from_envelope(e) for e in envelopes],
        total=len(envelopes),
        latest_seq=lifecycle.event_store.get_latest_sequence(tracking.id),
    )
