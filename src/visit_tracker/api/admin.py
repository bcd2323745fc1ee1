"""Monitoring-center endpoints."""

from datetime import datetime
from typing import Callable, List

from fastapi import APIRouter, BackgroundTasks, Depends, status

from ..auth.dependencies import require_monitoring
from ..domain.actors import Actor
from ..domain.rules import active_alerts, minutes_overdue
from ..notifications.outbox import NotificationDispatcher
from ..services.panic import PanicWorkflow
from ..services.scheduler import CheckInScheduler
from ..utils.logging_config import get_logger
from .dependencies import (
    get_clock,
    get_notification_dispatcher,
    get_panic_workflow,
    get_scheduler,
)
from .schemas import (
    ActiveAlertResponse,
    ActiveAlertsResponse,
    MissedCheckInResponse,
    PanicAlertResponse,
    PanicRespondRequest,
    ProblemDetails,
    SweepResponse,
)

logger = get_logger("api")
router = APIRouter(prefix="/v1/admin/tracking", tags=["admin"])


@router.post(
    "/{visit_id}/panic/respond",
    response_model=PanicAlertResponse,
    responses={
        403: {"model": ProblemDetails, "description": "Monitoring role required"},
        404: {"model": ProblemDetails, "description": "No tracking session for this visit"},
        409: {"model": ProblemDetails, "description": "No active alert"},
        422: {"model": ProblemDetails, "description": "Outcome is not terminal"},
    },
)
def respond_to_panic(
    visit_id: str,
    request_data: PanicRespondRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_monitoring),
    panic: PanicWorkflow = Depends(get_panic_workflow),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> PanicAlertResponse:
    """
    Close the earliest active alert of a visit.

    The outcome must be terminal: ``responded``, ``resolved`` or
    ``false_alarm``. Everyone notified of the alert hears about its closure.
    """
    alert = panic.respond(
        visit_id,
        responded_by=actor.actor_id,
        resolution=request_data.resolution,
        outcome=request_data.outcome,
        police_response_time=request_data.police_response_time,
        notes=request_data.notes,
    )
    response = PanicAlertResponse.model_validate(alert)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return response


@router.get(
    "/missed-check-ins",
    response_model=List[MissedCheckInResponse],
    responses={
        403: {"model": ProblemDetails, "description": "Monitoring role required"},
    },
)
def list_missed_check_ins(
    actor: Actor = Depends(require_monitoring),
    scheduler: CheckInScheduler = Depends(get_scheduler),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> List[MissedCheckInResponse]:
    """Active sessions past their check-in deadline. Read only."""
    now = clock()
    return [
        MissedCheckInResponse(
            visit_id=t.visit_id,
            professional_id=t.professional_id,
            missed_check_ins=t.missed_check_ins,
            next_check_in_due=t.next_check_in_due,
            minutes_overdue=minutes_overdue(t.next_check_in_due, now),
        )
        for t in scheduler.list_overdue(now)
    ]


@router.post(
    "/sweep",
    response_model=SweepResponse,
    status_code=status.HTTP_200_OK,
    responses={
        403: {"model": ProblemDetails, "description": "Monitoring role required"},
    },
)
def run_sweep(
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_monitoring),
    scheduler: CheckInScheduler = Depends(get_scheduler),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SweepResponse:
    """Run one missed check-in sweep now. Each call records a further miss."""
    now = clock()
    logger.info(f"Manual sweep requested by {actor.actor_id}")
    results = scheduler.sweep(now)
    background_tasks.add_task(dispatcher.dispatch_pending)
    return SweepResponse(
        swept_at=now,
        recorded=[
            MissedCheckInResponse(
                visit_id=r.visit_id,
                professional_id=r.professional_id,
                missed_check_ins=r.missed_check_ins,
                next_check_in_due=r.next_check_in_due,
                minutes_overdue=r.minutes_overdue,
            )
            for r in results
        ],
    )


@router.get(
    "/active-alerts",
    response_model=ActiveAlertsResponse,
    responses={
        403: {"model": ProblemDetails, "description": "Monitoring role required"},
    },
)
def list_active_alerts(
    actor: Actor = Depends(require_monitoring),
    panic: PanicWorkflow = Depends(get_panic_workflow),
) -> ActiveAlertsResponse:
    """Sessions with alerts awaiting response, oldest session first."""
    alerts = []
    for tracking in panic.list_active_alerts():
        pending = active_alerts(tracking.panic_alerts)
        if not pending:
            continue
        alerts.append(
            ActiveAlertResponse(
                visit_id=tracking.visit_id,
                professional_id=tracking.professional_id,
                patient_district=tracking.patient_address.district,
                last_known_location=tracking.last_known_location,
                alert=PanicAlertResponse.model_validate(pending[0]),
                alerts=[PanicAlertResponse.model_validate(a) for a in pending],
            )
        )
    return ActiveAlertsResponse(alerts=alerts)
