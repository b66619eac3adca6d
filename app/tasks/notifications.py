import structlog

from app.core.celery import celery_app

logger = structlog.get_logger(__name__)


@celery_app.task(
    name="app.tasks.notifications.deliver_reservation_notification",
    bind=True,
)
def deliver_reservation_notification(self, payload: dict) -> dict:
    """Deliver a reservation event to its recipient.

    Only an in-app record exists today, so delivery is a structured log line
    the worker emits for each event.
    """
    logger.info(
        "Reservation notification delivered",
        task_id=self.request.id,
        notification_uuid=payload.get("notification_uuid"),
        notification_event=payload.get("event"),
        recipient_user_id=payload.get("recipient_user_id"),
        reservation_uuid=payload.get("reservation_uuid"),
    )
    return {"delivered": True, "notification_uuid": payload.get("notification_uuid")}
