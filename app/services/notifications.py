import uuid
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.business import Business
from app.models.notification import Notification, NotificationEvent
from app.models.reservation import Actor, Reservation
from app.utils.clock import utcnow

logger = structlog.get_logger(__name__)


class NotificationService:
    """Reservation event outbox.

    ``record`` adds rows to the caller's transaction; ``dispatch`` enqueues
    the recorded rows for delivery once that transaction has committed.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.pending: list[Notification] = []

    def reset(self):
        self.pending = []

    def record(
        self,
        business: Business,
        reservation: Reservation,
        event: NotificationEvent,
        recipient_user_id: Optional[str],
        **extra,
    ) -> Notification:
        payload = {
            "event": event.value,
            "business_name": business.name,
            "reservation_uuid": str(reservation.uuid),
            "confirmation_code": reservation.confirmation_code,
            "booking_date": reservation.booking_date.isoformat(),
            "start_time": reservation.start_time.strftime("%H:%M"),
            "status": reservation.status,
            "customer_name": reservation.customer_name,
            "customer_phone": reservation.customer_phone,
        }
        payload.update({k: v for k, v in extra.items() if v is not None})

        # reservation must be flushed so its id is known
        notification = Notification(
            uuid=uuid.uuid4(),
            business_id=business.id,
            reservation_id=reservation.id,
            recipient_user_id=recipient_user_id,
            event=event.value,
            payload=payload,
        )
        self.db.add(notification)
        self.pending.append(notification)
        return notification

    def record_for_counterparty(
        self,
        business: Business,
        reservation: Reservation,
        event: NotificationEvent,
        actor: Actor,
        **extra,
    ) -> Notification:
        """Notify the side of the reservation that did not act."""
        recipient = (
            reservation.customer_user_id
            if actor == Actor.BUSINESS
            else business.owner_user_id
        )
        return self.record(business, reservation, event, recipient, **extra)

    async def dispatch(self) -> int:
        """Enqueue committed notifications and stamp them as dispatched."""
        from app.tasks.notifications import deliver_reservation_notification

        dispatched = 0
        for notification in self.pending:
            payload = dict(
                notification.payload,
                notification_uuid=str(notification.uuid),
                recipient_user_id=notification.recipient_user_id,
            )
            try:
                deliver_reservation_notification.delay(payload)
            except Exception as e:
                logger.error(
                    "Failed to enqueue notification",
                    notification_uuid=str(notification.uuid),
                    notification_event=notification.event,
                    error=str(e),
                )
                continue
            notification.dispatched_at = utcnow()
            dispatched += 1

        self.pending = []
        if dispatched:
            try:
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                logger.error("Failed to mark notifications dispatched", error=str(e))
        return dispatched
