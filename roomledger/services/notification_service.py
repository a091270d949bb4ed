"""Customer notifications for refunds.

Delivery transport lives outside this service; notifications are composed
here and handed to the log so they can be forwarded.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from roomledger.models.refund import RefundStatus
from roomledger.repositories.refund_repository import RefundRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundNotification:
    booking_id: UUID
    user_id: str
    subject: str
    body: str


def _format_cents(amount: int) -> str:
    return f"R$ {amount // 100},{amount % 100:02d}"


class NotificationService:
    def __init__(self, db: Session):
        self.refund_repo = RefundRepository(db)

    def build_refund_notification(self, booking_id: UUID) -> RefundNotification | None:
        refund = self.refund_repo.get_by_booking_id(booking_id)
        if refund is None:
            return None

        if refund.status == RefundStatus.COMPLETED.value:
            subject = "Your refund is complete"
        else:
            subject = "Your refund is being processed"
        lines = [f"Booking {booking_id}"]
        if refund.credits_returned:
            lines.append(f"Credits returned: {_format_cents(int(refund.credits_returned))}")
        if refund.money_returned:
            lines.append(f"Money returned: {_format_cents(int(refund.money_returned))}")
        if refund.status != RefundStatus.COMPLETED.value:
            lines.append("We will let you know as soon as the refund is settled.")

        return RefundNotification(
            booking_id=booking_id,
            user_id=str(refund.user_id),
            subject=subject,
            body="\n".join(lines),
        )

    def send_refund_notification(self, booking_id: UUID) -> bool:
        notification = self.build_refund_notification(booking_id)
        if notification is None:
            logger.warning("No refund to notify: booking_id=%s", booking_id)
            return False
        logger.info(
            "Refund notification: booking_id=%s user_id=%s subject=%s",
            notification.booking_id,
            notification.user_id,
            notification.subject,
        )
        return True
