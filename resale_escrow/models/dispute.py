"""
Dispute Model - Resale Escrow Service
Status: open | resolved. Resolution happens outside this service.
"""

import uuid
from datetime import datetime, timezone
from resale_escrow.extensions import db

DISPUTE_REASONS = (
    "ticket_not_received",
    "ticket_invalid",
    "wrong_ticket",
    "event_cancelled",
    "seller_unresponsive",
    "buyer_unresponsive",
    "other",
)


class Dispute(db.Model):
    __tablename__ = "ticket_disputes"

    id = db.Column(db.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = db.Column(db.Uuid(as_uuid=True), db.ForeignKey("ticket_orders.id"), nullable=False, index=True)
    opened_by = db.Column(db.Uuid(as_uuid=True), nullable=True)  # NULL when opened by the system
    buyer_id = db.Column(db.Uuid(as_uuid=True), nullable=False)
    buyer_email = db.Column(db.String(255), nullable=False)
    seller_id = db.Column(db.Uuid(as_uuid=True), nullable=False)
    seller_email = db.Column(db.String(255), nullable=False)
    reason = db.Column(db.Enum(*DISPUTE_REASONS, name="dispute_reason"), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.Enum("open", "resolved", name="dispute_status"), nullable=False, default="open")
    response_deadline = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self):
        return {
            "id":                str(self.id),
            "order_id":          str(self.order_id),
            "opened_by":         str(self.opened_by) if self.opened_by else None,
            "reason":            self.reason,
            "description":       self.description,
            "status":            self.status,
            "response_deadline": self.response_deadline.isoformat(),
            "created_at":        self.created_at.isoformat(),
        }
