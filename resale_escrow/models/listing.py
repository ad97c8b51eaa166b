"""
Listing Models - Resale Escrow Service
Listing status: active | pending_verification | sold | expired | cancelled
"""

import uuid
from datetime import datetime, timezone
from resale_escrow.extensions import db


def _now():
    return datetime.now(timezone.utc)


class Listing(db.Model):
    __tablename__ = "ticket_listings"

    id = db.Column(db.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    seller_id = db.Column(db.Uuid(as_uuid=True), nullable=False, index=True)
    seller_email = db.Column(db.String(255), nullable=False)
    event_name = db.Column(db.String(255), nullable=False)
    event_date = db.Column(db.DateTime(timezone=True), nullable=False)
    ticket_type = db.Column(db.String(50), nullable=False, default="general_admission")
    original_price = db.Column(db.Numeric(10, 2), nullable=False)
    asking_price = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(db.String(32), nullable=False, default="pending_verification", index=True)

    # Denormalised from the latest FraudCheck for filtering
    fraud_check_id = db.Column(db.Uuid(as_uuid=True), nullable=True)
    fraud_check_status = db.Column(db.String(20), nullable=True)
    fraud_risk_score = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    def to_dict(self):
        return {
            "id": str(self.id),
            "seller_id": str(self.seller_id),
            "event_name": self.event_name,
            "event_date": self.event_date.isoformat() if self.event_date else None,
            "ticket_type": self.ticket_type,
            "original_price": float(self.original_price),
            "asking_price": float(self.asking_price),
            "status": self.status,
            "fraud_check_id": str(self.fraud_check_id) if self.fraud_check_id else None,
            "fraud_check_status": self.fraud_check_status,
            "fraud_risk_score": self.fraud_risk_score,
        }


class VerificationRequest(db.Model):
    __tablename__ = "ticket_verification_requests"

    id = db.Column(db.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    listing_id = db.Column(db.Uuid(as_uuid=True), db.ForeignKey("ticket_listings.id"), nullable=False, index=True)
    order_reference = db.Column(db.String(255), nullable=True, index=True)
    ticketing_platform = db.Column(db.String(50), nullable=True)
    original_purchaser_email = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)
