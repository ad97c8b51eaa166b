"""
Order Models - Resale Escrow Service
Order:    one per resold ticket. Sale status: paid | transferred | completed | disputed | refunded
Escrow:   one per order, mirrors order.escrow_status, carries the audit trail
Transfer: one per order, tracks the seller handing the ticket to the buyer
"""

import uuid
from datetime import datetime, timezone
from resale_escrow.extensions import db


def _now():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Order(db.Model):
    __tablename__ = "ticket_orders"

    id = db.Column(db.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    listing_id = db.Column(db.Uuid(as_uuid=True), db.ForeignKey("ticket_listings.id"), nullable=True)
    buyer_id = db.Column(db.Uuid(as_uuid=True), nullable=False)
    buyer_email = db.Column(db.String(255), nullable=False)
    seller_id = db.Column(db.Uuid(as_uuid=True), nullable=False)
    seller_email = db.Column(db.String(255), nullable=False)

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    seller_payout_amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="gbp")
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="paid")
    escrow_status = db.Column(db.String(32), nullable=False, default="pending_transfer", index=True)
    auto_release_scheduled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    dispute_id = db.Column(db.Uuid(as_uuid=True), nullable=True)

    seller_payout_status = db.Column(db.String(20), nullable=False, default="pending")
    payout_transfer_id = db.Column(db.String(255), nullable=True)  # Stripe transfer id

    buyer_confirmed_receipt = db.Column(db.Boolean, nullable=False, default=False)
    buyer_confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    escrow_released_at = db.Column(db.DateTime(timezone=True), nullable=True)
    seller_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    escrow = db.relationship("Escrow", uselist=False, back_populates="order")
    transfer = db.relationship("Transfer", uselist=False, back_populates="order")
    listing = db.relationship("Listing")

    def to_dict(self):
        return {
            "id":                        str(self.id),
            "listing_id":                str(self.listing_id) if self.listing_id else None,
            "buyer_id":                  str(self.buyer_id),
            "seller_id":                 str(self.seller_id),
            "amount":                    float(self.amount),
            "seller_payout_amount":      float(self.seller_payout_amount),
            "currency":                  self.currency,
            "status":                    self.status,
            "escrow_status":             self.escrow_status,
            "auto_release_scheduled_at": _iso(self.auto_release_scheduled_at),
            "dispute_id":                str(self.dispute_id) if self.dispute_id else None,
            "seller_payout_status":      self.seller_payout_status,
            "payout_transfer_id":        self.payout_transfer_id,
            "buyer_confirmed_receipt":   self.buyer_confirmed_receipt,
            "buyer_confirmed_at":        _iso(self.buyer_confirmed_at),
            "escrow_released_at":        _iso(self.escrow_released_at),
            "seller_paid_at":            _iso(self.seller_paid_at),
            "created_at":                _iso(self.created_at),
            "escrow":                    self.escrow.to_dict() if self.escrow else None,
            "transfer":                  self.transfer.to_dict() if self.transfer else None,
        }


class Escrow(db.Model):
    __tablename__ = "ticket_escrow"

    id = db.Column(db.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = db.Column(db.Uuid(as_uuid=True), db.ForeignKey("ticket_orders.id"), nullable=False, unique=True)
    status = db.Column(db.String(32), nullable=False, default="pending_transfer")
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    funds_released_at = db.Column(db.DateTime(timezone=True), nullable=True)
    events = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    order = db.relationship("Order", back_populates="escrow")

    def to_dict(self):
        return {
            "id":                str(self.id),
            "status":            self.status,
            "amount":            float(self.amount),
            "funds_released_at": _iso(self.funds_released_at),
            "events":            self.events or [],
        }


class Transfer(db.Model):
    __tablename__ = "ticket_transfers"

    id = db.Column(db.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_id = db.Column(db.Uuid(as_uuid=True), db.ForeignKey("ticket_orders.id"), nullable=False, unique=True)
    buyer_id = db.Column(db.Uuid(as_uuid=True), nullable=False)
    seller_id = db.Column(db.Uuid(as_uuid=True), nullable=False)
    status = db.Column(
        db.Enum("pending", "proof_submitted", "confirmed", "failed", name="transfer_status"),
        nullable=False,
        default="pending",
        index=True,
    )
    transfer_deadline = db.Column(db.DateTime(timezone=True), nullable=False)
    seller_proof_urls = db.Column(db.JSON, nullable=True)
    seller_proof_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    seller_notes = db.Column(db.Text, nullable=True)
    transfer_reference = db.Column(db.String(255), nullable=True)
    buyer_confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    buyer_notes = db.Column(db.Text, nullable=True)

    # Set once, never reset
    reminder_12h_sent = db.Column(db.Boolean, nullable=False, default=False)
    reminder_2h_sent = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    order = db.relationship("Order", back_populates="transfer")

    def to_dict(self):
        return {
            "id":                        str(self.id),
            "status":                    self.status,
            "transfer_deadline":         _iso(self.transfer_deadline),
            "seller_proof_urls":         self.seller_proof_urls or [],
            "seller_proof_submitted_at": _iso(self.seller_proof_submitted_at),
            "transfer_reference":        self.transfer_reference,
            "buyer_confirmed_at":        _iso(self.buyer_confirmed_at),
            "buyer_notes":               self.buyer_notes,
            "reminder_12h_sent":         self.reminder_12h_sent,
            "reminder_2h_sent":          self.reminder_2h_sent,
        }
