"""
Fraud Models - Resale Escrow Service
FraudCheck rows are snapshots and are never updated after insert.
"""

import uuid
from datetime import datetime, timezone
from resale_escrow.extensions import db


class FraudCheck(db.Model):
    __tablename__ = "ticket_fraud_checks"

    id = db.Column(db.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    listing_id = db.Column(db.Uuid(as_uuid=True), db.ForeignKey("ticket_listings.id"), nullable=False, index=True)
    risk_score = db.Column(db.Integer, nullable=False)
    passed = db.Column(db.Boolean, nullable=False)
    requires_manual_review = db.Column(db.Boolean, nullable=False, default=False)
    checks = db.Column(db.JSON, nullable=False)
    warnings = db.Column(db.JSON, nullable=False)
    checked_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )

    def to_dict(self):
        return {
            "id": str(self.id),
            "listing_id": str(self.listing_id),
            "risk_score": self.risk_score,
            "passed": self.passed,
            "requires_manual_review": self.requires_manual_review,
            "checks": self.checks,
            "warnings": self.warnings,
            "checked_at": self.checked_at.isoformat(),
        }


class FraudBlacklist(db.Model):
    __tablename__ = "fraud_blacklist"

    id = db.Column(db.Integer, primary_key=True)
    pattern = db.Column(db.String(255), nullable=False)
    type = db.Column(db.Enum("order_reference", "email_domain", name="blacklist_type"), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
