import uuid
from resale_escrow.extensions import db


class SellerProfile(db.Model):
    """
    Seller trust profile. Trust fields belong to the reputation service;
    Stripe Connect fields are kept in sync by the Stripe webhook.
    """
    __tablename__ = "ticket_sellers"

    user_id = db.Column(db.Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = db.Column(db.String(255), unique=True, nullable=False)
    trust_score = db.Column(db.Integer, nullable=False, default=50)
    total_sales = db.Column(db.Integer, nullable=False, default=0)
    disputes_lost = db.Column(db.Integer, nullable=False, default=0)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    stripe_connect_id = db.Column(db.String(255), unique=True, nullable=True)
    stripe_connect_status = db.Column(db.String(20), nullable=True)  # active | restricted
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def has_active_payout_destination(self):
        return bool(self.stripe_connect_id) and self.stripe_connect_status == "active"

    def to_dict(self):
        return {
            "user_id": str(self.user_id),
            "email": self.email,
            "trust_score": self.trust_score,
            "total_sales": self.total_sales,
            "disputes_lost": self.disputes_lost,
            "stripe_connect_status": self.stripe_connect_status,
        }
