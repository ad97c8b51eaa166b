import unittest
import uuid
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock

from flask_jwt_extended import create_access_token

from resale_escrow.app import create_app
from resale_escrow.extensions import db
from resale_escrow.models import Listing, SellerProfile
from resale_escrow.services.order_service import create_order
from resale_escrow.services.outcome import Outcome
from resale_escrow.timeutils import utcnow

CRON_SECRET = "cron-test-secret"
INTERNAL_TOKEN = "internal-test-token"
WEBHOOK_SECRET = "whsec_test_secret"

TEST_CONFIG = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite://",
    "AUTO_CREATE_TABLES": False,
    "CRON_SECRET": CRON_SECRET,
    "INTERNAL_API_TOKEN": INTERNAL_TOKEN,
    "JWT_SECRET_KEY": "test-jwt-secret-with-enough-length-for-hs256",
    "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
    "SETTLEMENT_MAX_WORKERS": 1,
    "MANUAL_REVIEW_POLICY": "flag",
    "LOG_LEVEL": "WARNING",
}


class FakeTransfers:
    """Stands in for StripeClient.transfers."""

    def __init__(self):
        self.calls = []
        self.error = None

    def create(self, params=None, options=None):
        if self.error is not None:
            raise self.error
        self.calls.append({"params": params, "options": options})
        return SimpleNamespace(id=f"tr_test_{len(self.calls)}")


class FakeStripeClient:
    def __init__(self):
        self.transfers = FakeTransfers()


class EscrowTestCase(unittest.TestCase):
    config_overrides = {}

    def setUp(self):
        self.stripe = FakeStripeClient()
        self.reputation = Mock()
        self.reputation.issue_strike.return_value = Outcome.ok("seller_strike")

        self.app = create_app(
            {**TEST_CONFIG, **self.config_overrides},
            stripe_client=self.stripe,
            reputation_client=self.reputation,
        )
        self.ctx = self.app.app_context()
        self.ctx.push()
        db.create_all()
        self.client = self.app.test_client()
        self.services = self.app.extensions["escrow"]
        self.now = utcnow()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()

    # --- Fixtures -----------------------------------------------------------

    def make_seller(self, connect_status="active", trust_score=80, disputes_lost=0,
                    joined_days_ago=90, total_sales=12, email=None):
        seller = SellerProfile(
            user_id=uuid.uuid4(),
            email=email or f"seller_{uuid.uuid4().hex[:8]}@example.com",
            trust_score=trust_score,
            total_sales=total_sales,
            disputes_lost=disputes_lost,
            joined_at=self.now - timedelta(days=joined_days_ago),
            stripe_connect_id=f"acct_{uuid.uuid4().hex[:12]}" if connect_status else None,
            stripe_connect_status=connect_status,
        )
        db.session.add(seller)
        db.session.commit()
        return seller

    def make_listing(self, seller, original="50.00", asking="60.00", event_in=timedelta(days=10),
                     status="pending_verification", event_name="Warehouse Project", created_at=None):
        listing = Listing(
            seller_id=seller.user_id,
            seller_email=seller.email,
            event_name=event_name,
            event_date=self.now + event_in,
            ticket_type="general_admission",
            original_price=Decimal(original),
            asking_price=Decimal(asking),
            status=status,
            created_at=created_at or self.now,
        )
        db.session.add(listing)
        db.session.commit()
        return listing

    def make_order(self, seller, listing=None, escrow_status="pending_transfer",
                   auto_release_in=None, transfer_status="pending", transfer_deadline_in=timedelta(hours=20),
                   payout="45.00", payment_intent="pi_test_123"):
        order = create_order(
            listing_id=listing.id if listing else None,
            buyer_id=uuid.uuid4(),
            buyer_email=f"buyer_{uuid.uuid4().hex[:8]}@example.com",
            seller_id=seller.user_id,
            seller_email=seller.email,
            amount="56.25",
            seller_payout_amount=payout,
            stripe_payment_intent_id=payment_intent,
            now=self.now - timedelta(days=1),
        )
        order.escrow_status = escrow_status
        order.escrow.status = escrow_status
        if auto_release_in is not None:
            order.auto_release_scheduled_at = self.now + auto_release_in
        order.transfer.status = transfer_status
        order.transfer.transfer_deadline = self.now + transfer_deadline_in
        db.session.commit()
        return order

    def token_for(self, user_id):
        return create_access_token(identity=str(user_id))

    def auth_headers(self, user_id):
        return {"Authorization": f"Bearer {self.token_for(user_id)}"}
