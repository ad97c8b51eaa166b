"""
Fraud Service - Resale Escrow Service
Scores a listing at verification time.

Everything the checks need is loaded once into a FraudContext snapshot; the
nine checks are pure functions of that snapshot, so the same inputs always
give the same score and verdict. Each failed check adds its fixed penalty.

    score  < 30  -> passed
    30..49       -> passed, requires manual review
    score >= 50  -> failed
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from typing import Optional, List

from resale_escrow.extensions import db
from resale_escrow.models.fraud import FraudCheck, FraudBlacklist
from resale_escrow.models.listing import Listing, VerificationRequest
from resale_escrow.models.seller import SellerProfile
from resale_escrow.timeutils import utcnow, as_utc

logger = logging.getLogger(__name__)

MANUAL_REVIEW_THRESHOLD = 30
FAIL_THRESHOLD = 50
MAX_RISK_SCORE = 100

MIN_TRUST_SCORE = 60
MAX_DISPUTES_LOST = 2
MIN_ACCOUNT_AGE_DAYS = 7
MAX_MARKUP_RATIO = Decimal("2")
MIN_PRICE_RATIO = Decimal("0.3")
MIN_HOURS_BEFORE_EVENT = 6
VELOCITY_ELEVATED = 5
VELOCITY_LIMIT = 10

REQUIRED_PROOFS = ("confirmation_email", "ticket_screenshot")

ORDER_REFERENCE_PATTERNS = {
    "resident_advisor": re.compile(r"^(RA-)?[A-Z0-9]{6,12}$", re.IGNORECASE),
    "dice": re.compile(r"^[A-Z0-9]{8,16}$", re.IGNORECASE),
    "eventbrite": re.compile(r"^[0-9]{10,14}$"),
    "skiddle": re.compile(r"^[A-Z0-9]{8,12}$", re.IGNORECASE),
    "ticketmaster": re.compile(r"^[0-9]{12,16}-[0-9]+$"),
}

DISPOSABLE_EMAIL_DOMAINS = (
    "tempmail", "guerrillamail", "10minutemail", "mailinator",
    "throwaway", "fakeinbox", "temp-mail", "disposable",
)


@dataclass(frozen=True)
class SellerSnapshot:
    trust_score: int
    total_sales: int
    disputes_lost: int
    joined_at: object


@dataclass(frozen=True)
class FraudContext:
    now: object
    event_date: object
    original_price: Decimal
    asking_price: Decimal
    proof_types: tuple
    order_reference: Optional[str]
    ticketing_platform: Optional[str]
    purchaser_email: Optional[str]
    seller: Optional[SellerSnapshot]
    reference_reused: bool
    similar_listings: int
    listings_last_24h: int
    blacklist: tuple  # of (type, pattern)


@dataclass(frozen=True)
class CheckResult:
    passed: bool
    details: str
    warning: Optional[str] = None


@dataclass
class FraudAssessment:
    risk_score: int
    passed: bool
    requires_manual_review: bool
    checks: List[dict] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def status(self):
        if not self.passed:
            return "failed"
        return "review" if self.requires_manual_review else "passed"

    @property
    def message(self):
        if not self.passed:
            return "Verification failed - please review the warnings"
        if self.requires_manual_review:
            return "Passed with minor concerns - will be reviewed"
        return "All verification checks passed"


# --- Checks ---------------------------------------------------------------

def check_seller_history(ctx):
    seller = ctx.seller
    if seller is None:
        return CheckResult(False, "New seller - no history", "New seller with no transaction history")

    joined_at = as_utc(seller.joined_at)
    account_days = (ctx.now - joined_at).total_seconds() / 86400 if joined_at else 0
    is_new_account = account_days < MIN_ACCOUNT_AGE_DAYS
    good_history = seller.trust_score >= MIN_TRUST_SCORE and seller.disputes_lost < MAX_DISPUTES_LOST

    details = f"Trust: {seller.trust_score}%, Sales: {seller.total_sales}, Disputes lost: {seller.disputes_lost}"
    if is_new_account:
        return CheckResult(False, details, "Account less than 7 days old")
    if not good_history:
        return CheckResult(False, details, "Low trust score or dispute history")
    return CheckResult(True, details)


def check_duplicate_listing(ctx):
    if ctx.reference_reused:
        return CheckResult(
            False,
            "Order reference used in another listing",
            "This order reference has been used before - possible duplicate",
        )
    if ctx.similar_listings:
        return CheckResult(True, f"{ctx.similar_listings} similar listings found (different sellers)")
    return CheckResult(True, "No duplicates found")


def check_price_anomaly(ctx):
    original, asking = ctx.original_price, ctx.asking_price
    if original <= 0:
        return CheckResult(False, "Original price missing", "Original ticket price is required")

    markup = (asking - original) / original * 100
    if asking > original * MAX_MARKUP_RATIO:
        return CheckResult(False, f"{markup:.0f}% markup is excessive", "Price markup exceeds 100% - potential scalping")
    if asking < original * MIN_PRICE_RATIO:
        return CheckResult(False, "Price suspiciously low", "Price is less than 30% of original - possible scam")
    return CheckResult(True, f"{markup:.0f}% markup")


def check_event_date(ctx):
    hours_until = (as_utc(ctx.event_date) - ctx.now).total_seconds() / 3600
    if hours_until < 0:
        return CheckResult(False, "Event has already passed", "Cannot sell tickets for past events")
    if hours_until < MIN_HOURS_BEFORE_EVENT:
        return CheckResult(False, "Event is less than 6 hours away", "Too close to event time for safe transfer")
    return CheckResult(True, f"Event in {int(hours_until // 24)} days")


def check_proof_quality(ctx):
    if not ctx.proof_types:
        return CheckResult(False, "No proofs uploaded", "No proof documents provided")
    if not all(required in ctx.proof_types for required in REQUIRED_PROOFS):
        return CheckResult(False, "Missing required proofs", "Confirmation email and ticket screenshot are required")
    return CheckResult(True, f"{len(ctx.proof_types)} proof documents uploaded")


def check_listing_velocity(ctx):
    count = ctx.listings_last_24h
    if count > VELOCITY_LIMIT:
        return CheckResult(False, f"{count} listings in last 24h", "Unusually high listing volume - potential bulk fraud")
    if count > VELOCITY_ELEVATED:
        return CheckResult(True, f"{count} listings in last 24h (elevated)", "Higher than average listing activity")
    return CheckResult(True, f"{count} listings in last 24h")


def check_order_reference(ctx):
    if not ctx.order_reference:
        return CheckResult(False, "No order reference provided", "Order reference is required for verification")

    pattern = ORDER_REFERENCE_PATTERNS.get(ctx.ticketing_platform)
    if pattern and not pattern.match(ctx.order_reference):
        return CheckResult(
            False,
            "Order reference format doesn't match platform",
            "Order reference format is suspicious for this platform",
        )
    return CheckResult(True, "Order reference format valid")


def check_email_domain(ctx):
    if not ctx.purchaser_email:
        return CheckResult(False, "No email provided", "Purchaser email is required")

    domain = ctx.purchaser_email.rpartition("@")[2].lower() if "@" in ctx.purchaser_email else ""
    if any(d in domain for d in DISPOSABLE_EMAIL_DOMAINS):
        return CheckResult(False, "Disposable email detected", "Temporary/disposable email addresses are not allowed")
    return CheckResult(True, "Email domain valid")


def check_known_fraud_patterns(ctx):
    for kind, pattern in ctx.blacklist:
        if kind == "order_reference" and ctx.order_reference and pattern in ctx.order_reference:
            return CheckResult(
                False,
                "Matches known fraud pattern",
                "This order reference matches a known fraudulent pattern",
            )
        if kind == "email_domain" and ctx.purchaser_email and pattern in ctx.purchaser_email:
            return CheckResult(False, "Email domain blacklisted", "This email domain has been associated with fraud")
    return CheckResult(True, "No known fraud patterns detected")


# (name, penalty, check) in reporting order
CHECKS = (
    ("Seller Trust Score", 20, check_seller_history),
    ("Duplicate Detection", 40, check_duplicate_listing),
    ("Price Analysis", 15, check_price_anomaly),
    ("Event Date Valid", 30, check_event_date),
    ("Proof Quality", 25, check_proof_quality),
    ("Listing Velocity", 20, check_listing_velocity),
    ("Order Reference Format", 10, check_order_reference),
    ("Email Domain", 10, check_email_domain),
    ("Fraud Pattern Detection", 50, check_known_fraud_patterns),
)


def verdict_for(score):
    """(passed, requires_manual_review) for a risk score."""
    return score < FAIL_THRESHOLD, MANUAL_REVIEW_THRESHOLD <= score < FAIL_THRESHOLD


def assess(ctx):
    checks, warnings = [], []
    score = 0
    for name, penalty, check in CHECKS:
        result = check(ctx)
        checks.append({"name": name, "passed": result.passed, "details": result.details})
        if not result.passed:
            score += penalty
        if result.warning:
            warnings.append(result.warning)

    score = min(score, MAX_RISK_SCORE)
    passed, requires_review = verdict_for(score)
    return FraudAssessment(score, passed, requires_review, checks, warnings)


# --- Engine ---------------------------------------------------------------

class FraudRiskEngine:
    def __init__(self, session=None):
        self.session = session or db.session

    def build_context(self, listing, proofs, confirmation_details, now=None):
        now = now or utcnow()
        details = confirmation_details or {}
        order_reference = details.get("order_reference") or None

        seller = self.session.query(SellerProfile).filter(
            (SellerProfile.user_id == listing.seller_id) | (SellerProfile.email == listing.seller_email)
        ).first()

        reference_reused = False
        if order_reference:
            reference_reused = self.session.query(VerificationRequest.id).filter(
                VerificationRequest.order_reference == order_reference,
                VerificationRequest.listing_id != listing.id,
            ).first() is not None

        similar_listings = self.session.query(Listing).filter(
            Listing.event_name == listing.event_name,
            Listing.event_date == listing.event_date,
            Listing.ticket_type == listing.ticket_type,
            Listing.id != listing.id,
            Listing.seller_id != listing.seller_id,
            Listing.status.notin_(("sold", "cancelled")),
        ).count()

        listings_last_24h = self.session.query(Listing).filter(
            Listing.seller_id == listing.seller_id,
            Listing.created_at >= now - timedelta(hours=24),
        ).count()

        blacklist = tuple(
            (entry.type, entry.pattern)
            for entry in self.session.query(FraudBlacklist).filter_by(active=True).order_by(FraudBlacklist.id)
        )

        return FraudContext(
            now=now,
            event_date=listing.event_date,
            original_price=Decimal(listing.original_price),
            asking_price=Decimal(listing.asking_price),
            proof_types=tuple(p.get("proof_type") for p in (proofs or []) if isinstance(p, dict)),
            order_reference=order_reference,
            ticketing_platform=details.get("ticketing_platform"),
            purchaser_email=details.get("original_purchaser_email") or None,
            seller=SellerSnapshot(
                seller.trust_score, seller.total_sales, seller.disputes_lost, seller.joined_at
            ) if seller else None,
            reference_reused=reference_reused,
            similar_listings=similar_listings,
            listings_last_24h=listings_last_24h,
            blacklist=blacklist,
        )

    def evaluate(self, listing, proofs, confirmation_details, now=None):
        return assess(self.build_context(listing, proofs, confirmation_details, now))

    def record(self, listing, assessment, confirmation_details=None):
        """Persist the snapshot, point the listing at it and log the verification request."""
        fraud_check = FraudCheck(
            listing_id=listing.id,
            risk_score=assessment.risk_score,
            passed=assessment.passed,
            requires_manual_review=assessment.requires_manual_review,
            checks=assessment.checks,
            warnings=assessment.warnings,
        )
        self.session.add(fraud_check)
        self.session.flush()

        listing.fraud_check_id = fraud_check.id
        listing.fraud_check_status = assessment.status
        listing.fraud_risk_score = assessment.risk_score

        details = confirmation_details or {}
        self.session.add(VerificationRequest(
            listing_id=listing.id,
            order_reference=details.get("order_reference") or None,
            ticketing_platform=details.get("ticketing_platform"),
            original_purchaser_email=details.get("original_purchaser_email"),
        ))

        self.session.commit()
        logger.info(
            f"Fraud check {fraud_check.id} for listing {listing.id}: "
            f"score={assessment.risk_score} status={assessment.status}"
        )
        return fraud_check

    def run(self, listing, proofs, confirmation_details, now=None):
        assessment = self.evaluate(listing, proofs, confirmation_details, now)
        fraud_check = self.record(listing, assessment, confirmation_details)
        return assessment, fraud_check
