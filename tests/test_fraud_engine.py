import unittest
import uuid
from datetime import timedelta
from types import SimpleNamespace

from resale_escrow.extensions import db
from resale_escrow.models import FraudBlacklist, FraudCheck, Listing, VerificationRequest
from resale_escrow.services.fraud_service import verdict_for
from tests.base import EscrowTestCase

GOOD_PROOFS = [
    {"proof_type": "confirmation_email", "url": "https://cdn.example.com/p/1.png"},
    {"proof_type": "ticket_screenshot", "url": "https://cdn.example.com/p/2.png"},
]


def details(order_reference="ABCD1234", platform="dice", email="buyer@gmail.com"):
    return {
        "order_reference": order_reference,
        "ticketing_platform": platform,
        "original_purchaser_email": email,
    }


class TestFraudChecks(EscrowTestCase):
    def setUp(self):
        super().setUp()
        self.seller = self.make_seller()
        self.engine = self.services.fraud_engine

    def evaluate(self, listing, proofs=GOOD_PROOFS, confirmation=None):
        if confirmation is None:
            confirmation = details()
        return self.engine.evaluate(listing, proofs, confirmation, now=self.now)

    def failed_checks(self, assessment):
        return [c["name"] for c in assessment.checks if not c["passed"]]

    def test_clean_listing_passes_outright(self):
        assessment = self.evaluate(self.make_listing(self.seller))

        self.assertEqual(assessment.risk_score, 0)
        self.assertTrue(assessment.passed)
        self.assertFalse(assessment.requires_manual_review)
        self.assertEqual(len(assessment.checks), 9)
        self.assertEqual(assessment.warnings, [])

    def test_disposable_email_costs_ten_points(self):
        assessment = self.evaluate(
            self.make_listing(self.seller),
            confirmation=details(email="user@10minutemail.com"),
        )

        self.assertEqual(assessment.risk_score, 10)
        self.assertEqual(self.failed_checks(assessment), ["Email Domain"])
        self.assertIn("Temporary/disposable email addresses are not allowed", assessment.warnings)
        self.assertTrue(assessment.passed)

    def test_missing_email_fails_email_check(self):
        assessment = self.evaluate(self.make_listing(self.seller), confirmation=details(email=None))
        self.assertEqual(self.failed_checks(assessment), ["Email Domain"])

    def test_price_markup_boundaries(self):
        over = self.evaluate(self.make_listing(self.seller, original="100.00", asking="215.00"))
        self.assertEqual(self.failed_checks(over), ["Price Analysis"])
        self.assertEqual(over.risk_score, 15)

        exactly_double = self.evaluate(self.make_listing(self.seller, original="100.00", asking="200.00"))
        self.assertEqual(self.failed_checks(exactly_double), [])

        too_cheap = self.evaluate(self.make_listing(self.seller, original="100.00", asking="29.00"))
        self.assertEqual(self.failed_checks(too_cheap), ["Price Analysis"])

    def test_verdict_thresholds(self):
        self.assertEqual(verdict_for(29), (True, False))
        self.assertEqual(verdict_for(30), (True, True))
        self.assertEqual(verdict_for(49), (True, True))
        self.assertEqual(verdict_for(50), (False, False))

    def test_event_too_close_requires_manual_review(self):
        assessment = self.evaluate(self.make_listing(self.seller, event_in=timedelta(hours=5)))

        self.assertEqual(assessment.risk_score, 30)
        self.assertTrue(assessment.passed)
        self.assertTrue(assessment.requires_manual_review)
        self.assertEqual(assessment.status, "review")

    def test_past_event_fails_date_check(self):
        assessment = self.evaluate(self.make_listing(self.seller, event_in=-timedelta(hours=1)))
        self.assertIn("Cannot sell tickets for past events", assessment.warnings)

    def test_unknown_seller_fails_trust_check(self):
        stranger = SimpleNamespace(user_id=uuid.uuid4(), email="nobody@example.com")
        assessment = self.evaluate(self.make_listing(stranger))

        self.assertEqual(self.failed_checks(assessment), ["Seller Trust Score"])
        self.assertEqual(assessment.risk_score, 20)

    def test_seller_history_rules(self):
        cases = [
            self.make_seller(joined_days_ago=3),
            self.make_seller(trust_score=59),
            self.make_seller(disputes_lost=2),
        ]
        for seller in cases:
            assessment = self.evaluate(self.make_listing(seller))
            self.assertEqual(self.failed_checks(assessment), ["Seller Trust Score"], seller.email)

    def test_reused_order_reference_is_a_duplicate(self):
        other_seller = self.make_seller()
        other_listing = self.make_listing(other_seller)
        db.session.add(VerificationRequest(listing_id=other_listing.id, order_reference="ABCD1234"))
        db.session.commit()

        assessment = self.evaluate(self.make_listing(self.seller))

        self.assertEqual(self.failed_checks(assessment), ["Duplicate Detection"])
        self.assertEqual(assessment.risk_score, 40)
        self.assertTrue(assessment.requires_manual_review)

    def test_listing_velocity(self):
        for _ in range(5):
            self.make_listing(self.seller)
        elevated = self.evaluate(self.make_listing(self.seller))
        self.assertEqual(self.failed_checks(elevated), [])
        self.assertIn("Higher than average listing activity", elevated.warnings)

        for _ in range(5):
            self.make_listing(self.seller)
        too_many = self.evaluate(self.make_listing(self.seller))
        self.assertEqual(self.failed_checks(too_many), ["Listing Velocity"])

    def test_old_listings_do_not_count_towards_velocity(self):
        for _ in range(12):
            self.make_listing(self.seller, created_at=self.now - timedelta(days=2))
        assessment = self.evaluate(self.make_listing(self.seller))
        self.assertEqual(self.failed_checks(assessment), [])

    def test_order_reference_format(self):
        listing = self.make_listing(self.seller)

        bad = self.evaluate(listing, confirmation=details(order_reference="ABC", platform="eventbrite"))
        self.assertEqual(self.failed_checks(bad), ["Order Reference Format"])

        missing = self.evaluate(listing, confirmation=details(order_reference=None))
        self.assertEqual(self.failed_checks(missing), ["Order Reference Format"])

        ra = self.evaluate(listing, confirmation=details(order_reference="RA-XY12345", platform="resident_advisor"))
        self.assertEqual(self.failed_checks(ra), [])

        unknown_platform = self.evaluate(listing, confirmation=details(order_reference="x", platform="fatsoma"))
        self.assertEqual(self.failed_checks(unknown_platform), [])

    def test_missing_proofs(self):
        listing = self.make_listing(self.seller)

        none = self.evaluate(listing, proofs=[])
        self.assertEqual(self.failed_checks(none), ["Proof Quality"])

        partial = self.evaluate(listing, proofs=GOOD_PROOFS[:1])
        self.assertEqual(self.failed_checks(partial), ["Proof Quality"])
        self.assertEqual(partial.risk_score, 25)

    def test_blacklisted_reference_fails(self):
        db.session.add(FraudBlacklist(pattern="SCAM", type="order_reference", active=True))
        db.session.add(FraudBlacklist(pattern="ABCD", type="order_reference", active=False))
        db.session.commit()
        listing = self.make_listing(self.seller)

        clean = self.evaluate(listing)
        self.assertEqual(clean.risk_score, 0)

        flagged = self.evaluate(listing, confirmation=details(order_reference="SCAM1234"))
        self.assertEqual(self.failed_checks(flagged), ["Fraud Pattern Detection"])
        self.assertEqual(flagged.risk_score, 50)
        self.assertFalse(flagged.passed)

    def test_blacklisted_email_domain_fails(self):
        db.session.add(FraudBlacklist(pattern="badmail.io", type="email_domain", active=True))
        db.session.commit()

        assessment = self.evaluate(self.make_listing(self.seller), confirmation=details(email="x@badmail.io"))
        self.assertEqual(self.failed_checks(assessment), ["Fraud Pattern Detection"])

    def test_score_is_capped_at_100(self):
        stranger = SimpleNamespace(user_id=uuid.uuid4(), email="nobody@example.com")
        listing = self.make_listing(stranger, original="10.00", asking="30.00", event_in=-timedelta(hours=2))

        assessment = self.evaluate(listing, proofs=[], confirmation={})

        self.assertEqual(assessment.risk_score, 100)
        self.assertFalse(assessment.passed)

    def test_same_inputs_give_same_result(self):
        listing = self.make_listing(self.seller, original="100.00", asking="215.00")
        confirmation = details(email="user@mailinator.com")

        first = self.evaluate(listing, confirmation=confirmation)
        second = self.evaluate(listing, confirmation=confirmation)

        self.assertEqual(first, second)
        self.assertEqual(first.risk_score, 25)


class TestFraudCheckEndpoint(EscrowTestCase):
    def setUp(self):
        super().setUp()
        self.seller = self.make_seller()
        self.listing = self.make_listing(self.seller)
        self.headers = self.auth_headers(self.seller.user_id)

    def post(self, body, headers=None):
        return self.client.post("/verify/fraud-check", json=body, headers=self.headers if headers is None else headers)

    def test_requires_bearer_token(self):
        resp = self.post({"listing_id": str(self.listing.id)}, headers={})
        self.assertEqual(resp.status_code, 401)

        resp = self.post({"listing_id": str(self.listing.id)}, headers={"Authorization": "Bearer not-a-jwt"})
        self.assertEqual(resp.status_code, 401)

    def test_requires_listing_id(self):
        resp = self.post({"proofs": GOOD_PROOFS})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "listing_id is required")

    def test_malformed_payloads_are_rejected(self):
        listing_id = str(self.listing.id)
        cases = [
            ({"listing_id": listing_id, "confirmation_details": details(order_reference=12345678)},
             "confirmation_details.order_reference must be a string"),
            ({"listing_id": listing_id, "confirmation_details": details(platform=["dice"])},
             "confirmation_details.ticketing_platform must be a string"),
            ({"listing_id": listing_id, "confirmation_details": details(email={"a": 1})},
             "confirmation_details.original_purchaser_email must be a string"),
            ({"listing_id": listing_id, "confirmation_details": ["x"]},
             "confirmation_details must be an object"),
            ({"listing_id": listing_id, "proofs": "confirmation_email"},
             "proofs must be a list of objects"),
            ({"listing_id": listing_id, "proofs": ["confirmation_email"]},
             "proofs must be a list of objects"),
        ]
        for body, message in cases:
            resp = self.post(body)
            self.assertEqual(resp.status_code, 400, body)
            self.assertEqual(resp.get_json()["error"], message)

        self.assertEqual(FraudCheck.query.count(), 0)

    def test_non_object_body_is_rejected(self):
        resp = self.post(["listing_id"])
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.get_json()["error"], "Request body must be a JSON object")

    def test_unknown_listing(self):
        self.assertEqual(self.post({"listing_id": str(uuid.uuid4())}).status_code, 404)
        self.assertEqual(self.post({"listing_id": "not-a-uuid"}).status_code, 404)

    def test_persists_snapshot_and_updates_listing(self):
        resp = self.post({
            "listing_id": str(self.listing.id),
            "proofs": GOOD_PROOFS,
            "confirmation_details": details(email="user@10minutemail.com"),
        })

        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertTrue(data["passed"])
        self.assertFalse(data["requires_manual_review"])
        self.assertEqual(data["risk_score"], 10)
        self.assertEqual(data["message"], "All verification checks passed")
        self.assertEqual(len(data["checks"]), 9)
        self.assertEqual(set(data["checks"][0]), {"name", "passed", "details"})

        fraud_check = db.session.get(FraudCheck, uuid.UUID(data["fraud_check_id"]))
        self.assertEqual(fraud_check.risk_score, 10)
        self.assertEqual(len(fraud_check.checks), 9)

        listing = db.session.get(Listing, self.listing.id)
        self.assertEqual(listing.fraud_check_id, fraud_check.id)
        self.assertEqual(listing.fraud_check_status, "passed")
        self.assertEqual(listing.fraud_risk_score, 10)

        request_row = VerificationRequest.query.filter_by(listing_id=self.listing.id).one()
        self.assertEqual(request_row.order_reference, "ABCD1234")

    def test_rechecking_same_listing_is_not_a_duplicate(self):
        body = {
            "listing_id": str(self.listing.id),
            "proofs": GOOD_PROOFS,
            "confirmation_details": details(),
        }
        first = self.post(body).get_json()
        second = self.post(body).get_json()

        self.assertEqual(first["risk_score"], second["risk_score"])
        self.assertNotEqual(first["fraud_check_id"], second["fraud_check_id"])

    def test_failed_verdict_message(self):
        resp = self.post({"listing_id": str(self.listing.id), "proofs": [], "confirmation_details": {}})
        data = resp.get_json()

        self.assertEqual(data["risk_score"], 45)
        self.assertTrue(data["requires_manual_review"])
        self.assertEqual(data["message"], "Passed with minor concerns - will be reviewed")
        self.assertEqual(db.session.get(Listing, self.listing.id).fraud_check_status, "review")


if __name__ == '__main__':
    unittest.main()
