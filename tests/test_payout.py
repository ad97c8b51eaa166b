import unittest
from decimal import Decimal

import stripe

from resale_escrow.services.payout_service import PayoutDispatcher, to_minor_units
from tests.base import EscrowTestCase


class TestPayoutDispatcher(EscrowTestCase):
    def test_transfer_goes_to_connected_account(self):
        seller = self.make_seller()
        order = self.make_order(seller, payout="45.00")

        result = self.services.payouts.dispatch(order, auto_released=True, now=self.now)

        self.assertEqual(result.status, "completed")
        self.assertEqual(result.transfer_id, "tr_test_1")
        self.assertEqual(order.seller_payout_status, "completed")
        self.assertEqual(order.payout_transfer_id, "tr_test_1")
        self.assertEqual(order.seller_paid_at, self.now)

        call = self.stripe.transfers.calls[0]
        self.assertEqual(call["params"]["amount"], 4500)
        self.assertEqual(call["params"]["currency"], "gbp")
        self.assertEqual(call["params"]["destination"], seller.stripe_connect_id)
        self.assertEqual(call["params"]["source_transaction"], "pi_test_123")
        self.assertEqual(call["params"]["metadata"], {
            "order_id": str(order.id),
            "type": "ticket_escrow_release",
            "auto_released": "true",
        })
        self.assertEqual(call["options"], {"idempotency_key": f"ticket-escrow-release-{order.id}"})

    def test_no_source_transaction_without_payment_intent(self):
        order = self.make_order(self.make_seller(), payment_intent=None)

        self.services.payouts.dispatch(order, now=self.now)

        params = self.stripe.transfers.calls[0]["params"]
        self.assertNotIn("source_transaction", params)
        self.assertEqual(params["metadata"]["auto_released"], "false")

    def test_seller_without_connect_account_is_held(self):
        order = self.make_order(self.make_seller(connect_status=None))

        result = self.services.payouts.dispatch(order, now=self.now)

        self.assertEqual(result.status, "pending_connect")
        self.assertIsNone(result.error)
        self.assertEqual(order.seller_payout_status, "pending_connect")
        self.assertEqual(self.stripe.transfers.calls, [])

    def test_restricted_connect_account_is_held(self):
        order = self.make_order(self.make_seller(connect_status="restricted"))

        result = self.services.payouts.dispatch(order, now=self.now)

        self.assertEqual(result.status, "pending_connect")
        self.assertEqual(self.stripe.transfers.calls, [])

    def test_stripe_error_is_reported_not_raised(self):
        order = self.make_order(self.make_seller())
        self.stripe.transfers.error = stripe.APIConnectionError("Network is unreachable")

        result = self.services.payouts.dispatch(order, now=self.now)

        self.assertEqual(result.status, "failed")
        self.assertIn("Network is unreachable", result.error)
        self.assertEqual(order.seller_payout_status, "failed")
        self.assertIsNone(order.payout_transfer_id)

    def test_already_paid_order_is_not_paid_again(self):
        order = self.make_order(self.make_seller())
        order.payout_transfer_id = "tr_earlier"

        result = self.services.payouts.dispatch(order, now=self.now)

        self.assertEqual(result.status, "completed")
        self.assertEqual(result.transfer_id, "tr_earlier")
        self.assertEqual(self.stripe.transfers.calls, [])

    def test_unconfigured_stripe_fails(self):
        order = self.make_order(self.make_seller())
        dispatcher = PayoutDispatcher(None)

        result = dispatcher.dispatch(order, now=self.now)

        self.assertEqual(result.status, "failed")
        self.assertEqual(result.error, "Stripe is not configured")

    def test_minor_units(self):
        self.assertEqual(to_minor_units(Decimal("45.00")), 4500)
        self.assertEqual(to_minor_units("12.345"), 1235)
        self.assertEqual(to_minor_units(None), 0)


if __name__ == '__main__':
    unittest.main()
