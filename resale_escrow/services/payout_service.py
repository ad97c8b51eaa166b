"""
Payout Service - Resale Escrow Service
Moves released escrow funds to the seller's Stripe Connect account.

Escrow state and payout state are separate: the caller always
advances the order to `released`, and seller_payout_status records what
actually happened at Stripe:
    completed        transfer created
    pending_connect  seller has no active connected account (or nothing to pay yet)
    failed           Stripe rejected or timed out; needs manual reconciliation
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

import stripe

from resale_escrow.models.seller import SellerProfile
from resale_escrow.timeutils import utcnow

logger = logging.getLogger(__name__)

PAYOUT_COMPLETED = "completed"
PAYOUT_PENDING_CONNECT = "pending_connect"
PAYOUT_FAILED = "failed"


def build_stripe_client(api_key, timeout, max_network_retries=2):
    """StripeClient with an explicit per-request timeout, or None when unconfigured."""
    if not api_key:
        return None
    return stripe.StripeClient(
        api_key,
        http_client=stripe.RequestsClient(timeout=timeout),
        max_network_retries=max_network_retries,
    )


def to_minor_units(amount):
    return int((Decimal(amount or 0) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class PayoutResult:
    status: str
    transfer_id: Optional[str] = None
    error: Optional[str] = None


class PayoutDispatcher:
    def __init__(self, stripe_client, currency="gbp", session=None):
        self.stripe_client = stripe_client
        self.currency = currency
        self.session = session

    def _seller_for(self, order):
        query = SellerProfile.query if self.session is None else self.session.query(SellerProfile)
        seller = query.filter_by(user_id=order.seller_id).first()
        if seller is None:
            seller = query.filter_by(email=order.seller_email).first()
        return seller

    def dispatch(self, order, auto_released=False, now=None):
        """
        Pay the seller for a released order and record the result on the order.
        Never raises for Stripe errors; they come back in PayoutResult.error.
        """
        now = now or utcnow()

        if order.payout_transfer_id:
            # Paid on an earlier attempt
            return PayoutResult(PAYOUT_COMPLETED, order.payout_transfer_id)

        result = self._create_transfer(order, auto_released)

        order.seller_payout_status = result.status
        if result.transfer_id:
            order.payout_transfer_id = result.transfer_id
            order.seller_paid_at = now
        return result

    def _create_transfer(self, order, auto_released):
        seller = self._seller_for(order)
        if seller is None or not seller.has_active_payout_destination:
            logger.info(f"Seller {order.seller_email} has no active Stripe Connect account - funds held for order {order.id}")
            return PayoutResult(PAYOUT_PENDING_CONNECT)

        amount = to_minor_units(order.seller_payout_amount)
        if amount <= 0:
            logger.warning(f"Order {order.id} has no seller payout amount recorded")
            return PayoutResult(PAYOUT_PENDING_CONNECT)

        if self.stripe_client is None:
            return PayoutResult(PAYOUT_FAILED, error="Stripe is not configured")

        params = {
            "amount": amount,
            "currency": order.currency or self.currency,
            "destination": seller.stripe_connect_id,
            "metadata": {
                "order_id": str(order.id),
                "type": "ticket_escrow_release",
                "auto_released": "true" if auto_released else "false",
            },
        }
        if order.stripe_payment_intent_id:
            params["source_transaction"] = order.stripe_payment_intent_id

        try:
            # One transfer per order across retries
            transfer = self.stripe_client.transfers.create(
                params=params,
                options={"idempotency_key": f"ticket-escrow-release-{order.id}"},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe transfer error for order {order.id}: {e}")
            return PayoutResult(PAYOUT_FAILED, error=str(e) or e.__class__.__name__)

        logger.info(f"Created Stripe transfer {transfer.id} for order {order.id}")
        return PayoutResult(PAYOUT_COMPLETED, transfer_id=transfer.id)
