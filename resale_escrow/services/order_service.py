"""
Order Service - Resale Escrow Service
Opens escrow for paid orders and handles the seller/buyer transfer steps.
"""

import logging
from datetime import timedelta
from decimal import Decimal

from resale_escrow.extensions import db
from resale_escrow.models.order import Order, Escrow, Transfer
from resale_escrow.services import escrow_state
from resale_escrow.timeutils import utcnow

logger = logging.getLogger(__name__)

TRANSFER_DEADLINE_HOURS = 24
CONFIRMATION_WINDOW_HOURS = 48


def create_order(listing_id, buyer_id, buyer_email, seller_id, seller_email, amount,
                 seller_payout_amount, currency="gbp", stripe_payment_intent_id=None, now=None):
    """
    Called once the payment has been captured. Funds are already held, so the
    order starts in pending_transfer with a 24h deadline for the seller.
    """
    now = now or utcnow()
    order = Order(
        listing_id=listing_id,
        buyer_id=buyer_id,
        buyer_email=buyer_email,
        seller_id=seller_id,
        seller_email=seller_email,
        amount=Decimal(str(amount)),
        seller_payout_amount=Decimal(str(seller_payout_amount)),
        currency=currency,
        stripe_payment_intent_id=stripe_payment_intent_id,
        status="paid",
        escrow_status=escrow_state.PENDING_TRANSFER,
        created_at=now,
    )
    order.escrow = Escrow(
        amount=order.amount,
        status=escrow_state.PENDING_TRANSFER,
        events=[{"event": "escrow_opened", "to": escrow_state.PENDING_TRANSFER, "timestamp": now.isoformat()}],
    )
    order.transfer = Transfer(
        buyer_id=buyer_id,
        seller_id=seller_id,
        status="pending",
        transfer_deadline=now + timedelta(hours=TRANSFER_DEADLINE_HOURS),
    )
    db.session.add(order)
    db.session.commit()
    logger.info(f"Opened escrow for order {order.id}")
    return order


def get_order_by_id(order_id):
    return db.session.get(Order, order_id)


def get_order_for_update(order_id):
    return Order.query.filter_by(id=order_id).with_for_update().first()


def submit_transfer_proof(order, proof_urls, notes, transfer_reference, notifier, now=None):
    """Seller has sent the ticket; the buyer now has 48h to confirm or dispute."""
    now = now or utcnow()
    transfer = order.transfer
    if transfer.status != "pending":
        return None, f"Transfer is {transfer.status}. Cannot submit proof at this stage."

    deadline = now + timedelta(hours=CONFIRMATION_WINDOW_HOURS)

    escrow_state.transition(
        order,
        escrow_state.BUYER_CONFIRMATION_PENDING,
        actor=str(order.seller_id),
        now=now,
        reason="transfer_proof_submitted",
    )
    transfer.status = "proof_submitted"
    transfer.seller_proof_urls = list(proof_urls)
    transfer.seller_proof_submitted_at = now
    transfer.seller_notes = notes
    transfer.transfer_reference = transfer_reference
    order.status = "transferred"
    order.auto_release_scheduled_at = deadline

    notifier.emit(
        user_email=order.buyer_email,
        user_id=order.buyer_id,
        type="ticket_transferred",
        title="Ticket Transfer Submitted",
        message="The seller has transferred your ticket. Please confirm receipt within 48 hours.",
        link=f"/ticket-reseller/orders/{order.id}",
    ).log(logger, f"order {order.id}")

    db.session.commit()
    logger.info(f"Seller submitted proof for order {order.id}")
    return deadline, None


def confirm_receipt(order, notes, payout_dispatcher, notifier, now=None):
    """Buyer confirms the ticket arrived; escrow is released straight away."""
    now = now or utcnow()
    transfer = order.transfer
    if transfer.status != "proof_submitted":
        return None, f"Cannot confirm receipt. Transfer status is: {transfer.status}"
    if order.escrow_status != escrow_state.BUYER_CONFIRMATION_PENDING:
        # A disputed order is only settled by dispute resolution
        return None, f"Cannot confirm receipt. Escrow status is: {order.escrow_status}"

    transfer.status = "confirmed"
    transfer.buyer_confirmed_at = now
    transfer.buyer_notes = notes

    payout = payout_dispatcher.dispatch(order, auto_released=False, now=now)
    if payout.error:
        logger.error(f"Payout for order {order.id} needs reconciliation: {payout.error}")

    escrow_state.transition(
        order,
        escrow_state.RELEASED,
        actor=str(order.buyer_id),
        now=now,
        reason="buyer_confirmed_receipt",
        payout_status=payout.status,
    )
    order.status = "completed"
    order.buyer_confirmed_receipt = True
    order.buyer_confirmed_at = now

    notifier.emit(
        user_email=order.seller_email,
        user_id=order.seller_id,
        type="ticket_confirmed",
        title="Ticket Confirmed!",
        message="The buyer has confirmed receipt of the ticket. Your payment is being processed.",
        link=f"/ticket-reseller/orders/{order.id}",
    ).log(logger, f"order {order.id}")

    db.session.commit()
    logger.info(f"Buyer confirmed receipt for order {order.id}")
    return payout, None
