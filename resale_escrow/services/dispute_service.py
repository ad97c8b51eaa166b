"""
Dispute Service - Resale Escrow Service
Opens disputes, either automatically when a seller misses the transfer
deadline or on behalf of a party reporting an issue.

Invariant kept here: an order has at most one open dispute, and
order.escrow_status == "disputed" exactly when order.dispute_id is set.
"""

import logging
from datetime import timedelta

from resale_escrow.errors import DisputeAlreadyOpen, InvalidEscrowTransition
from resale_escrow.extensions import db
from resale_escrow.models.dispute import Dispute
from resale_escrow.models.order import Order, Transfer
from resale_escrow.services import escrow_state
from resale_escrow.timeutils import utcnow, as_utc

logger = logging.getLogger(__name__)

AUTO_DISPUTE_RESPONSE_HOURS = 24
PARTY_DISPUTE_RESPONSE_HOURS = 48


class DisputeAutomator:
    def __init__(self, notifier, reputation_client, session=None):
        self.notifier = notifier
        self.reputation = reputation_client
        self.session = session or db.session

    def open_dispute(self, order, reason, description, opened_by=None,
                     response_hours=PARTY_DISPUTE_RESPONSE_HOURS, now=None):
        """Create the dispute row and move the order into the disputed state."""
        now = now or utcnow()

        if order.escrow_status in escrow_state.TERMINAL_STATES:
            raise InvalidEscrowTransition(order.escrow_status, escrow_state.DISPUTED)

        existing = (
            self.session.query(Dispute)
            .filter(Dispute.order_id == order.id, Dispute.status == "open")
            .first()
        )
        if existing is not None:
            raise DisputeAlreadyOpen(existing.id)

        dispute = Dispute(
            order_id=order.id,
            opened_by=opened_by,
            buyer_id=order.buyer_id,
            buyer_email=order.buyer_email,
            seller_id=order.seller_id,
            seller_email=order.seller_email,
            reason=reason,
            description=description,
            status="open",
            response_deadline=now + timedelta(hours=response_hours),
        )
        self.session.add(dispute)
        self.session.flush()

        escrow_state.transition(
            order,
            escrow_state.DISPUTED,
            dispute_id=dispute.id,
            actor=str(opened_by) if opened_by else "system",
            now=now,
            reason=reason,
        )
        order.status = "disputed"
        return dispute

    # --- Overdue transfers (settlement pass 4) --------------------------

    def find_overdue_transfer_ids(self, now):
        rows = (
            self.session.query(Transfer.id)
            .filter(Transfer.status == "pending", Transfer.transfer_deadline < now)
            .all()
        )
        return [row.id for row in rows]

    def escalate_overdue_transfer(self, transfer_id, now=None):
        """
        Dispute one overdue transfer. Returns the new dispute, or None if the
        transfer was already handled (by a previous run or another worker).
        """
        now = now or utcnow()

        transfer = self.session.get(Transfer, transfer_id)
        if transfer is None:
            return None

        order = (
            self.session.query(Order)
            .filter(Order.id == transfer.order_id)
            .with_for_update()
            .first()
        )
        if order is None:
            raise LookupError(f"Order {transfer.order_id} not found for transfer {transfer.id}")

        self.session.refresh(transfer)
        if transfer.status != "pending" or as_utc(transfer.transfer_deadline) >= now:
            return None
        if order.dispute_id is not None:
            # Buyer got there first; just close out the transfer
            transfer.status = "failed"
            self.session.commit()
            return None

        dispute = self.open_dispute(
            order,
            reason="ticket_not_received",
            description="Seller failed to transfer ticket within 24 hours.",
            response_hours=AUTO_DISPUTE_RESPONSE_HOURS,
            now=now,
        )
        transfer.status = "failed"

        self.reputation.issue_strike(
            order.seller_id,
            "Failed to transfer ticket within deadline",
            order_id=order.id,
        ).log(logger, f"order {order.id}")

        self.notifier.emit_many([
            {
                "user_email": order.buyer_email,
                "user_id": order.buyer_id,
                "type": "auto_dispute_created",
                "title": "Dispute Created",
                "message": "The seller failed to transfer the ticket within 24 hours. A dispute has been opened automatically.",
                "link": "/ticket-reseller?tab=disputes",
            },
            {
                "user_email": order.seller_email,
                "user_id": order.seller_id,
                "type": "strike_issued",
                "title": "Strike Issued",
                "message": "You failed to transfer a ticket within 24 hours. A strike has been added to your account.",
                "link": "/ticket-reseller?tab=selling",
            },
        ], context=f"order {order.id}")

        self.session.commit()
        logger.info(f"Auto-created dispute {dispute.id} for order {order.id}")
        return dispute

    # --- Party-reported issues ------------------------------------------

    def report_issue(self, order, user_id, notes, now=None):
        is_buyer = str(order.buyer_id) == str(user_id)
        dispute = self.open_dispute(
            order,
            reason="ticket_not_received" if is_buyer else "buyer_unresponsive",
            description=notes,
            opened_by=order.buyer_id if is_buyer else order.seller_id,
            now=now,
        )

        other_email = order.seller_email if is_buyer else order.buyer_email
        other_id = order.seller_id if is_buyer else order.buyer_id
        self.notifier.emit(
            user_email=other_email,
            user_id=other_id,
            type="dispute_opened",
            title="Dispute Opened",
            message="A dispute has been opened for your ticket transaction. Please respond within 48 hours.",
            link=f"/ticket-reseller/disputes/{dispute.id}",
        ).log(logger, f"order {order.id}")

        self.session.commit()
        logger.info(f"Dispute {dispute.id} opened by {user_id} for order {order.id}")
        return dispute
