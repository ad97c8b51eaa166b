"""
Settlement Service - Resale Escrow Service
Periodic batch run by the external cron trigger. Four passes, in order:

    1. auto-release   orders whose buyer confirmation window has closed
    2. expiry         listings whose event starts within 2 hours
    3. reminders      12h and 2h transfer-deadline reminders to sellers
    4. disputes       transfers past their deadline (after reminders, so a
                      seller is always warned before being disputed)

Passes never share in-memory state and a failing pass does not stop the
next one. Inside a pass, items are independent: they go through a bounded
thread pool, each worker in its own app context (and so its own database
session), and each item's errors come back as data to the single report.
The scheduler keeps nothing between runs; overlapping runs are prevented by
the trigger, and row locks plus guard re-checks make a retried run a no-op.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

from flask import current_app
from sqlalchemy import or_, update

from resale_escrow.extensions import db
from resale_escrow.models.listing import Listing
from resale_escrow.models.order import Order, Transfer
from resale_escrow.services import escrow_state
from resale_escrow.timeutils import utcnow, as_utc

logger = logging.getLogger(__name__)

LISTING_EXPIRY_WINDOW = timedelta(hours=2)

# (horizon, flag column, notification type, title, message)
REMINDERS = (
    (
        timedelta(hours=12),
        "reminder_12h_sent",
        "transfer_reminder",
        "Transfer Reminder",
        "You have 12 hours left to transfer the ticket. Please complete the transfer soon.",
    ),
    (
        timedelta(hours=2),
        "reminder_2h_sent",
        "transfer_urgent",
        "URGENT: Transfer Required",
        "Only 2 hours left to transfer the ticket! Failure to transfer may result in a refund to the buyer.",
    ),
)


@dataclass
class SettlementReport:
    auto_released: int = 0
    expired_listings: int = 0
    reminders_sent: int = 0
    disputes_opened: int = 0
    errors: List[dict] = field(default_factory=list)

    def add_error(self, type, error, order_id=None, transfer_id=None):
        entry = {"type": type, "error": str(error)}
        if order_id is not None:
            entry["orderId"] = str(order_id)
        if transfer_id is not None:
            entry["transferId"] = str(transfer_id)
        self.errors.append(entry)

    def to_dict(self):
        return {
            "success": True,
            "autoReleased": self.auto_released,
            "expiredListings": self.expired_listings,
            "remindersSent": self.reminders_sent,
            "disputesOpened": self.disputes_opened,
            "errors": self.errors,
        }


@dataclass
class ItemResult:
    counted: bool = False
    errors: List[dict] = field(default_factory=list)


class EscrowSettlementScheduler:
    def __init__(self, payout_dispatcher, dispute_automator, notifier,
                 max_workers=4, manual_review_policy="flag", session=None):
        self.payouts = payout_dispatcher
        self.disputes = dispute_automator
        self.notifier = notifier
        self.max_workers = max(1, int(max_workers))
        self.hold_on_review = manual_review_policy == "hold"
        self.session = session or db.session

    def run(self, now=None):
        now = now or utcnow()
        report = SettlementReport()
        logger.info("[Ticket Cron] Settlement run started")

        report.auto_released = self._run_pass("auto_release", report, self.auto_release_pass, now)
        report.expired_listings = self._run_pass("expire_listings", report, self.expire_listings_pass, now)
        report.reminders_sent = self._run_pass("reminders", report, self.reminder_pass, now)
        report.disputes_opened = self._run_pass("overdue_transfer", report, self.overdue_dispute_pass, now)

        logger.info(
            f"[Ticket Cron] Completed: released={report.auto_released} "
            f"expired={report.expired_listings} reminders={report.reminders_sent} "
            f"disputes={report.disputes_opened} errors={len(report.errors)}"
        )
        return report

    def _run_pass(self, name, report, pass_fn, now):
        try:
            return pass_fn(report, now)
        except Exception as e:
            self.session.rollback()
            logger.error(f"[Ticket Cron] {name} pass failed: {e}", exc_info=True)
            report.add_error(f"{name}_query", e)
            return 0

    # --- Worker pool --------------------------------------------------------

    def _process_items(self, item_ids, handler, now, error_type, id_field):
        """Run handler over item_ids; returns (count, errors)."""
        if not item_ids:
            return 0, []

        def guarded(item_id):
            try:
                return handler(item_id, now)
            except Exception as e:
                self.session.rollback()
                logger.error(f"[Ticket Cron] {error_type} failed for {item_id}: {e}", exc_info=True)
                result = ItemResult()
                result.errors.append({"type": error_type, id_field: str(item_id), "error": str(e)})
                return result

        if self.max_workers == 1 or len(item_ids) == 1:
            results = [guarded(item_id) for item_id in item_ids]
        else:
            app = current_app._get_current_object()

            def in_context(item_id):
                with app.app_context():
                    return guarded(item_id)

            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(item_ids))) as pool:
                results = list(pool.map(in_context, item_ids))

        count = sum(1 for r in results if r.counted)
        errors = [e for r in results for e in r.errors]
        return count, errors

    def _collect(self, report, count_and_errors):
        count, errors = count_and_errors
        report.errors.extend(errors)
        return count

    # --- Pass 1: auto-release ----------------------------------------------

    def find_releasable_order_ids(self, now):
        query = self.session.query(Order.id).filter(
            Order.escrow_status == escrow_state.BUYER_CONFIRMATION_PENDING,
            Order.auto_release_scheduled_at < now,
            Order.dispute_id.is_(None),
        )
        if self.hold_on_review:
            query = query.outerjoin(Listing, Order.listing_id == Listing.id).filter(
                or_(Listing.fraud_check_status.is_(None), Listing.fraud_check_status != "review")
            )
        return [row.id for row in query.all()]

    def auto_release_pass(self, report, now):
        logger.info("[Ticket Cron] Checking for auto-release orders...")
        order_ids = self.find_releasable_order_ids(now)
        return self._collect(report, self._process_items(order_ids, self.release_order, now, "auto_release", "orderId"))

    def release_order(self, order_id, now):
        result = ItemResult()

        order = self.session.query(Order).filter(Order.id == order_id).with_for_update().first()
        if order is None:
            return result

        def releasable(o):
            scheduled = as_utc(o.auto_release_scheduled_at)
            return o.dispute_id is None and scheduled is not None and scheduled < now

        # Re-check under the lock: another run may have settled or disputed it
        if order.escrow_status != escrow_state.BUYER_CONFIRMATION_PENDING or not releasable(order):
            self.session.rollback()
            return result

        payout = self.payouts.dispatch(order, auto_released=True, now=now)
        if payout.error:
            result.errors.append({"type": "stripe_transfer", "orderId": str(order.id), "error": payout.error})

        escrow_state.transition(
            order,
            escrow_state.RELEASED,
            guard=releasable,
            now=now,
            reason="buyer_confirmation_window_expired",
            payout_status=payout.status,
        )
        order.status = "completed"
        order.buyer_confirmed_receipt = True
        order.buyer_confirmed_at = now

        transfer = order.transfer
        if transfer is not None:
            transfer.status = "confirmed"
            transfer.buyer_confirmed_at = now
            transfer.buyer_notes = "Auto-confirmed after deadline"

        self.notifier.emit_many([
            {
                "user_email": order.seller_email,
                "user_id": order.seller_id,
                "type": "escrow_auto_released",
                "title": "Payment Released",
                "message": "Payment for your ticket sale has been automatically released after the confirmation window expired.",
                "link": "/ticket-reseller?tab=selling",
            },
            {
                "user_email": order.buyer_email,
                "user_id": order.buyer_id,
                "type": "order_auto_completed",
                "title": "Order Completed",
                "message": "Your ticket order was automatically completed as you didn't confirm receipt within 48 hours.",
                "link": "/ticket-reseller?tab=purchases",
            },
        ], context=f"order {order.id}")

        self.session.commit()
        logger.info(f"[Ticket Cron] Auto-released escrow for order {order_id}")
        result.counted = True
        return result

    # --- Pass 2: listing expiry --------------------------------------------

    def expire_listings_pass(self, report, now):
        logger.info("[Ticket Cron] Checking for listings to expire...")
        result = self.session.execute(
            update(Listing)
            .where(
                Listing.status.in_(("active", "pending_verification")),
                Listing.event_date < now + LISTING_EXPIRY_WINDOW,
            )
            .values(status="expired", updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        logger.info(f"[Ticket Cron] Expired {result.rowcount} listings")
        return result.rowcount

    # --- Pass 3: reminders -------------------------------------------------

    def reminder_pass(self, report, now):
        logger.info("[Ticket Cron] Checking for transfer reminders...")
        sent = 0
        for horizon, flag, notice_type, title, message in REMINDERS:
            flag_column = getattr(Transfer, flag)
            rows = self.session.query(Transfer.id).filter(
                Transfer.status == "pending",
                flag_column.is_(False),
                Transfer.transfer_deadline < now + horizon,
                Transfer.transfer_deadline > now,
            ).all()

            def send(transfer_id, now, flag=flag, notice_type=notice_type, title=title, message=message):
                return self.send_reminder(transfer_id, flag, notice_type, title, message)

            sent += self._collect(report, self._process_items(
                [row.id for row in rows], send, now, flag.replace("_sent", ""), "transferId"
            ))
        return sent

    def send_reminder(self, transfer_id, flag, notice_type, title, message):
        result = ItemResult()
        flag_column = getattr(Transfer, flag)

        # Compare-and-set: only the run that flips the flag sends the reminder
        flipped = self.session.execute(
            update(Transfer)
            .where(Transfer.id == transfer_id, Transfer.status == "pending", flag_column.is_(False))
            .values({flag: True})
            .execution_options(synchronize_session=False)
        ).rowcount
        if not flipped:
            self.session.rollback()
            return result

        transfer = self.session.get(Transfer, transfer_id)
        order = transfer.order
        outcome = self.notifier.emit(
            user_email=order.seller_email if order else None,
            user_id=order.seller_id if order else None,
            type=notice_type,
            title=title,
            message=message,
            link=f"/ticket-reseller?tab=selling&order={transfer.order_id}",
        ).log(logger, f"transfer {transfer_id}")
        self.session.commit()

        if outcome.succeeded:
            result.counted = True
        else:
            result.errors.append({"type": notice_type, "transferId": str(transfer_id), "error": outcome.detail})
        return result

    # --- Pass 4: overdue transfers -----------------------------------------

    def overdue_dispute_pass(self, report, now):
        logger.info("[Ticket Cron] Checking for overdue transfers...")
        transfer_ids = self.disputes.find_overdue_transfer_ids(now)

        def escalate(transfer_id, now):
            return ItemResult(counted=self.disputes.escalate_overdue_transfer(transfer_id, now) is not None)

        return self._collect(report, self._process_items(transfer_ids, escalate, now, "overdue_transfer", "transferId"))
