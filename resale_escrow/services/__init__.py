from dataclasses import dataclass

from resale_escrow.services.dispute_service import DisputeAutomator
from resale_escrow.services.fraud_service import FraudRiskEngine
from resale_escrow.services.notification_service import NotificationEmitter
from resale_escrow.services.payout_service import PayoutDispatcher, build_stripe_client
from resale_escrow.services.reputation_client import ReputationClient
from resale_escrow.services.settlement_service import EscrowSettlementScheduler


@dataclass
class EscrowServices:
    notifier: NotificationEmitter
    payouts: PayoutDispatcher
    disputes: DisputeAutomator
    scheduler: EscrowSettlementScheduler
    fraud_engine: FraudRiskEngine


def build_services(config, stripe_client=None, reputation_client=None):
    """Wire the collaborators; Stripe and the reputation client can be swapped for test doubles."""
    if stripe_client is None:
        stripe_client = build_stripe_client(
            config.get("STRIPE_SECRET_KEY"),
            timeout=config.get("STRIPE_TIMEOUT_SECONDS", 10),
            max_network_retries=config.get("STRIPE_MAX_NETWORK_RETRIES", 2),
        )
    if reputation_client is None:
        reputation_client = ReputationClient(
            config.get("REPUTATION_SERVICE_URL"),
            timeout=config.get("REPUTATION_TIMEOUT_SECONDS", 2.0),
        )

    notifier = NotificationEmitter()
    payouts = PayoutDispatcher(stripe_client, currency=config.get("PAYOUT_CURRENCY", "gbp"))
    disputes = DisputeAutomator(notifier, reputation_client)
    scheduler = EscrowSettlementScheduler(
        payouts,
        disputes,
        notifier,
        max_workers=config.get("SETTLEMENT_MAX_WORKERS", 4),
        manual_review_policy=config.get("MANUAL_REVIEW_POLICY", "flag"),
    )
    return EscrowServices(notifier, payouts, disputes, scheduler, FraudRiskEngine())


def get_services():
    from flask import current_app
    return current_app.extensions["escrow"]
