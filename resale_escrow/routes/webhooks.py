import logging

import stripe
from flask import Blueprint, current_app, jsonify, request

from resale_escrow.auth import require_database
from resale_escrow.extensions import db
from resale_escrow.models.seller import SellerProfile

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint('webhooks', __name__)


@webhooks_bp.route('/webhooks/stripe', methods=['POST'])
@require_database
def stripe_webhook():
    """
    Handle Stripe Connect webhooks
    ---
    tags:
      - Webhooks
    responses:
      200:
        description: Event processed
      400:
        description: Invalid payload or signature
      500:
        description: Webhook secret not configured
    """
    secret = current_app.config.get('STRIPE_WEBHOOK_SECRET')
    if not secret:
        return jsonify({'error': 'STRIPE_WEBHOOK_SECRET not configured'}), 500

    payload = request.get_data(as_text=True)
    sig_header = request.headers.get('Stripe-Signature')

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, secret)
    except ValueError:
        return jsonify({'error': 'Invalid payload'}), 400
    except stripe.SignatureVerificationError:
        return jsonify({'error': 'Invalid signature'}), 400

    if event['type'] == 'account.updated':
        handle_account_updated(event['data']['object'])

    return jsonify({'status': 'success'}), 200


def handle_account_updated(account):
    """Keep the seller's payout destination status in step with Stripe."""
    # StripeObject is not a dict on newer SDKs; subscript access only
    account_id = account['id']
    payouts_enabled = bool(account['payouts_enabled']) if 'payouts_enabled' in account else False

    seller = SellerProfile.query.filter_by(stripe_connect_id=account_id).first()
    if not seller:
        logger.warning(f"No seller found for connected account {account_id}")
        return

    seller.stripe_connect_status = 'active' if payouts_enabled else 'restricted'
    db.session.commit()
    logger.info(f"Connected account {account_id} for seller {seller.user_id} is now {seller.stripe_connect_status}")
