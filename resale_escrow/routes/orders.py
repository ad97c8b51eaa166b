import uuid

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required, get_jwt_identity

from resale_escrow.auth import require_database, require_shared_secret
from resale_escrow.services import get_services
from resale_escrow.services.order_service import (
    create_order,
    get_order_by_id,
    get_order_for_update,
    submit_transfer_proof,
    confirm_receipt,
)

orders_bp = Blueprint('orders', __name__)


def _party_order(order_id, lock=False):
    """Load the order and check the caller is buyer or seller. Returns (order, role, error_response)."""
    order = get_order_for_update(order_id) if lock else get_order_by_id(order_id)
    if not order:
        return None, None, (jsonify({'error': 'Order not found'}), 404)
    if not order.transfer:
        return None, None, (jsonify({'error': 'Transfer record not found'}), 404)

    user_id = get_jwt_identity()
    if user_id == str(order.seller_id):
        return order, 'seller', None
    if user_id == str(order.buyer_id):
        return order, 'buyer', None
    return None, None, (jsonify({'error': 'You are not part of this transaction'}), 403)


# --- POST /internal/orders --------------------------------------------------
# Called by the checkout webhook once the buyer's payment has been captured
@orders_bp.route('/internal/orders', methods=['POST'])
@require_shared_secret('INTERNAL_API_TOKEN')
def create_order_route():
    """
    Open escrow for a paid order
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    responses:
      201:
        description: Order, escrow and transfer created
      400:
        description: Missing or invalid fields
    """
    data = request.get_json(silent=True) or {}

    required = ["buyer_id", "buyer_email", "seller_id", "seller_email", "amount", "seller_payout_amount"]
    missing = [f for f in required if data.get(f) in (None, "")]
    if missing:
        return jsonify({"error": f"Missing fields: {', '.join(missing)}"}), 400

    try:
        order = create_order(
            listing_id=uuid.UUID(data["listing_id"]) if data.get("listing_id") else None,
            buyer_id=uuid.UUID(data["buyer_id"]),
            buyer_email=data["buyer_email"],
            seller_id=uuid.UUID(data["seller_id"]),
            seller_email=data["seller_email"],
            amount=data["amount"],
            seller_payout_amount=data["seller_payout_amount"],
            currency=data.get("currency", "gbp"),
            stripe_payment_intent_id=data.get("stripe_payment_intent_id"),
        )
    except (ValueError, TypeError) as e:
        return jsonify({"error": f"Invalid field: {e}"}), 400

    return jsonify(order.to_dict()), 201


# --- GET /orders/<order_id> -------------------------------------------------
@orders_bp.route('/orders/<uuid:order_id>', methods=['GET'])
@jwt_required()
@require_database
def get_order_route(order_id):
    """
    Get an order with its escrow and transfer
    ---
    tags:
      - Orders
    security:
      - Bearer: []
    parameters:
      - name: order_id
        in: path
        type: string
        required: true
    responses:
      200:
        description: Order details
      403:
        description: Caller is not buyer or seller
      404:
        description: Order not found
    """
    order, _, error = _party_order(order_id)
    if error:
        return error
    return jsonify(order.to_dict()), 200


# --- POST /orders/<order_id>/transfer/proof ---------------------------------
# Seller: pending -> proof_submitted, opens the 48h buyer confirmation window
@orders_bp.route('/orders/<uuid:order_id>/transfer/proof', methods=['POST'])
@jwt_required()
@require_database
def submit_proof_route(order_id):
    """
    Seller submits proof of ticket transfer
    ---
    tags:
      - Transfers
    security:
      - Bearer: []
    responses:
      200:
        description: Proof recorded, buyer confirmation window opened
      400:
        description: No proof or transfer not pending
      403:
        description: Caller is not the seller
    """
    order, role, error = _party_order(order_id, lock=True)
    if error:
        return error
    if role != 'seller':
        return jsonify({'error': 'Only the seller can submit transfer proof'}), 403

    data = request.get_json(silent=True) or {}
    proof_urls = data.get('proof_urls') or []
    if not proof_urls:
        return jsonify({'error': 'Please upload proof of ticket transfer'}), 400

    deadline, err = submit_transfer_proof(
        order,
        proof_urls,
        data.get('notes'),
        data.get('transfer_reference'),
        get_services().notifier,
    )
    if err:
        return jsonify({'error': err}), 400

    return jsonify({
        'success': True,
        'message': 'Transfer proof submitted. Waiting for buyer confirmation.',
        'confirmationDeadline': deadline.isoformat(),
    }), 200


# --- POST /orders/<order_id>/transfer/confirm -------------------------------
# Buyer: proof_submitted -> confirmed, escrow released immediately
@orders_bp.route('/orders/<uuid:order_id>/transfer/confirm', methods=['POST'])
@jwt_required()
@require_database
def confirm_receipt_route(order_id):
    """
    Buyer confirms receipt of the ticket
    ---
    tags:
      - Transfers
    security:
      - Bearer: []
    responses:
      200:
        description: Receipt confirmed and escrow released
      400:
        description: No transfer proof to confirm
      403:
        description: Caller is not the buyer
    """
    order, role, error = _party_order(order_id, lock=True)
    if error:
        return error
    if role != 'buyer':
        return jsonify({'error': 'Only the buyer can confirm receipt'}), 403

    data = request.get_json(silent=True) or {}
    services = get_services()
    payout, err = confirm_receipt(order, data.get('notes'), services.payouts, services.notifier)
    if err:
        return jsonify({'error': err}), 400

    return jsonify({
        'success': True,
        'message': 'Receipt confirmed! Payment will be released to the seller.',
        'seller_payout_status': payout.status,
    }), 200


# --- POST /orders/<order_id>/transfer/issue ---------------------------------
@orders_bp.route('/orders/<uuid:order_id>/transfer/issue', methods=['POST'])
@jwt_required()
@require_database
def report_issue_route(order_id):
    """
    Report a problem with the transfer and open a dispute
    ---
    tags:
      - Transfers
    security:
      - Bearer: []
    responses:
      200:
        description: Dispute opened
      400:
        description: No description given
      409:
        description: A dispute is already open, or escrow already settled
    """
    order, _, error = _party_order(order_id, lock=True)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    notes = data.get('notes')
    if not notes:
        return jsonify({'error': 'Please describe the issue'}), 400

    dispute = get_services().disputes.report_issue(order, get_jwt_identity(), notes)

    return jsonify({
        'success': True,
        'dispute_id': str(dispute.id),
        'message': 'Issue reported. Our team will review and contact both parties.',
    }), 200
