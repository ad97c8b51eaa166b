import uuid

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from resale_escrow.auth import require_database
from resale_escrow.extensions import db
from resale_escrow.models.listing import Listing
from resale_escrow.services import get_services

fraud_bp = Blueprint('fraud', __name__)

DETAIL_FIELDS = ('order_reference', 'ticketing_platform', 'original_purchaser_email')


def _validate_payload(proofs, confirmation_details):
    if not isinstance(proofs, list) or not all(isinstance(p, dict) for p in proofs):
        return 'proofs must be a list of objects'
    if not isinstance(confirmation_details, dict):
        return 'confirmation_details must be an object'
    for field in DETAIL_FIELDS:
        value = confirmation_details.get(field)
        if value is not None and not isinstance(value, str):
            return f'confirmation_details.{field} must be a string'
    return None


@fraud_bp.route('/verify/fraud-check', methods=['POST'])
@jwt_required()
@require_database
def fraud_check():
    """
    Run fraud checks on a ticket listing
    ---
    tags:
      - Verification
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - listing_id
          properties:
            listing_id:
              type: string
            proofs:
              type: array
              items:
                type: object
                properties:
                  proof_type:
                    type: string
            confirmation_details:
              type: object
              properties:
                order_reference:
                  type: string
                ticketing_platform:
                  type: string
                original_purchaser_email:
                  type: string
    responses:
      200:
        description: Risk score, verdict and individual check results
      400:
        description: listing_id missing or malformed body
      401:
        description: Missing or invalid token
      404:
        description: Listing not found
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    listing_id = data.get('listing_id')
    if not listing_id:
        return jsonify({'error': 'listing_id is required'}), 400

    proofs = data.get('proofs') or []
    confirmation_details = data.get('confirmation_details') or {}
    error = _validate_payload(proofs, confirmation_details)
    if error:
        return jsonify({'error': error}), 400

    try:
        listing = db.session.get(Listing, uuid.UUID(str(listing_id)))
    except ValueError:
        listing = None
    if not listing:
        return jsonify({'error': 'Listing not found'}), 404

    assessment, fraud_check = get_services().fraud_engine.run(listing, proofs, confirmation_details)

    return jsonify({
        'passed': assessment.passed,
        'requires_manual_review': assessment.requires_manual_review,
        'risk_score': assessment.risk_score,
        'message': assessment.message,
        'checks': assessment.checks,
        'warnings': assessment.warnings,
        'fraud_check_id': str(fraud_check.id),
    }), 200
