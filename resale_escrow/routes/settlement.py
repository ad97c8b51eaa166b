from flask import Blueprint, jsonify
from resale_escrow.auth import require_shared_secret
from resale_escrow.services import get_services

settlement_bp = Blueprint('settlement', __name__)


@settlement_bp.route('/cron/ticket-escrow-release', methods=['POST'])
@require_shared_secret('CRON_SECRET')
def ticket_escrow_release():
    """
    Run the escrow settlement batch
    ---
    tags:
      - Settlement
    security:
      - Bearer: []
    responses:
      200:
        description: Batch completed; per-item failures are listed in errors
      401:
        description: Missing or wrong cron secret
      500:
        description: Cron secret or database not configured
    """
    report = get_services().scheduler.run()
    return jsonify(report.to_dict()), 200
