"""
Reputation Client - Resale Escrow Service
Issues seller strikes on the external reputation service.
Strikes are best-effort: every failure comes back as an Outcome, never an exception.
"""

import logging
import requests
from resale_escrow.services.outcome import Outcome

logger = logging.getLogger(__name__)


class ReputationClient:
    def __init__(self, base_url, timeout=2.0, session=None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.http = session or requests.Session()

    def issue_strike(self, seller_id, reason, order_id=None):
        if not self.base_url:
            return Outcome.skipped("seller_strike", "REPUTATION_SERVICE_URL not configured")

        try:
            response = self.http.post(
                f"{self.base_url}/sellers/{seller_id}/strikes",
                json={"reason": reason, "order_id": str(order_id) if order_id else None},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return Outcome.failed("seller_strike", f"Error calling reputation service: {e}")

        if response.status_code >= 400:
            return Outcome.failed(
                "seller_strike",
                f"Reputation service returned {response.status_code}: {response.text}",
            )

        return Outcome.ok("seller_strike", str(seller_id))
