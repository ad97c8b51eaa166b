"""
Notification Service - Resale Escrow Service
Writes in-app notice records. Delivery (push, email) happens elsewhere.
A failed insert is rolled back to its own savepoint so it never takes the
caller's transaction down with it.
"""

import logging
from sqlalchemy.exc import SQLAlchemyError
from resale_escrow.extensions import db
from resale_escrow.models.notification import Notification
from resale_escrow.services.outcome import Outcome

logger = logging.getLogger(__name__)


class NotificationEmitter:
    def __init__(self, session=None):
        self.session = session or db.session

    def emit(self, user_email, type, title, message, link=None, user_id=None):
        if not user_email:
            return Outcome.skipped(f"notify:{type}", "no recipient email")

        try:
            with self.session.begin_nested():
                self.session.add(Notification(
                    user_id=user_id,
                    user_email=user_email,
                    type=type,
                    title=title,
                    message=message,
                    link=link,
                ))
        except SQLAlchemyError as e:
            return Outcome.failed(f"notify:{type}", str(e))

        return Outcome.ok(f"notify:{type}")

    def emit_many(self, notices, context=""):
        """Emit each notice independently and log every outcome."""
        return [self.emit(**notice).log(logger, context) for notice in notices]
