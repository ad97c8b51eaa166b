"""
Shared-secret bearer auth for machine callers (cron trigger, internal intake).
User-facing routes use flask-jwt-extended instead.
"""

import hmac
from functools import wraps

from flask import current_app, request

from resale_escrow.errors import Unauthorized, InternalConfigurationError


def bearer_token():
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return header[len("Bearer "):]


def require_shared_secret(config_key):
    """
    Reject the request unless it carries exactly the configured secret.
    A missing secret is a deployment error, not a client error.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            expected = current_app.config.get(config_key)
            if not expected:
                raise InternalConfigurationError(f"{config_key} not configured")
            if not current_app.config.get("SQLALCHEMY_DATABASE_URI"):
                raise InternalConfigurationError("Database not configured")

            supplied = bearer_token()
            if supplied is None or not hmac.compare_digest(supplied.encode(), expected.encode()):
                raise Unauthorized("Unauthorized")
            return view(*args, **kwargs)
        return wrapper
    return decorator


def require_database(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not current_app.config.get("SQLALCHEMY_DATABASE_URI"):
            raise InternalConfigurationError("Database not configured")
        return view(*args, **kwargs)
    return wrapper
