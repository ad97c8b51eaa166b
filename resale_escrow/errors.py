"""
Errors raised by the escrow service and the HTTP status each one maps to.
"""


class EscrowError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {"error": self.message}


class Unauthorized(EscrowError):
    status_code = 401


class InternalConfigurationError(EscrowError):
    """A required secret or the database is not configured. Nothing was attempted."""
    status_code = 500


class InvalidEscrowTransition(EscrowError):
    status_code = 409

    def __init__(self, current, target):
        super().__init__(f"Cannot transition escrow from {current} to {target}")
        self.current = current
        self.target = target


class DisputeAlreadyOpen(EscrowError):
    status_code = 409

    def __init__(self, dispute_id):
        super().__init__("An active dispute already exists for this order")
        self.dispute_id = dispute_id

    def to_dict(self):
        return {"error": self.message, "dispute_id": str(self.dispute_id)}
