"""
Escrow State Machine - Resale Escrow Service
The only place that writes order.escrow_status / escrow.status.

    pending_transfer ──► buyer_confirmation_pending ──► released
           │                         │
           └────────► disputed ◄─────┘
                         │
                         ├──► refunded
                         └──► released

Transitions are idempotent: asking for the state an order is already in is a
no-op, as is a transition whose guard rejects the order. Only a jump the
graph does not allow raises.
"""

import logging
from resale_escrow.errors import InvalidEscrowTransition
from resale_escrow.timeutils import utcnow

logger = logging.getLogger(__name__)

PENDING_TRANSFER = "pending_transfer"
BUYER_CONFIRMATION_PENDING = "buyer_confirmation_pending"
RELEASED = "released"
DISPUTED = "disputed"
REFUNDED = "refunded"

VALID_TRANSITIONS = {
    PENDING_TRANSFER: {BUYER_CONFIRMATION_PENDING, DISPUTED},
    BUYER_CONFIRMATION_PENDING: {RELEASED, DISPUTED},
    DISPUTED: {REFUNDED, RELEASED},
    RELEASED: set(),
    REFUNDED: set(),
}

TERMINAL_STATES = frozenset(s for s, targets in VALID_TRANSITIONS.items() if not targets)


def can_transition(current, target):
    return target in VALID_TRANSITIONS.get(current, set())


def transition(order, target, guard=None, dispute_id=None, actor="system", now=None, **details):
    """
    Move order (and its escrow row) to target.
    Returns True if the order changed, False for a no-op.

    guard: optional predicate on the order, checked after the no-op test.
    dispute_id: required when entering DISPUTED.
    """
    current = order.escrow_status

    if current == target:
        logger.debug(f"Order {order.id} already {target}, nothing to do")
        return False

    if guard is not None and not guard(order):
        logger.info(f"Order {order.id}: guard rejected {current} -> {target}")
        return False

    if not can_transition(current, target):
        raise InvalidEscrowTransition(current, target)

    if target == DISPUTED and dispute_id is None:
        raise ValueError("dispute_id is required to enter the disputed state")

    now = now or utcnow()

    order.escrow_status = target
    if target == DISPUTED:
        order.dispute_id = dispute_id
    elif current == DISPUTED:
        order.dispute_id = None
    if target == RELEASED:
        order.escrow_released_at = now

    if dispute_id is not None:
        details["dispute_id"] = str(dispute_id)

    escrow = order.escrow
    if escrow is not None:
        escrow.status = target
        if target == RELEASED:
            escrow.funds_released_at = now
        # Reassign so the JSON column is flagged dirty
        escrow.events = list(escrow.events or []) + [{
            "event": f"escrow_{target}",
            "from": current,
            "to": target,
            "actor": actor,
            "timestamp": now.isoformat(),
            **details,
        }]
    else:
        logger.warning(f"Order {order.id} has no escrow row; only the order was updated")

    logger.info(f"Order {order.id}: escrow {current} -> {target} ({actor})")
    return True
