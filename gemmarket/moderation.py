"""
Listing status transitions for the moderation and sale collaborators.

pending -> approved | rejected, approved -> sold. Rejected and sold are
terminal.
"""

from __future__ import annotations

import logging
from typing import Optional

from gemmarket.db import DbClient, GemRecord
from gemmarket.errors import NotFoundError, ValidationError
from gemmarket.types import GemStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    GemStatus.PENDING: frozenset({GemStatus.APPROVED, GemStatus.REJECTED}),
    GemStatus.APPROVED: frozenset({GemStatus.SOLD}),
    GemStatus.REJECTED: frozenset(),
    GemStatus.SOLD: frozenset(),
}

MAX_REJECTION_REASON = 500


def transition_status(
    db: DbClient,
    gem_id: str,
    new_status: GemStatus,
    reason: Optional[str] = None,
) -> GemRecord:
    gem = db.get_gem(gem_id)
    if gem is None:
        raise NotFoundError("Gem not found")
    if new_status not in ALLOWED_TRANSITIONS[gem.status]:
        raise ValidationError(
            f"Cannot move gem from {gem.status.value} to {new_status.value}"
        )
    if new_status == GemStatus.REJECTED:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A rejection reason is required")
        if len(reason) > MAX_REJECTION_REASON:
            raise ValidationError("Rejection reason is too long")
        gem.rejection_reason = reason
    else:
        gem.rejection_reason = None
    previous = gem.status
    gem.status = new_status
    gem = db.save_gem(gem)
    logger.info("[%s] Status %s -> %s", gem.gem_id, previous.value, new_status.value)
    return gem
