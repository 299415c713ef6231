"""
Watchlist operations. The watcher list on a gem never holds duplicates.
"""

from __future__ import annotations

import logging

from gemmarket.db import DbClient, GemRecord
from gemmarket.errors import ConflictError, NotFoundError
from gemmarket.permissions import Requester

logger = logging.getLogger(__name__)


def _get_gem(db: DbClient, gem_id: str) -> GemRecord:
    gem = db.get_gem(gem_id)
    if gem is None:
        raise NotFoundError("Gem not found")
    return gem


def add_watcher(db: DbClient, requester: Requester, gem_id: str) -> GemRecord:
    gem = _get_gem(db, gem_id)
    if requester.user_id in gem.watchers:
        raise ConflictError("Gem already in watchlist")
    gem.watchers.append(requester.user_id)
    gem = db.save_gem(gem)
    logger.info("[%s] %s added to watchlist", gem.gem_id, requester.user_id)
    return gem


def remove_watcher(db: DbClient, requester: Requester, gem_id: str) -> GemRecord:
    gem = _get_gem(db, gem_id)
    if requester.user_id in gem.watchers:
        gem.watchers = [w for w in gem.watchers if w != requester.user_id]
        gem = db.save_gem(gem)
        logger.info("[%s] %s removed from watchlist", gem.gem_id, requester.user_id)
    return gem
