"""
Auction scaffolding. One auction per gem; bidding is handled elsewhere.
"""

from __future__ import annotations

from gemmarket.db import AuctionRecord, DbClient
from gemmarket.errors import NotFoundError, ValidationError
from gemmarket.types import ListingType


def open_auction(
    db: DbClient,
    gem_id: str,
    *,
    start_price: float,
    start_time: float,
    end_time: float,
    minimum_bid_increment: float = 100.0,
) -> AuctionRecord:
    gem = db.get_gem(gem_id)
    if gem is None:
        raise NotFoundError("Gem not found")
    if gem.listing_type != ListingType.AUCTION:
        raise ValidationError("Gem is not listed for auction")
    if start_price < 0:
        raise ValidationError("Please provide starting price")
    if minimum_bid_increment < 1:
        raise ValidationError("Minimum bid increment must be at least 1")
    if end_time <= start_time:
        raise ValidationError("Auction must end after it starts")
    auction = AuctionRecord(
        gem_id=gem.gem_id,
        seller_id=gem.seller_id,
        start_price=start_price,
        start_time=start_time,
        end_time=end_time,
        minimum_bid_increment=minimum_bid_increment,
    )
    return db.create_auction(auction)


def get_auction(db: DbClient, gem_id: str) -> AuctionRecord:
    auction = db.get_auction_for_gem(gem_id)
    if auction is None:
        raise NotFoundError("Auction not found")
    return auction
