"""
Closed enumerations shared by the store, services and HTTP schemas.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    COLLECTOR = "collector"
    ADMIN = "admin"


class GemType(str, Enum):
    DIAMOND = "Diamond"
    RUBY = "Ruby"
    SAPPHIRE = "Sapphire"
    EMERALD = "Emerald"
    TOPAZ = "Topaz"
    AMETHYST = "Amethyst"
    OPAL = "Opal"
    PEARL = "Pearl"
    JADE = "Jade"
    OTHER = "Other"


class Cut(str, Enum):
    ROUND = "Round"
    PRINCESS = "Princess"
    OVAL = "Oval"
    EMERALD = "Emerald"
    CUSHION = "Cushion"
    PEAR = "Pear"
    MARQUISE = "Marquise"
    RADIANT = "Radiant"
    ASSCHER = "Asscher"
    HEART = "Heart"
    OTHER = "Other"


class Clarity(str, Enum):
    FL = "FL"
    IF = "IF"
    VVS1 = "VVS1"
    VVS2 = "VVS2"
    VS1 = "VS1"
    VS2 = "VS2"
    SI1 = "SI1"
    SI2 = "SI2"
    I1 = "I1"
    I2 = "I2"
    I3 = "I3"
    NOT_APPLICABLE = "N/A"


class ListingType(str, Enum):
    PORTFOLIO = "portfolio"
    FIXED_PRICE = "fixed-price"
    AUCTION = "auction"


class GemStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SOLD = "sold"


class AuctionStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    ENDED = "ended"
    CANCELLED = "cancelled"


class CertificateType(str, Enum):
    GIA = "GIA"
    AGS = "AGS"
    IGI = "IGI"
    EGL = "EGL"
    GSI = "GSI"
    GEM_AND_JEWELLERY_AUTHORITY = "Gem & Jewellery Authority"
    OTHER = "Other"


class AssetKind(str, Enum):
    IMAGE = "image"
    CERTIFICATE = "certificate"
