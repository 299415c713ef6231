"""
Record store for users, gems and auctions, with a SQLAlchemy implementation
and an in-memory one for development and tests.
"""

from __future__ import annotations

import copy
import itertools
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    String,
    create_engine,
    delete,
    select,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from gemmarket.errors import ConflictError
from gemmarket.types import (
    AuctionStatus,
    CertificateType,
    Clarity,
    Cut,
    GemStatus,
    GemType,
    ListingType,
    Role,
)


def new_id() -> str:
    return uuid.uuid4().hex


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass
class UserRecord:
    name: str
    email: str
    password_hash: str
    role: Role = Role.BUYER
    user_id: str = field(default_factory=new_id)
    phone: Optional[str] = None
    bio: Optional[str] = None
    rating: float = 0.0
    total_ratings: int = 0
    is_active: bool = True
    is_verified: bool = False
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self, include_password: bool = False) -> dict:
        data = {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "phone": self.phone,
            "bio": self.bio,
            "rating": self.rating,
            "totalRatings": self.total_ratings,
            "isActive": self.is_active,
            "isVerified": self.is_verified,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if include_password:
            data["passwordHash"] = self.password_hash
        return data

    def projection(self, *fields: str) -> dict:
        """Reduced view used when a user is joined onto a listing."""
        full = self.as_dict()
        return {"id": self.user_id, **{name: full[name] for name in fields}}


@dataclass
class GemAsset:
    url: str
    public_id: Optional[str] = None
    certificate_type: Optional[CertificateType] = None
    certificate_number: Optional[str] = None
    uploaded_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        data = {
            "url": self.url,
            "publicId": self.public_id,
            "uploadedAt": self.uploaded_at,
        }
        if self.certificate_type is not None:
            data["certificateType"] = self.certificate_type.value
            data["certificateNumber"] = self.certificate_number
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "GemAsset":
        cert_type = data.get("certificateType")
        return cls(
            url=data["url"],
            public_id=data.get("publicId"),
            certificate_type=CertificateType(cert_type) if cert_type else None,
            certificate_number=data.get("certificateNumber"),
            uploaded_at=data.get("uploadedAt") or time.time(),
        )


@dataclass
class GemRecord:
    title: str
    description: str
    gem_type: GemType
    carat: float
    cut: Cut
    color: str
    origin: str
    seller_id: str
    gem_id: str = field(default_factory=new_id)
    clarity: Optional[Clarity] = None
    images: List[GemAsset] = field(default_factory=list)
    certificates: List[GemAsset] = field(default_factory=list)
    listing_type: ListingType = ListingType.PORTFOLIO
    price: Optional[float] = None
    status: GemStatus = GemStatus.PENDING
    rejection_reason: Optional[str] = None
    is_public: bool = False
    views: int = 0
    watchers: List[str] = field(default_factory=list)
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.gem_id,
            "title": self.title,
            "description": self.description,
            "gemType": self.gem_type.value,
            "carat": self.carat,
            "cut": self.cut.value,
            "color": self.color,
            "clarity": self.clarity.value if self.clarity else None,
            "origin": self.origin,
            "images": [asset.as_dict() for asset in self.images],
            "certificates": [asset.as_dict() for asset in self.certificates],
            "seller": self.seller_id,
            "listingType": self.listing_type.value,
            "price": self.price,
            "status": self.status.value,
            "rejectionReason": self.rejection_reason,
            "isPublic": self.is_public,
            "views": self.views,
            "watchers": list(self.watchers),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class AuctionRecord:
    gem_id: str
    seller_id: str
    start_price: float
    start_time: float
    end_time: float
    auction_id: str = field(default_factory=new_id)
    current_bid: float = 0.0
    minimum_bid_increment: float = 100.0
    highest_bidder_id: Optional[str] = None
    status: AuctionStatus = AuctionStatus.UPCOMING
    total_bids: int = 0
    winner_id: Optional[str] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def is_active(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return (
            self.status == AuctionStatus.ACTIVE
            and self.start_time <= now < self.end_time
        )

    def as_dict(self) -> dict:
        return {
            "id": self.auction_id,
            "gem": self.gem_id,
            "seller": self.seller_id,
            "startPrice": self.start_price,
            "currentBid": self.current_bid,
            "minimumBidIncrement": self.minimum_bid_increment,
            "highestBidder": self.highest_bidder_id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "status": self.status.value,
            "totalBids": self.total_bids,
            "winner": self.winner_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class GemFilter:
    """Query over gem listings. Unset fields do not constrain the result."""

    seller_id: Optional[str] = None
    status: Optional[GemStatus] = None
    gem_type: Optional[GemType] = None
    origin: Optional[str] = None
    listing_type: Optional[ListingType] = None
    min_carat: Optional[float] = None
    max_carat: Optional[float] = None

    def matches(self, gem: GemRecord) -> bool:
        if self.seller_id is not None and gem.seller_id != self.seller_id:
            return False
        if self.status is not None and gem.status != self.status:
            return False
        if self.gem_type is not None and gem.gem_type != self.gem_type:
            return False
        if self.listing_type is not None and gem.listing_type != self.listing_type:
            return False
        if self.origin and self.origin.lower() not in (gem.origin or "").lower():
            return False
        if self.min_carat is not None and gem.carat < self.min_carat:
            return False
        if self.max_carat is not None and gem.carat > self.max_carat:
            return False
        return True


class DbClient(Protocol):
    """Interface for record store access."""

    def create_user(self, user: UserRecord) -> UserRecord:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        ...

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        ...

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
        ...

    def save_user(self, user: UserRecord) -> UserRecord:
        ...

    def create_gem(self, gem: GemRecord) -> GemRecord:
        ...

    def get_gem(self, gem_id: str) -> Optional[GemRecord]:
        ...

    def save_gem(self, gem: GemRecord) -> GemRecord:
        ...

    def delete_gem(self, gem_id: str) -> bool:
        ...

    def list_gems(self, query: GemFilter) -> list[GemRecord]:
        ...

    def create_auction(self, auction: AuctionRecord) -> AuctionRecord:
        ...

    def get_auction_for_gem(self, gem_id: str) -> Optional[AuctionRecord]:
        ...

    def close(self) -> None:
        ...


class InMemoryDbClient:
    """Simple in-memory store for development and tests.

    Records are copied on the way in and out so callers observe the same
    read-modify-write behaviour as with a real database.
    """

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.gems: Dict[str, GemRecord] = {}
        self.auctions: Dict[str, AuctionRecord] = {}
        self._gem_seq: Dict[str, int] = {}
        self._counter = itertools.count()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.gems.clear()
        self.auctions.clear()
        self._gem_seq.clear()

    def close(self) -> None:
        pass

    def create_user(self, user: UserRecord) -> UserRecord:
        user = copy.deepcopy(user)
        user.email = normalize_email(user.email)
        if self.get_user_by_email(user.email) is not None:
            raise ConflictError("User with this email already exists")
        self.users[user.user_id] = user
        return copy.deepcopy(user)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        return copy.deepcopy(user) if user else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        email = normalize_email(email)
        for user in self.users.values():
            if user.email == email:
                return copy.deepcopy(user)
        return None

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
        return {
            user_id: copy.deepcopy(self.users[user_id])
            for user_id in set(user_ids)
            if user_id in self.users
        }

    def save_user(self, user: UserRecord) -> UserRecord:
        user = copy.deepcopy(user)
        user.email = normalize_email(user.email)
        existing = self.get_user_by_email(user.email)
        if existing and existing.user_id != user.user_id:
            raise ConflictError("User with this email already exists")
        user.updated_at = time.time()
        self.users[user.user_id] = user
        return copy.deepcopy(user)

    def create_gem(self, gem: GemRecord) -> GemRecord:
        self.gems[gem.gem_id] = copy.deepcopy(gem)
        self._gem_seq[gem.gem_id] = next(self._counter)
        return copy.deepcopy(gem)

    def get_gem(self, gem_id: str) -> Optional[GemRecord]:
        gem = self.gems.get(gem_id)
        return copy.deepcopy(gem) if gem else None

    def save_gem(self, gem: GemRecord) -> GemRecord:
        gem = copy.deepcopy(gem)
        gem.updated_at = time.time()
        self.gems[gem.gem_id] = gem
        self._gem_seq.setdefault(gem.gem_id, next(self._counter))
        return copy.deepcopy(gem)

    def delete_gem(self, gem_id: str) -> bool:
        if gem_id not in self.gems:
            return False
        del self.gems[gem_id]
        self._gem_seq.pop(gem_id, None)
        self.auctions.pop(gem_id, None)
        return True

    def list_gems(self, query: GemFilter) -> list[GemRecord]:
        matches = [gem for gem in self.gems.values() if query.matches(gem)]
        matches.sort(
            key=lambda gem: (gem.created_at, self._gem_seq.get(gem.gem_id, 0)),
            reverse=True,
        )
        return [copy.deepcopy(gem) for gem in matches]

    def create_auction(self, auction: AuctionRecord) -> AuctionRecord:
        if auction.gem_id in self.auctions:
            raise ConflictError("Auction already exists for this gem")
        self.auctions[auction.gem_id] = copy.deepcopy(auction)
        return copy.deepcopy(auction)

    def get_auction_for_gem(self, gem_id: str) -> Optional[AuctionRecord]:
        auction = self.auctions.get(gem_id)
        return copy.deepcopy(auction) if auction else None


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        engine_kwargs = {"future": True, "pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        self.engine.dispose()

    # Users

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            user_id=row.user_id,
            name=row.name,
            email=row.email,
            password_hash=row.password_hash,
            role=Role(row.role),
            phone=row.phone,
            bio=row.bio,
            rating=row.rating,
            total_ratings=row.total_ratings,
            is_active=row.is_active,
            is_verified=row.is_verified,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _apply_user(self, row: "UserRow", user: UserRecord) -> None:
        row.name = user.name
        row.email = normalize_email(user.email)
        row.password_hash = user.password_hash
        row.role = user.role.value
        row.phone = user.phone
        row.bio = user.bio
        row.rating = user.rating
        row.total_ratings = user.total_ratings
        row.is_active = user.is_active
        row.is_verified = user.is_verified
        row.created_at = user.created_at
        row.updated_at = user.updated_at

    def create_user(self, user: UserRecord) -> UserRecord:
        with self.Session() as session:
            row = UserRow(user_id=user.user_id)
            self._apply_user(row, user)
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("User with this email already exists") from exc
            session.refresh(row)
            return self._to_user_record(row)

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        with self.Session() as session:
            row = session.get(UserRow, user_id)
            return self._to_user_record(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[UserRecord]:
        with self.Session() as session:
            stmt = select(UserRow).where(UserRow.email == normalize_email(email))
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, UserRecord]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        with self.Session() as session:
            rows = session.execute(
                select(UserRow).where(UserRow.user_id.in_(ids))
            ).scalars()
            return {row.user_id: self._to_user_record(row) for row in rows}

    def save_user(self, user: UserRecord) -> UserRecord:
        with self.Session() as session:
            row = session.get(UserRow, user.user_id)
            if row is None:
                row = UserRow(user_id=user.user_id)
                session.add(row)
            user.updated_at = time.time()
            self._apply_user(row, user)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("User with this email already exists") from exc
            session.refresh(row)
            return self._to_user_record(row)

    # Gems

    def _to_gem_record(self, row: "GemRow") -> GemRecord:
        return GemRecord(
            gem_id=row.gem_id,
            title=row.title,
            description=row.description,
            gem_type=GemType(row.gem_type),
            carat=row.carat,
            cut=Cut(row.cut),
            color=row.color,
            clarity=Clarity(row.clarity) if row.clarity else None,
            origin=row.origin,
            images=[GemAsset.from_dict(item) for item in row.images or []],
            certificates=[
                GemAsset.from_dict(item) for item in row.certificates or []
            ],
            seller_id=row.seller_id,
            listing_type=ListingType(row.listing_type),
            price=row.price,
            status=GemStatus(row.status),
            rejection_reason=row.rejection_reason,
            is_public=row.is_public,
            views=row.views,
            watchers=list(row.watchers or []),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _apply_gem(self, row: "GemRow", gem: GemRecord) -> None:
        row.title = gem.title
        row.description = gem.description
        row.gem_type = gem.gem_type.value
        row.carat = gem.carat
        row.cut = gem.cut.value
        row.color = gem.color
        row.clarity = gem.clarity.value if gem.clarity else None
        row.origin = gem.origin
        row.images = [asset.as_dict() for asset in gem.images]
        row.certificates = [asset.as_dict() for asset in gem.certificates]
        row.seller_id = gem.seller_id
        row.listing_type = gem.listing_type.value
        row.price = gem.price
        row.status = gem.status.value
        row.rejection_reason = gem.rejection_reason
        row.is_public = gem.is_public
        row.views = gem.views
        row.watchers = list(gem.watchers)
        row.created_at = gem.created_at
        row.updated_at = gem.updated_at

    def create_gem(self, gem: GemRecord) -> GemRecord:
        with self.Session() as session:
            row = GemRow(gem_id=gem.gem_id)
            self._apply_gem(row, gem)
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_gem_record(row)

    def get_gem(self, gem_id: str) -> Optional[GemRecord]:
        with self.Session() as session:
            row = session.get(GemRow, gem_id)
            return self._to_gem_record(row) if row else None

    def save_gem(self, gem: GemRecord) -> GemRecord:
        with self.Session() as session:
            row = session.get(GemRow, gem.gem_id)
            if row is None:
                row = GemRow(gem_id=gem.gem_id)
                session.add(row)
            gem.updated_at = time.time()
            self._apply_gem(row, gem)
            session.commit()
            session.refresh(row)
            return self._to_gem_record(row)

    def delete_gem(self, gem_id: str) -> bool:
        with self.Session() as session:
            row = session.get(GemRow, gem_id)
            if row is None:
                return False
            session.execute(delete(AuctionRow).where(AuctionRow.gem_id == gem_id))
            session.delete(row)
            session.commit()
            return True

    def list_gems(self, query: GemFilter) -> list[GemRecord]:
        stmt = select(GemRow)
        if query.seller_id is not None:
            stmt = stmt.where(GemRow.seller_id == query.seller_id)
        if query.status is not None:
            stmt = stmt.where(GemRow.status == query.status.value)
        if query.gem_type is not None:
            stmt = stmt.where(GemRow.gem_type == query.gem_type.value)
        if query.listing_type is not None:
            stmt = stmt.where(GemRow.listing_type == query.listing_type.value)
        if query.origin:
            stmt = stmt.where(GemRow.origin.icontains(query.origin, autoescape=True))
        if query.min_carat is not None:
            stmt = stmt.where(GemRow.carat >= query.min_carat)
        if query.max_carat is not None:
            stmt = stmt.where(GemRow.carat <= query.max_carat)
        stmt = stmt.order_by(GemRow.created_at.desc())
        with self.Session() as session:
            return [self._to_gem_record(row) for row in session.execute(stmt).scalars()]

    # Auctions

    def _to_auction_record(self, row: "AuctionRow") -> AuctionRecord:
        return AuctionRecord(
            auction_id=row.auction_id,
            gem_id=row.gem_id,
            seller_id=row.seller_id,
            start_price=row.start_price,
            current_bid=row.current_bid,
            minimum_bid_increment=row.minimum_bid_increment,
            highest_bidder_id=row.highest_bidder_id,
            start_time=row.start_time,
            end_time=row.end_time,
            status=AuctionStatus(row.status),
            total_bids=row.total_bids,
            winner_id=row.winner_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def create_auction(self, auction: AuctionRecord) -> AuctionRecord:
        with self.Session() as session:
            row = AuctionRow(
                auction_id=auction.auction_id,
                gem_id=auction.gem_id,
                seller_id=auction.seller_id,
                start_price=auction.start_price,
                current_bid=auction.current_bid,
                minimum_bid_increment=auction.minimum_bid_increment,
                highest_bidder_id=auction.highest_bidder_id,
                start_time=auction.start_time,
                end_time=auction.end_time,
                status=auction.status.value,
                total_bids=auction.total_bids,
                winner_id=auction.winner_id,
                created_at=auction.created_at,
                updated_at=auction.updated_at,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("Auction already exists for this gem") from exc
            session.refresh(row)
            return self._to_auction_record(row)

    def get_auction_for_gem(self, gem_id: str) -> Optional[AuctionRecord]:
        with self.Session() as session:
            stmt = select(AuctionRow).where(AuctionRow.gem_id == gem_id)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_auction_record(row) if row else None


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, index=True, default=Role.BUYER.value)
    phone = Column(String, nullable=True)
    bio = Column(String(500), nullable=True)
    rating = Column(Float, nullable=False, default=0.0)
    total_ratings = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class GemRow(Base):
    __tablename__ = "gems"

    gem_id = Column(String, primary_key=True)
    title = Column(String(100), nullable=False)
    description = Column(String(2000), nullable=False)
    gem_type = Column(String, nullable=False, index=True)
    carat = Column(Float, nullable=False)
    cut = Column(String, nullable=False)
    color = Column(String, nullable=False)
    clarity = Column(String, nullable=True)
    origin = Column(String, nullable=False)
    images = Column(JSON, nullable=False, default=list)
    certificates = Column(JSON, nullable=False, default=list)
    seller_id = Column(String, nullable=False, index=True)
    listing_type = Column(String, nullable=False, index=True)
    price = Column(Float, nullable=True)
    status = Column(String, nullable=False, index=True)
    rejection_reason = Column(String(500), nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    views = Column(Integer, nullable=False, default=0)
    watchers = Column(JSON, nullable=False, default=list)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)


class AuctionRow(Base):
    __tablename__ = "auctions"

    auction_id = Column(String, primary_key=True)
    gem_id = Column(String, nullable=False, unique=True, index=True)
    seller_id = Column(String, nullable=False)
    start_price = Column(Float, nullable=False)
    current_bid = Column(Float, nullable=False, default=0.0)
    minimum_bid_increment = Column(Float, nullable=False, default=100.0)
    highest_bidder_id = Column(String, nullable=True)
    start_time = Column(Float, nullable=False)
    end_time = Column(Float, nullable=False, index=True)
    status = Column(String, nullable=False, index=True)
    total_bids = Column(Integer, nullable=False, default=0)
    winner_id = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
