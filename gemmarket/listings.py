"""
Gem listing lifecycle: creation with asset upload, lookup, filtered
queries, owner/admin updates and deletion.
"""

from __future__ import annotations

import logging
import math
import re
import uuid
from dataclasses import dataclass, field, replace
from typing import Iterable, Mapping, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from gemmarket.config import Settings
from gemmarket.db import DbClient, GemAsset, GemFilter, GemRecord, UserRecord, new_id
from gemmarket.errors import AuthorizationError, NotFoundError, ValidationError
from gemmarket.permissions import (
    Permission,
    Requester,
    can_modify_listing,
    require_permission,
)
from gemmarket.schemas import GemFields, GemUpdate
from gemmarket.storage import StorageClient
from gemmarket.types import AssetKind, CertificateType, GemStatus, GemType, ListingType

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "description", "gemType", "carat", "cut", "color", "origin")

SELLER_FIELDS_DETAIL = ("name", "email", "rating")
SELLER_FIELDS_MINE = ("name", "email")
SELLER_FIELDS_PUBLIC = ("name", "rating")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class AssetUpload:
    kind: AssetKind
    filename: str
    content: bytes
    content_type: Optional[str] = None
    certificate_type: Optional[CertificateType] = None


@dataclass
class AssetResult:
    """Outcome of storing one uploaded asset."""

    upload: AssetUpload
    asset: Optional[GemAsset] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.asset is not None

    def as_dict(self) -> dict:
        return {
            "kind": self.upload.kind.value,
            "filename": self.upload.filename,
            "ok": self.ok,
            "url": self.asset.url if self.asset else None,
            "publicId": self.asset.public_id if self.asset else None,
            "error": self.error,
        }


@dataclass
class CreatedListing:
    gem: GemRecord
    assets: list[AssetResult] = field(default_factory=list)


def _is_missing(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def _format_errors(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return "; ".join(parts)


def _validate_fields(data: Mapping) -> GemFields:
    try:
        return GemFields.model_validate(dict(data))
    except PydanticValidationError as exc:
        raise ValidationError(_format_errors(exc)) from exc


def _parse_certificate_type(value: Optional[str]) -> CertificateType:
    if _is_missing(value):
        return CertificateType.OTHER
    try:
        return CertificateType(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid certificate type: {value}") from exc


def check_upload_count(kind: AssetKind, count: int, settings: Settings) -> None:
    limit = settings.max_images if kind == AssetKind.IMAGE else settings.max_certificates
    if count > limit:
        raise ValidationError(f"At most {limit} {kind.value}s are allowed")


def check_upload_limits(
    images: Sequence[AssetUpload],
    certificates: Sequence[AssetUpload],
    settings: Settings,
) -> None:
    check_upload_count(AssetKind.IMAGE, len(images), settings)
    check_upload_count(AssetKind.CERTIFICATE, len(certificates), settings)
    for upload in [*images, *certificates]:
        if len(upload.content) > settings.max_upload_bytes:
            raise ValidationError(f"File too large: {upload.filename}")


def _storage_path(gem_id: str, upload: AssetUpload) -> str:
    safe_name = _UNSAFE_FILENAME_CHARS.sub("_", upload.filename or "upload") or "upload"
    folder = "images" if upload.kind == AssetKind.IMAGE else "certificates"
    return f"gems/{gem_id}/{folder}/{uuid.uuid4().hex[:8]}-{safe_name}"


def store_assets(
    storage: StorageClient, gem_id: str, uploads: Iterable[AssetUpload]
) -> list[AssetResult]:
    """Upload each asset independently; one failure never blocks the rest."""
    results: list[AssetResult] = []
    for upload in uploads:
        path = _storage_path(gem_id, upload)
        try:
            url = storage.upload_bytes(path, upload.content, upload.content_type)
        except Exception as exc:
            logger.exception(
                "[%s] Failed to store %s %s", gem_id, upload.kind.value, upload.filename
            )
            results.append(AssetResult(upload=upload, error=str(exc)))
            continue
        asset = GemAsset(
            url=url,
            public_id=path,
            certificate_type=(
                upload.certificate_type or CertificateType.OTHER
                if upload.kind == AssetKind.CERTIFICATE
                else None
            ),
        )
        results.append(AssetResult(upload=upload, asset=asset))
    return results


def create_listing(
    db: DbClient,
    storage: StorageClient,
    requester: Requester,
    fields: Mapping,
    images: Sequence[AssetUpload] = (),
    certificates: Sequence[AssetUpload] = (),
) -> CreatedListing:
    """
    Create a listing in the pending state. Any caller-supplied status or
    owner is ignored.
    """
    if any(_is_missing(fields.get(name)) for name in REQUIRED_FIELDS):
        raise ValidationError("Please provide all required fields")
    require_permission(
        requester,
        Permission.CREATE_LISTING,
        "Only sellers and collectors can create gem listings",
    )
    validated = _validate_fields(
        {key: value for key, value in fields.items() if not _is_missing(value)}
    )
    default_cert_type = _parse_certificate_type(fields.get("certificateType"))

    gem_id = new_id()
    uploads = [*images]
    for upload in certificates:
        if upload.certificate_type is None:
            upload = replace(upload, certificate_type=default_cert_type)
        uploads.append(upload)
    results = store_assets(storage, gem_id, uploads)

    gem = GemRecord(
        gem_id=gem_id,
        title=validated.title,
        description=validated.description,
        gem_type=validated.gem_type,
        carat=validated.carat,
        cut=validated.cut,
        color=validated.color,
        clarity=validated.clarity,
        origin=validated.origin,
        listing_type=validated.listing_type,
        price=validated.price,
        is_public=validated.is_public,
        images=[r.asset for r in results if r.ok and r.upload.kind == AssetKind.IMAGE],
        certificates=[
            r.asset for r in results if r.ok and r.upload.kind == AssetKind.CERTIFICATE
        ],
        seller_id=requester.user_id,
        status=GemStatus.PENDING,
    )
    gem = db.create_gem(gem)
    failed = sum(1 for r in results if not r.ok)
    logger.info(
        "[%s] Listing created by %s (%d assets stored, %d failed)",
        gem.gem_id,
        requester.user_id,
        len(results) - failed,
        failed,
    )
    return CreatedListing(gem=gem, assets=results)


def _with_seller(
    gem: GemRecord, users: Mapping[str, UserRecord], seller_fields: Sequence[str]
) -> dict:
    data = gem.as_dict()
    seller = users.get(gem.seller_id)
    data["seller"] = seller.projection(*seller_fields) if seller else None
    return data


def _join_sellers(
    db: DbClient, gems: list[GemRecord], seller_fields: Sequence[str]
) -> list[dict]:
    users = db.get_users(gem.seller_id for gem in gems)
    return [_with_seller(gem, users, seller_fields) for gem in gems]


def get_listing(db: DbClient, gem_id: str) -> dict:
    """Fetch one listing and count the view."""
    gem = db.get_gem(gem_id)
    if gem is None:
        raise NotFoundError("Gem not found")
    # Read-modify-write; concurrent fetches may lose increments.
    gem.views += 1
    gem = db.save_gem(gem)
    return _join_sellers(db, [gem], SELLER_FIELDS_DETAIL)[0]


def list_my_listings(db: DbClient, requester: Requester) -> list[dict]:
    gems = db.list_gems(GemFilter(seller_id=requester.user_id))
    return _join_sellers(db, gems, SELLER_FIELDS_MINE)


def list_approved_listings(
    db: DbClient,
    *,
    gem_type: Optional[str] = None,
    origin: Optional[str] = None,
    listing_type: Optional[str] = None,
    min_carat: Optional[float] = None,
    max_carat: Optional[float] = None,
) -> list[dict]:
    for bound in (min_carat, max_carat):
        if bound is not None and not math.isfinite(bound):
            raise ValidationError("Carat bounds must be finite numbers")
    query = GemFilter(
        status=GemStatus.APPROVED,
        origin=origin or None,
        min_carat=min_carat,
        max_carat=max_carat,
    )
    # Values outside the closed enums cannot match any stored listing.
    if gem_type:
        if gem_type not in {item.value for item in GemType}:
            return []
        query.gem_type = GemType(gem_type)
    if listing_type:
        if listing_type not in {item.value for item in ListingType}:
            return []
        query.listing_type = ListingType(listing_type)
    gems = db.list_gems(query)
    return _join_sellers(db, gems, SELLER_FIELDS_PUBLIC)


def _load_for_modification(
    db: DbClient, requester: Requester, gem_id: str, action: str
) -> GemRecord:
    gem = db.get_gem(gem_id)
    if gem is None:
        raise NotFoundError("Gem not found")
    if not can_modify_listing(requester, gem.seller_id):
        raise AuthorizationError(f"Not authorized to {action} this gem")
    return gem


def update_listing(
    db: DbClient, requester: Requester, gem_id: str, changes: Mapping
) -> GemRecord:
    gem = _load_for_modification(db, requester, gem_id, "update")
    try:
        update = GemUpdate.model_validate(dict(changes))
    except PydanticValidationError as exc:
        raise ValidationError(_format_errors(exc)) from exc

    current = {
        "title": gem.title,
        "description": gem.description,
        "gem_type": gem.gem_type,
        "carat": gem.carat,
        "cut": gem.cut,
        "color": gem.color,
        "clarity": gem.clarity,
        "origin": gem.origin,
        "listing_type": gem.listing_type,
        "price": gem.price,
        "is_public": gem.is_public,
    }
    current.update(update.model_dump(exclude_unset=True))
    validated = _validate_fields(current)

    gem.title = validated.title
    gem.description = validated.description
    gem.gem_type = validated.gem_type
    gem.carat = validated.carat
    gem.cut = validated.cut
    gem.color = validated.color
    gem.clarity = validated.clarity
    gem.origin = validated.origin
    gem.listing_type = validated.listing_type
    gem.price = validated.price
    gem.is_public = validated.is_public
    gem = db.save_gem(gem)
    logger.info("[%s] Listing updated by %s", gem.gem_id, requester.user_id)
    return gem


def delete_listing(db: DbClient, requester: Requester, gem_id: str) -> None:
    gem = _load_for_modification(db, requester, gem_id, "delete")
    db.delete_gem(gem.gem_id)
    logger.info("[%s] Listing deleted by %s", gem.gem_id, requester.user_id)
