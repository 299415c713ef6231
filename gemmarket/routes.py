"""
HTTP routes for the marketplace API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile

from gemmarket.config import Settings
from gemmarket.db import DbClient
from gemmarket.dependencies import get_app_settings, get_db_client, get_storage_client
from gemmarket.errors import ValidationError
from gemmarket import listings, users, watchlist
from gemmarket.listings import AssetUpload
from gemmarket.permissions import Permission, Requester, roles_with
from gemmarket.schemas import (
    CreateGemResponse,
    GemListResponse,
    GemResponse,
    MessageResponse,
    ProfileUpdate,
    UserResponse,
)
from gemmarket.security import get_current_requester, require_roles
from gemmarket.storage import StorageClient
from gemmarket.types import AssetKind

logger = logging.getLogger(__name__)

router = APIRouter()

listing_creators = require_roles(*roles_with(Permission.CREATE_LISTING))
listing_editors = require_roles(*roles_with(Permission.EDIT_OWN_LISTING))


async def _read_uploads(
    files: Optional[list[UploadFile]], kind: AssetKind, settings: Settings
) -> list[AssetUpload]:
    files = files or []
    listings.check_upload_count(kind, len(files), settings)
    uploads = []
    for file in files:
        # Read at most one byte past the limit.
        content = await file.read(settings.max_upload_bytes + 1)
        if len(content) > settings.max_upload_bytes:
            raise ValidationError(f"File too large: {file.filename}")
        uploads.append(
            AssetUpload(
                kind=kind,
                filename=file.filename or "upload",
                content=content,
                content_type=file.content_type,
            )
        )
    return uploads


@router.post("/gems", response_model=CreateGemResponse, status_code=201)
async def create_gem(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    gem_type: Optional[str] = Form(None, alias="gemType"),
    carat: Optional[str] = Form(None),
    cut: Optional[str] = Form(None),
    color: Optional[str] = Form(None),
    clarity: Optional[str] = Form(None),
    origin: Optional[str] = Form(None),
    listing_type: Optional[str] = Form(None, alias="listingType"),
    price: Optional[str] = Form(None),
    certificate_type: Optional[str] = Form(None, alias="certificateType"),
    images: Optional[list[UploadFile]] = File(None),
    certificates: Optional[list[UploadFile]] = File(None),
    requester: Requester = Depends(listing_creators),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_app_settings),
):
    image_uploads = await _read_uploads(images, AssetKind.IMAGE, settings)
    certificate_uploads = await _read_uploads(
        certificates, AssetKind.CERTIFICATE, settings
    )
    listings.check_upload_limits(image_uploads, certificate_uploads, settings)

    fields = {
        "title": title,
        "description": description,
        "gemType": gem_type,
        "carat": carat,
        "cut": cut,
        "color": color,
        "clarity": clarity,
        "origin": origin,
        "listingType": listing_type,
        "price": price,
        "certificateType": certificate_type,
    }
    created = listings.create_listing(
        db, storage, requester, fields, image_uploads, certificate_uploads
    )
    return CreateGemResponse(
        message="Gem listing created successfully. Awaiting admin approval.",
        data=created.gem.as_dict(),
        assets=[result.as_dict() for result in created.assets],
    )


@router.get("/gems/approved", response_model=GemListResponse)
def list_approved_gems(
    gem_type: Optional[str] = Query(None, alias="gemType"),
    min_carat: Optional[float] = Query(None, alias="minCarat", allow_inf_nan=False),
    max_carat: Optional[float] = Query(None, alias="maxCarat", allow_inf_nan=False),
    origin: Optional[str] = Query(None),
    listing_type: Optional[str] = Query(None, alias="listingType"),
    db: DbClient = Depends(get_db_client),
):
    gems = listings.list_approved_listings(
        db,
        gem_type=gem_type,
        origin=origin,
        listing_type=listing_type,
        min_carat=min_carat,
        max_carat=max_carat,
    )
    return GemListResponse(count=len(gems), data=gems)


@router.get("/gems/my-gems", response_model=GemListResponse)
def list_my_gems(
    requester: Requester = Depends(
        require_roles(*roles_with(Permission.VIEW_OWN_LISTINGS))
    ),
    db: DbClient = Depends(get_db_client),
):
    gems = listings.list_my_listings(db, requester)
    return GemListResponse(count=len(gems), data=gems)


@router.get("/gems/{gem_id}", response_model=GemResponse)
def get_gem(gem_id: str, db: DbClient = Depends(get_db_client)):
    return GemResponse(data=listings.get_listing(db, gem_id))


@router.put("/gems/{gem_id}", response_model=GemResponse)
def update_gem(
    gem_id: str,
    changes: dict = Body(...),
    requester: Requester = Depends(listing_editors),
    db: DbClient = Depends(get_db_client),
):
    gem = listings.update_listing(db, requester, gem_id, changes)
    return GemResponse(message="Gem updated successfully", data=gem.as_dict())


@router.delete("/gems/{gem_id}", response_model=MessageResponse)
def delete_gem(
    gem_id: str,
    requester: Requester = Depends(listing_editors),
    db: DbClient = Depends(get_db_client),
):
    listings.delete_listing(db, requester, gem_id)
    return MessageResponse(message="Gem deleted successfully")


@router.post("/gems/{gem_id}/watch", response_model=MessageResponse)
def watch_gem(
    gem_id: str,
    requester: Requester = Depends(get_current_requester),
    db: DbClient = Depends(get_db_client),
):
    watchlist.add_watcher(db, requester, gem_id)
    return MessageResponse(message="Gem added to watchlist")


@router.delete("/gems/{gem_id}/watch", response_model=MessageResponse)
def unwatch_gem(
    gem_id: str,
    requester: Requester = Depends(get_current_requester),
    db: DbClient = Depends(get_db_client),
):
    watchlist.remove_watcher(db, requester, gem_id)
    return MessageResponse(message="Gem removed from watchlist")


@router.get("/users/me", response_model=UserResponse)
def read_profile(
    requester: Requester = Depends(get_current_requester),
    db: DbClient = Depends(get_db_client),
):
    return UserResponse(data=users.get_profile(db, requester))


@router.put("/users/me", response_model=UserResponse)
def update_my_profile(
    changes: ProfileUpdate,
    requester: Requester = Depends(get_current_requester),
    db: DbClient = Depends(get_db_client),
):
    user = users.update_profile(
        db, requester, name=changes.name, phone=changes.phone, bio=changes.bio
    )
    return UserResponse(message="Profile updated successfully", data=user.as_dict())
