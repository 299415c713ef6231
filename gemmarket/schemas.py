"""
Pydantic schemas for the marketplace API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gemmarket.types import Clarity, Cut, GemType, ListingType


def _strip(value):
    if isinstance(value, str):
        return value.strip()
    return value


class GemFields(BaseModel):
    """Editable listing fields with the full set of constraints."""

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", allow_inf_nan=False
    )

    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    gem_type: GemType = Field(..., alias="gemType")
    carat: float = Field(..., ge=0)
    cut: Cut
    color: str = Field(..., min_length=1)
    clarity: Optional[Clarity] = None
    origin: str = Field(..., min_length=1)
    listing_type: ListingType = Field(
        default=ListingType.PORTFOLIO, alias="listingType"
    )
    price: Optional[float] = Field(default=None, ge=0)
    is_public: bool = Field(default=False, alias="isPublic")

    @field_validator("title", "color", "origin", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("clarity", "price", mode="before")
    @classmethod
    def blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class GemUpdate(BaseModel):
    """Partial update. Unknown and non-editable keys are ignored."""

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", allow_inf_nan=False
    )

    title: Optional[str] = None
    description: Optional[str] = None
    gem_type: Optional[str] = Field(default=None, alias="gemType")
    carat: Optional[float] = None
    cut: Optional[str] = None
    color: Optional[str] = None
    clarity: Optional[str] = None
    origin: Optional[str] = None
    listing_type: Optional[str] = Field(default=None, alias="listingType")
    price: Optional[float] = None
    is_public: Optional[bool] = Field(default=None, alias="isPublic")


class ProfileUpdate(BaseModel):
    """Self-service profile changes. Email and role are not editable here."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None


class AssetOutcome(BaseModel):
    kind: Literal["image", "certificate"]
    filename: str
    ok: bool
    url: Optional[str] = None
    public_id: Optional[str] = Field(default=None, alias="publicId")
    error: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class GemResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: dict


class CreateGemResponse(GemResponse):
    assets: list[AssetOutcome] = Field(default_factory=list)


class GemListResponse(BaseModel):
    success: bool = True
    count: int
    data: list[dict]


class UserResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: dict


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    message: str
    error: Optional[str] = None
