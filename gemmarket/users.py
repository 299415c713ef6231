"""
User account helpers used by the auth collaborator and profile routes.
"""

from __future__ import annotations

import re
from typing import Optional

from gemmarket.db import DbClient, UserRecord, normalize_email
from gemmarket.errors import NotFoundError, ValidationError
from gemmarket.permissions import Requester
from gemmarket.types import Role

EMAIL_PATTERN = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")
MAX_BIO_LENGTH = 500


def register_user(
    db: DbClient,
    *,
    name: str,
    email: str,
    password_hash: str,
    role: Role = Role.BUYER,
    phone: Optional[str] = None,
    bio: Optional[str] = None,
) -> UserRecord:
    """Store a new account. ``password_hash`` is produced by the auth service."""
    name = (name or "").strip()
    email = normalize_email(email)
    if not name:
        raise ValidationError("Please provide a name")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Please provide a valid email")
    if not password_hash:
        raise ValidationError("Please provide a password")
    if bio and len(bio) > MAX_BIO_LENGTH:
        raise ValidationError("Bio is too long")
    user = UserRecord(
        name=name,
        email=email,
        password_hash=password_hash,
        role=role,
        phone=phone.strip() if phone else None,
        bio=bio,
    )
    return db.create_user(user)


def get_profile(db: DbClient, requester: Requester) -> dict:
    user = db.get_user(requester.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user.as_dict()


def record_rating(db: DbClient, user_id: str, score: float) -> UserRecord:
    """Fold a new 0-5 score into the user's running average."""
    if not 0 <= score <= 5:
        raise ValidationError("Rating must be between 0 and 5")
    user = db.get_user(user_id)
    if user is None:
        raise NotFoundError("User not found")
    total = user.rating * user.total_ratings + score
    user.total_ratings += 1
    user.rating = round(total / user.total_ratings, 2)
    return db.save_user(user)


def update_profile(
    db: DbClient,
    requester: Requester,
    *,
    name: Optional[str] = None,
    phone: Optional[str] = None,
    bio: Optional[str] = None,
) -> UserRecord:
    """Change the requester's own name, phone or bio. Email and role are fixed."""
    user = db.get_user(requester.user_id)
    if user is None:
        raise NotFoundError("User not found")
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("Please provide a name")
        user.name = name
    if phone is not None:
        user.phone = phone.strip() or None
    if bio is not None:
        if len(bio) > MAX_BIO_LENGTH:
            raise ValidationError("Bio is too long")
        user.bio = bio
    return db.save_user(user)
