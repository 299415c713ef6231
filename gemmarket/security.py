"""
Bearer token verification and requester resolution.

Tokens are issued by the external auth service. They are compact
``header.payload.signature`` strings (base64url, HMAC-SHA256 signed with the
shared ``auth_secret``) whose payload carries the user id in ``sub`` and an
``exp`` UNIX timestamp. The subject is looked up in the record store so role
changes and deactivation take effect immediately.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Callable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gemmarket.config import Settings
from gemmarket.db import DbClient
from gemmarket.dependencies import get_app_settings, get_db_client
from gemmarket.permissions import Requester
from gemmarket.types import Role


def _b64_url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def _b64_url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(message: bytes, secret: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def create_access_token(subject: str, secret: str, expires_in: int = 3600) -> str:
    """Sign a token for ``subject``. Mirrors what the auth service issues."""
    header = {"alg": "HS256", "typ": "JWT"}
    payload = {"sub": subject, "exp": int(time.time()) + expires_in}
    header_b64 = _b64_url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64_url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("utf-8")
    return f"{header_b64}.{payload_b64}.{_b64_url_encode(_sign(signing_input, secret))}"


def decode_access_token(token: str, secret: str) -> Optional[dict]:
    """Return the payload of a valid, unexpired token, else ``None``."""
    parts = token.split(".")
    if len(parts) != 3:
        return None
    header_b64, payload_b64, signature_b64 = parts
    try:
        signature = _b64_url_decode(signature_b64)
        payload = json.loads(_b64_url_decode(payload_b64).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    expected = _sign(f"{header_b64}.{payload_b64}".encode("utf-8"), secret)
    if not hmac.compare_digest(expected, signature):
        return None
    if not isinstance(payload, dict) or "sub" not in payload:
        return None
    exp = payload.get("exp")
    if exp is None or int(exp) < int(time.time()):
        return None
    return payload


bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_requester(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_app_settings),
) -> Requester:
    if credentials is None:
        raise _unauthorized("Not authorized, no token")
    payload = decode_access_token(credentials.credentials, settings.auth_secret)
    if payload is None:
        raise _unauthorized("Not authorized, token failed")
    user = db.get_user(str(payload["sub"]))
    if user is None:
        raise _unauthorized("User no longer exists")
    if not user.is_active:
        raise _unauthorized("User account is deactivated")
    return Requester(user_id=user.user_id, role=user.role)


def require_roles(*roles: Role) -> Callable[..., Requester]:
    """Dependency factory restricting a route to the given roles."""

    def _role_dependency(
        requester: Requester = Depends(get_current_requester),
    ) -> Requester:
        if requester.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User role '{requester.role.value}' is not authorized to access this route",
            )
        return requester

    return _role_dependency
