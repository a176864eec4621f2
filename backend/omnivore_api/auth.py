"""
Omnivore API - Authentication
=============================

What:  Decodes the caller's JWT into Claims.
How:   PyJWT, HS256 with settings.jwt_secret. The token is read from the
       Authorization header, either raw or as "Bearer <token>".
Who:   RequestContext (optional claims), protected page routes (required).

A token that is missing, expired, badly signed, or whose "uid" is not a UUID
yields no claims. The upload mutation turns that into an UNAUTHORIZED result;
page routes raise AuthenticationError (HTTP 401).
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request

from omnivore_api.config import settings
from omnivore_api.exceptions import AuthenticationError
from omnivore_api.utils.helpers import validate_uuid

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Claims:
    uid: str
    payload: Dict[str, Any] = field(default_factory=dict)


def create_token(uid: str, expires_in: Optional[int] = 3600, **extra: Any) -> str:
    """Sign a token for uid. Used by tests and local tooling."""
    payload: Dict[str, Any] = {"uid": uid, "iat": int(time.time()), **extra}
    if expires_in is not None:
        payload["exp"] = int(time.time()) + expires_in
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[Claims]:
    if not token:
        return None
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as e:
        logger.info("Rejected token: %s", e)
        return None

    uid = payload.get("uid")
    if not isinstance(uid, str) or not validate_uuid(uid):
        logger.info("Rejected token without a valid uid")
        return None
    return Claims(uid=uid, payload=payload)


def token_from_request(request: Request) -> str:
    header = request.headers.get("Authorization", "").strip()
    if header.lower().startswith(BEARER_PREFIX):
        return header[len(BEARER_PREFIX):].strip()
    return header


async def get_optional_claims(request: Request) -> Optional[Claims]:
    """FastAPI dependency: the caller's claims, or None when unauthenticated."""
    return decode_token(token_from_request(request))


async def require_claims(claims: Optional[Claims] = Depends(get_optional_claims)) -> Claims:
    """
    FastAPI dependency for routes that need a signed-in user.

    Raises:
        AuthenticationError: no valid token on the request.
    """
    if claims is None:
        raise AuthenticationError()
    return claims
