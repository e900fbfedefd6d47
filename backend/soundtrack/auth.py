"""Credentials and authorization guards.

Tokens are HS256 JWTs carrying `{id, isAdmin, exp}`. Reading the bearer
header never fails by itself: a missing, malformed or expired token
simply yields no identity. The guards below then decide whether a
request may proceed, and all of them fail with `Unauthorized`, whether
the caller is anonymous or merely lacks the privilege.

Guards are plain functions so services and tests can call them
directly; `logged_in`, `admin` and `correct_teacher_or_admin(...)` wrap
them as FastAPI dependencies, which FastAPI resolves once per request
before the handler runs.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import settings
from .errors import Unauthorized

logger = logging.getLogger("soundtrack.auth")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller as decoded from the token."""
    id: str
    is_admin: bool = False


def create_token(teacher) -> str:
    """Return a signed JWT for `teacher` (anything with `id` and `is_admin`)."""
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
    payload = {
        "id": teacher.id,
        "isAdmin": bool(getattr(teacher, "is_admin", False)),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Identity]:
    """Verify `token` and return its `Identity`, or None when it is not valid."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("expired token presented")
        return None
    except jwt.PyJWTError as exc:
        logger.info("invalid token presented: %s", exc)
        return None
    teacher_id = payload.get("id")
    if not teacher_id:
        return None
    return Identity(id=str(teacher_id), is_admin=payload.get("isAdmin") is True)


def get_identity(credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme)) -> Optional[Identity]:
    """FastAPI dependency returning the caller's identity, if any."""
    if credentials is None:
        return None
    return decode_token(credentials.credentials)


def ensure_logged_in(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise Unauthorized()
    return identity


def ensure_admin(identity: Optional[Identity]) -> Identity:
    identity = ensure_logged_in(identity)
    if not identity.is_admin:
        raise Unauthorized()
    return identity


def ensure_correct_teacher_or_admin(identity: Optional[Identity], *target_ids) -> Identity:
    """Pass admins, and callers whose id equals any of `target_ids`.

    Ids are compared as strings because route and query values arrive as
    text. `None` targets never match.
    """
    identity = ensure_logged_in(identity)
    if identity.is_admin:
        return identity
    if any(target is not None and str(target) == identity.id for target in target_ids):
        return identity
    raise Unauthorized()


def logged_in(identity: Optional[Identity] = Depends(get_identity)) -> Identity:
    return ensure_logged_in(identity)


def admin(identity: Optional[Identity] = Depends(get_identity)) -> Identity:
    return ensure_admin(identity)


def correct_teacher_or_admin(path_param: Optional[str] = None, query_param: Optional[str] = None):
    """Build a dependency comparing the caller with a teacher id taken from the request.

    The route declares where the id lives: `path_param` names a path
    parameter, `query_param` a query-string field. Either one matching
    is enough.
    """
    if path_param is None and query_param is None:
        raise ValueError("correct_teacher_or_admin needs a path_param or a query_param")

    def dependency(request: Request, identity: Optional[Identity] = Depends(get_identity)) -> Identity:
        targets = []
        if path_param is not None:
            targets.append(request.path_params.get(path_param))
        if query_param is not None:
            targets.append(request.query_params.get(query_param))
        return ensure_correct_teacher_or_admin(identity, *targets)

    return dependency
