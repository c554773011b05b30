"""Identity for ledger requests.

Users sign in with the hosted auth provider, which issues HS256 access tokens.
We only verify the token and read the user id from `sub`; accounts are not
managed here.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import jwt
from flask import request

from errors import Unauthenticated


def _secret() -> str:
    return os.getenv("JWT_SECRET") or os.getenv("SECRET_KEY") or "dev-secret-key-change-me"


def _audience() -> Optional[str]:
    return (os.getenv("JWT_AUDIENCE") or "").strip() or None


def get_bearer_token(auth_header: str) -> Optional[str]:
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    audience = _audience()
    try:
        return jwt.decode(
            token,
            _secret(),
            algorithms=["HS256"],
            audience=audience,
            options={"verify_aud": audience is not None},
        )
    except jwt.PyJWTError:
        return None


def current_user_id() -> Optional[str]:
    token = get_bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None
    payload = decode_token(token)
    if not payload:
        return None
    sub = str(payload.get("sub") or "").strip()
    return sub[:64] or None


def require_user() -> str:
    user_id = current_user_id()
    if not user_id:
        raise Unauthenticated()
    return user_id
