# workproof/auth.py
import time
from typing import Any, Dict, Optional

import httpx
from jose import JWTError, jwt
from supabase import Client

from .config import Settings
from .errors import Unauthorized
from .models import Caller, Role

_cache: Dict[str, Any] = {"jwks": None, "fetched_at": 0.0}


def _get_jwks(settings: Settings) -> Dict[str, Any]:
    now = time.time()
    if not _cache["jwks"] or now - _cache["fetched_at"] > 600:
        headers = {}
        if settings.supabase_service_role_key:
            headers = {"apikey": settings.supabase_service_role_key}
        try:
            resp = httpx.get(f"{settings.supabase_issuer}/.well-known/jwks.json", headers=headers, timeout=10)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise Unauthorized(f"Could not fetch signing keys: {e}") from e
        _cache["jwks"] = resp.json()
        _cache["fetched_at"] = now
    return _cache["jwks"]


def _caller(user_id: str, app_metadata: Optional[dict], user_metadata: Optional[dict]) -> Caller:
    # app_metadata is server-controlled, so it wins over user_metadata
    raw = (app_metadata or {}).get("role") or (user_metadata or {}).get("role")
    if not raw:
        raise Unauthorized("Account has no marketplace role")
    try:
        role = Role(str(raw).upper())
    except ValueError:
        raise Unauthorized(f"Unknown role {raw!r}")
    return Caller(id=user_id, role=role)


def _caller_from_claims(claims: Dict[str, Any]) -> Caller:
    sub = claims.get("sub")
    if not sub:
        raise Unauthorized("Token missing subject (sub)")
    return _caller(sub, claims.get("app_metadata"), claims.get("user_metadata"))


def _fetch_caller_from_supabase(token: str, supabase: Optional[Client]) -> Caller:
    """Fallback: ask Supabase who this token belongs to."""
    if supabase is None:
        raise Unauthorized("Could not verify token")
    try:
        resp = supabase.auth.get_user(token)
    except Exception as e:
        raise Unauthorized(f"Could not verify token with Supabase: {e}") from e
    user = resp.user if resp else None
    if not user:
        raise Unauthorized("User id not found from Supabase")
    return _caller(user.id, user.app_metadata, user.user_metadata)


def verify_and_get_caller(token: str, settings: Settings, supabase: Optional[Client] = None) -> Caller:
    """
    Accepts Supabase access tokens signed with:
      - HS256 (JWT secret)  -> verify with SUPABASE_JWT_SECRET
      - RS256 (JWKS)        -> verify with the project JWKS
    Falls back to Supabase auth if neither applies.
    """
    try:
        unverified_header = jwt.get_unverified_header(token)
        alg = unverified_header.get("alg", "")
    except JWTError:
        return _fetch_caller_from_supabase(token, supabase)

    if alg.upper() == "HS256":
        if not settings.supabase_jwt_secret:
            return _fetch_caller_from_supabase(token, supabase)
        try:
            claims = jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                options={"verify_aud": False},
                issuer=settings.supabase_issuer,
            )
        except JWTError as e:
            raise Unauthorized(f"Invalid token (HS256): {e}") from e
        return _caller_from_claims(claims)

    if alg.upper() == "RS256" and settings.supabase_issuer:
        jwks = _get_jwks(settings)
        kid = unverified_header.get("kid")
        key = next((k for k in jwks.get("keys", []) if k.get("kid") == kid), None)
        if not key:
            raise Unauthorized("Signing key not found")
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                options={"verify_aud": False},
                issuer=settings.supabase_issuer,
            )
        except JWTError as e:
            raise Unauthorized(f"Invalid token (RS256): {e}") from e
        return _caller_from_claims(claims)

    return _fetch_caller_from_supabase(token, supabase)
