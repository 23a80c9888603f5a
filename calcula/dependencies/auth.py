import logging
from dataclasses import dataclass, field
from typing import Optional

import jwt  # PyJWT
from fastapi import Depends, Header
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from calcula.core.config import SUPABASE_JWT_SECRET, SUPABASE_URL
from calcula.core.errors import AuthenticationError, AuthorizationError, RemoteServiceError
from calcula.db.session import get_db
from calcula.models.profile import Profile
from calcula.services.activity_log import ActivityLogger
from calcula.services.roles import has_role_or_higher

logger = logging.getLogger(__name__)

ASYMMETRIC_ALGORITHMS = ("ES256", "RS256")

_jwks_client: Optional[jwt.PyJWKClient] = None


def get_jwks_client() -> jwt.PyJWKClient:
    """Single PyJWKClient per process; it caches the signing keys itself."""
    global _jwks_client
    if _jwks_client is None:
        if not SUPABASE_URL:
            logger.error("[AUTH] SUPABASE_URL is missing for asymmetric token verification")
            raise RemoteServiceError("Server misconfiguration: SUPABASE_URL not set")
        _jwks_client = jwt.PyJWKClient(f"{SUPABASE_URL}/auth/v1/.well-known/jwks.json", cache_keys=True)
    return _jwks_client


@dataclass
class AuthenticatedUser:
    id: str
    email: Optional[str] = None
    claims: dict = field(default_factory=dict)


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Missing authorization header")
    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid header format. Expected 'Bearer <token>'")

    token = authorization[len("Bearer "):].strip()
    if not token or token.lower() in ("null", "undefined", "none"):
        raise AuthenticationError("Missing token")
    if len(token.split(".")) != 3:
        logger.info("[AUTH] Token with %s segments rejected", len(token.split(".")))
        raise AuthenticationError("Invalid token format")
    return token


def verify_supabase_token(token: str) -> dict:
    """
    Verifies a Supabase access token and returns its claims.
    HS256 tokens use the project's JWT secret; ES256/RS256 tokens are checked
    against the project's JWKS.
    """
    try:
        algo = jwt.get_unverified_header(token).get("alg")
    except jwt.DecodeError as e:
        logger.info("[AUTH] Failed to decode token header: %s", e)
        raise AuthenticationError("Invalid token header")

    if algo == "HS256":
        if not SUPABASE_JWT_SECRET:
            logger.error("[AUTH] SUPABASE_JWT_SECRET is missing in environment variables")
            raise RemoteServiceError("Server misconfiguration: SUPABASE_JWT_SECRET not set")
        key = SUPABASE_JWT_SECRET
    elif algo in ASYMMETRIC_ALGORITHMS:
        try:
            key = get_jwks_client().get_signing_key_from_jwt(token).key
        except jwt.PyJWKClientError as e:
            logger.error("[AUTH] Could not resolve signing key: %s", e)
            raise AuthenticationError("Invalid token signature")
    else:
        logger.info("[AUTH] Unsupported algorithm: %s", algo)
        raise AuthenticationError(f"Unsupported token algorithm: {algo}")

    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=[algo],
            audience="authenticated",
            options={"verify_aud": True},
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.info("[AUTH] %s verification failed: %s", algo, e)
        raise AuthenticationError("Invalid token signature")

    if not payload.get("sub"):
        raise AuthenticationError("Token missing user ID claim")
    return payload


def _ensure_profile(db: Session, user: AuthenticatedUser) -> None:
    """Create the profile row on first sight of a user, so plan lookups never 404."""
    try:
        if db.query(Profile.id).filter(Profile.user_id == user.id).first():
            return
        db.add(Profile(user_id=user.id, email=user.email, plan="free"))
        db.commit()
        logger.info("[AUTH] Created profile for user %s", user.id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[AUTH] Database error while ensuring profile: %s", e)
        raise RemoteServiceError(f"Profile lookup failed: {e}") from e


def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> AuthenticatedUser:
    """Main dependency for authenticated routes."""
    payload = verify_supabase_token(extract_bearer_token(authorization))
    user = AuthenticatedUser(id=payload["sub"], email=payload.get("email"), claims=payload)
    _ensure_profile(db, user)
    return user


def get_optional_user(
    authorization: Optional[str] = Header(None),
) -> Optional[AuthenticatedUser]:
    """Like get_current_user, but anonymous callers get None instead of a 401."""
    if not authorization:
        return None
    try:
        payload = verify_supabase_token(extract_bearer_token(authorization))
    except AuthenticationError:
        return None
    return AuthenticatedUser(id=payload["sub"], email=payload.get("email"), claims=payload)


def require_role(required_role: str):
    """Dependency factory: 401 without a valid token, 403 below the required role."""

    def dependency(
        user: AuthenticatedUser = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> AuthenticatedUser:
        if not has_role_or_higher(db, user.id, required_role):
            raise AuthorizationError(f"Unauthorized: {required_role} access required")
        return user

    return dependency


require_admin = require_role("admin")


def get_activity_logger(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ActivityLogger:
    return ActivityLogger(db, user.id)
