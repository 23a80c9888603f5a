"""Role hierarchy checks (owner > admin > hr_manager > employee > viewer)."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from calcula.db.base import utcnow
from calcula.models.profile import Profile
from calcula.models.user_role import UserRole

logger = logging.getLogger(__name__)

ROLE_HIERARCHY = {
    "viewer": 1,
    "employee": 2,
    "hr_manager": 3,
    "admin": 4,
    "owner": 5,
}


def role_level(role: Optional[str]) -> int:
    return ROLE_HIERARCHY.get(role or "", 0)


def get_highest_role(db: Session, user_id: str, now: Optional[datetime] = None) -> Optional[str]:
    now = now or utcnow()
    grants = db.query(UserRole).filter(UserRole.user_id == user_id).all()
    active = [g.role for g in grants if g.expires_at is None or g.expires_at > now]

    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if profile and profile.is_admin:
        active.append("admin")

    if not active:
        return None
    return max(active, key=role_level)


def has_role_or_higher(db: Session, user_id: str, required_role: str, now: Optional[datetime] = None) -> bool:
    if required_role not in ROLE_HIERARCHY:
        raise ValueError(f"Unknown role: {required_role}")
    highest = get_highest_role(db, user_id, now)
    allowed = role_level(highest) >= role_level(required_role)
    if not allowed:
        logger.info("[AUTH] User %s has role %s, %s required", user_id, highest, required_role)
    return allowed
