"""
Plan usage and limit enforcement.

Usage is always a fresh COUNT over the account's own rows; nothing here is
cached, so a limit decision never runs on a stale number. When the count
cannot be read the caller gets UsageUnavailableError instead of a zero that
would wrongly unblock an account at its cap.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from calcula.core.errors import NotFoundError, PlanLimitExceededError, UsageUnavailableError, ValidationError
from calcula.core.plan_limits import (
    PLAN_NAMES,
    RESOURCE_TYPES,
    UNLIMITED,
    get_plan_limit,
    normalize_plan,
)
from calcula.models.markup import Markup
from calcula.models.produto import Produto
from calcula.models.profile import Profile
from calcula.models.receita import Receita

logger = logging.getLogger(__name__)

NEAR_LIMIT_RATIO = 0.8


@dataclass
class UsageStatus:
    resource: str
    plan: str
    used: int
    max: int
    unlimited: bool
    percentage: Optional[float]
    near_limit: bool
    at_limit: bool
    label: str

    def to_dict(self) -> dict:
        return asdict(self)


def evaluate_usage(resource: str, plan: str, used: int, maximum: int) -> UsageStatus:
    """Pure threshold math. -1 short-circuits before any division."""
    if maximum == UNLIMITED:
        return UsageStatus(
            resource=resource,
            plan=plan,
            used=used,
            max=maximum,
            unlimited=True,
            percentage=None,
            near_limit=False,
            at_limit=False,
            label=f"{used}/∞ {resource}",
        )

    if maximum <= 0:
        # Feature blocked on this plan
        return UsageStatus(
            resource=resource,
            plan=plan,
            used=used,
            max=maximum,
            unlimited=False,
            percentage=100.0,
            near_limit=False,
            at_limit=True,
            label=f"{used}/{maximum} {resource}",
        )

    ratio = used / maximum
    at_limit = used >= maximum
    return UsageStatus(
        resource=resource,
        plan=plan,
        used=used,
        max=maximum,
        unlimited=False,
        percentage=min(ratio * 100, 100.0),
        near_limit=ratio > NEAR_LIMIT_RATIO and not at_limit,
        at_limit=at_limit,
        label=f"{used}/{maximum} {resource}",
    )


def get_profile(db: Session, user_id: str) -> Profile:
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    if not profile:
        raise NotFoundError("Perfil não encontrado")
    return profile


def get_user_plan(db: Session, user_id: str) -> str:
    """Current tier of the account; missing profile means free."""
    try:
        profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    except SQLAlchemyError as e:
        raise UsageUnavailableError(f"Failed to load plan for {user_id}: {e}") from e
    return normalize_plan(profile.plan if profile else None)


def count_usage(db: Session, user_id: str, resource: str) -> int:
    if resource not in RESOURCE_TYPES:
        raise ValidationError(f"Recurso desconhecido: {resource}")

    try:
        if resource == "produtos":
            return db.query(func.count(Produto.id)).filter(Produto.user_id == user_id).scalar() or 0
        if resource == "receitas":
            return db.query(func.count(Receita.id)).filter(Receita.user_id == user_id).scalar() or 0
        if resource == "markups":
            return (
                db.query(func.count(Markup.id))
                .filter(Markup.user_id == user_id, Markup.tipo != "sub_receita")
                .scalar()
                or 0
            )
        if resource == "pdf_exports":
            count = db.query(Profile.pdf_exports_count).filter(Profile.user_id == user_id).scalar()
            return count or 0
        # movimentacoes are not capped on any plan; nothing to count
        return 0
    except SQLAlchemyError as e:
        logger.exception("[PLAN-USAGE] Count failed for %s/%s", user_id, resource)
        raise UsageUnavailableError(f"Failed to count {resource} for {user_id}: {e}") from e


def get_usage_status(db: Session, user_id: str, resource: str, is_admin: bool = False) -> UsageStatus:
    plan = "enterprise" if is_admin else get_user_plan(db, user_id)
    used = count_usage(db, user_id, resource)
    return evaluate_usage(resource, plan, used, get_plan_limit(plan, resource))


def check_limit(db: Session, user_id: str, resource: str, count: int = 1, is_admin: bool = False) -> UsageStatus:
    """
    Raise PlanLimitExceededError if adding `count` more rows would pass the cap.
    Admins are never limited.
    """
    status = get_usage_status(db, user_id, resource, is_admin=is_admin)
    if status.unlimited:
        return status

    if status.used + count > status.max:
        plan_name = PLAN_NAMES.get(status.plan, status.plan)
        raise PlanLimitExceededError(
            f"Limite atingido: seu plano {plan_name} permite {status.max} {resource}. "
            f"Faça upgrade para adicionar mais.",
            resource=resource,
            used=status.used,
            maximum=status.max,
        )
    return status


def suggested_upgrade(current_plan: str, resource: str) -> str:
    """Plan to suggest in the upgrade message for a blocked feature."""
    plan = normalize_plan(current_plan)
    if resource in ("produtos", "movimentacoes"):
        return PLAN_NAMES["professional"]
    return PLAN_NAMES["professional"] if plan == "free" else PLAN_NAMES["enterprise"]
