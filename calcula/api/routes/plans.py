from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from calcula.core.plan_limits import PLAN_LIMITS, PLAN_NAMES, get_plan_price
from calcula.db.session import get_db
from calcula.dependencies.auth import AuthenticatedUser, get_current_user
from calcula.schemas.plan import CheckLimitRequest, CurrentPlanResponse, UsageStatusResponse
from calcula.services import plan_usage
from calcula.services.roles import has_role_or_higher

router = APIRouter()


@router.get("/current", response_model=CurrentPlanResponse)
def get_current_plan(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    profile = plan_usage.get_profile(db, user.id)
    plan = plan_usage.get_user_plan(db, user.id)
    return CurrentPlanResponse(
        plan=plan,
        plan_name=PLAN_NAMES[plan],
        billing=profile.billing or "monthly",
        price=float(get_plan_price(plan, profile.billing or "monthly")),
        limits=PLAN_LIMITS[plan],
        is_admin=has_role_or_higher(db, user.id, "admin"),
    )


@router.get("/usage/{resource}", response_model=UsageStatusResponse)
def get_usage(
    resource: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Fresh usage for one resource; re-counted on every call."""
    is_admin = has_role_or_higher(db, user.id, "admin")
    return plan_usage.get_usage_status(db, user.id, resource, is_admin=is_admin).to_dict()


@router.post("/check/{resource}", response_model=UsageStatusResponse)
def check_resource_limit(
    resource: str,
    request: Optional[CheckLimitRequest] = Body(None),
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """403 with the upgrade message when adding `count` rows would pass the cap."""
    is_admin = has_role_or_higher(db, user.id, "admin")
    return plan_usage.check_limit(db, user.id, resource, count=request.count if request else 1, is_admin=is_admin).to_dict()
