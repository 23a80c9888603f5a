from typing import Dict, Optional

from pydantic import BaseModel


class UsageStatusResponse(BaseModel):
    resource: str
    plan: str
    used: int
    max: int
    unlimited: bool
    percentage: Optional[float] = None
    near_limit: bool
    at_limit: bool
    label: str


class CurrentPlanResponse(BaseModel):
    plan: str
    plan_name: str
    billing: str
    price: float
    limits: Dict[str, int]
    is_admin: bool = False


class CheckLimitRequest(BaseModel):
    count: int = 1
