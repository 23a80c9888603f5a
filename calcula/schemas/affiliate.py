from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class CreateCouponRequest(BaseModel):
    # Required fields are checked by the service so the caller gets the 400 envelope
    affiliate_id: Optional[str] = Field(None, alias="affiliateId")
    name: Optional[str] = None
    discount_type: Optional[str] = Field(None, alias="discountType")
    discount_value: Optional[Decimal] = Field(None, alias="discountValue")
    max_redemptions: Optional[int] = Field(None, alias="maxRedemptions")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    description: Optional[str] = None

    class Config:
        populate_by_name = True


class CouponResponse(BaseModel):
    id: str
    affiliate_id: str
    stripe_coupon_id: str
    name: str
    description: Optional[str] = None
    discount_type: str
    discount_value: float
    max_redemptions: Optional[int] = None
    times_redeemed: int
    is_active: bool
    expires_at: Optional[datetime] = None
    created_at: datetime
    affiliate_name: Optional[str] = None
    display_value: Optional[str] = None

    class Config:
        from_attributes = True


class ToggleCouponRequest(BaseModel):
    current_status: bool = Field(..., alias="currentStatus")

    class Config:
        populate_by_name = True


class CreateProductsRequest(BaseModel):
    affiliate_id: str = Field(..., alias="affiliateId")

    class Config:
        populate_by_name = True


class CheckoutRequest(BaseModel):
    plan_type: str = Field(..., alias="planType")
    billing: str
    affiliate_code: Optional[str] = Field(None, alias="affiliateCode")
    direct: bool = False
    email: Optional[EmailStr] = None

    class Config:
        populate_by_name = True


class AdminUpdatePlanRequest(BaseModel):
    user_id: Optional[str] = Field(None, alias="userId")
    new_plan: Optional[str] = Field(None, alias="newPlan")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    reason: Optional[str] = None

    class Config:
        populate_by_name = True
