"""
Affiliate and admin functions. Paths mirror the serverless function names the
frontend already calls (POST /functions/<name>).
"""
import logging
from typing import Optional

from fastapi import APIRouter, Body, Cookie, Depends, Request
from sqlalchemy.orm import Session

from calcula.core.config import AFFILIATE_COOKIE_NAME, FRONTEND_URL
from calcula.core.errors import NotFoundError
from calcula.db.session import get_db
from calcula.dependencies.auth import (
    AuthenticatedUser,
    get_activity_logger,
    get_optional_user,
    require_admin,
)
from calcula.models.affiliate import Affiliate
from calcula.schemas.affiliate import (
    AdminUpdatePlanRequest,
    CheckoutRequest,
    CreateCouponRequest,
    CreateProductsRequest,
)
from calcula.services import affiliate_coupons, affiliate_products, affiliate_sync, checkout, subscriptions
from calcula.services.activity_log import ActivityLogger
from calcula.api.routes.affiliates import serialize_coupon

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/create-affiliate-coupon")
def create_affiliate_coupon(
    request: CreateCouponRequest = Body(...),
    admin: AuthenticatedUser = Depends(require_admin),
    activity: ActivityLogger = Depends(get_activity_logger),
    db: Session = Depends(get_db),
):
    logger.info("[CREATE-AFFILIATE-COUPON] Request from admin %s", admin.id)
    coupon = affiliate_coupons.create_coupon(
        db,
        affiliate_id=request.affiliate_id,
        name=request.name,
        discount_type=request.discount_type,
        discount_value=request.discount_value,
        max_redemptions=request.max_redemptions,
        expires_at=request.expires_at,
        description=request.description,
    )
    activity.log(
        "create_affiliate_coupon",
        table_name="affiliate_coupons",
        record_id=coupon.id,
        value=affiliate_coupons.format_discount_value(coupon.discount_type, coupon.discount_value),
    )
    return {"success": True, "coupon": serialize_coupon(coupon)}


@router.post("/sync-affiliate-sales")
def sync_affiliate_sales(
    admin: AuthenticatedUser = Depends(require_admin),
    activity: ActivityLogger = Depends(get_activity_logger),
    db: Session = Depends(get_db),
):
    summary = affiliate_sync.reconcile_affiliate_sales(db)
    activity.log("sync_affiliate_sales", value=str(summary.synced_sales))
    return summary.to_dict()


@router.post("/create-affiliate-products")
def create_affiliate_products(
    request: CreateProductsRequest = Body(...),
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    affiliate = db.query(Affiliate).filter(Affiliate.id == request.affiliate_id).first()
    if not affiliate:
        raise NotFoundError("Afiliado não encontrado")
    products = affiliate_products.create_affiliate_products(db, affiliate)
    return {
        "success": True,
        "products": products,
        "message": f"{len(products)} produtos únicos criados para {affiliate.name}",
    }


@router.post("/migrate-existing-affiliates")
def migrate_existing_affiliates(
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return affiliate_products.migrate_existing_affiliates(db)


@router.post("/affiliate-checkout")
def affiliate_checkout(
    http_request: Request,
    request: CheckoutRequest = Body(...),
    aff_code: Optional[str] = Cookie(None, alias=AFFILIATE_COOKIE_NAME),
    user: Optional[AuthenticatedUser] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    origin = http_request.headers.get("origin") or FRONTEND_URL
    customer_email = (user.email if user else None) or request.email
    return checkout.create_affiliate_checkout(
        db,
        plan_type=request.plan_type,
        billing=request.billing,
        origin=origin,
        affiliate_code=request.affiliate_code,
        cookie_code=aff_code,
        direct=request.direct,
        customer_email=customer_email,
    )


@router.post("/admin-update-user-plan")
def admin_update_user_plan(
    request: AdminUpdatePlanRequest = Body(...),
    admin: AuthenticatedUser = Depends(require_admin),
    activity: ActivityLogger = Depends(get_activity_logger),
    db: Session = Depends(get_db),
):
    return subscriptions.admin_update_user_plan(
        db,
        activity,
        user_id=request.user_id,
        new_plan=request.new_plan,
        expires_at=request.expires_at,
        reason=request.reason,
    )
