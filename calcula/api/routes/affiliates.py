from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from calcula.db.session import get_db
from calcula.dependencies.auth import AuthenticatedUser, get_activity_logger, require_admin
from calcula.schemas.affiliate import CouponResponse, ToggleCouponRequest
from calcula.services import affiliate_coupons
from calcula.services.activity_log import ActivityLogger

router = APIRouter()


def serialize_coupon(coupon) -> dict:
    data = CouponResponse.model_validate(coupon).model_dump(mode="json")
    data["affiliate_name"] = coupon.affiliate.name if coupon.affiliate else None
    data["display_value"] = affiliate_coupons.format_discount_value(coupon.discount_type, coupon.discount_value)
    return data


@router.post("/coupons/{coupon_id}/toggle")
def toggle_coupon(
    coupon_id: str,
    request: ToggleCouponRequest = Body(...),
    admin: AuthenticatedUser = Depends(require_admin),
    activity: ActivityLogger = Depends(get_activity_logger),
    db: Session = Depends(get_db),
):
    coupon = affiliate_coupons.toggle_coupon_status(db, coupon_id, request.current_status)
    activity.log(
        "toggle_affiliate_coupon",
        table_name="affiliate_coupons",
        record_id=coupon.id,
        value="ativo" if coupon.is_active else "inativo",
    )
    return {"success": True, "coupon": serialize_coupon(coupon)}


@router.get("/{affiliate_id}/coupons")
def list_coupons(
    affiliate_id: str,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return {"coupons": [serialize_coupon(c) for c in affiliate_coupons.load_coupons(db, affiliate_id)]}


@router.get("/{affiliate_id}/coupons/active")
def list_active_coupons(
    affiliate_id: str,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    coupons = affiliate_coupons.load_coupons(db, affiliate_id)
    active = affiliate_coupons.get_active_coupons_for_affiliate(coupons, affiliate_id)
    return {"coupons": [serialize_coupon(c) for c in active]}
