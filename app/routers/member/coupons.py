"""
Member Coupons Router - Coupon code validation for checkout
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status, Depends
from pydantic import BaseModel, Field

from app.dependencies import get_coupon_service
from app.middleware import verify_bearer_token
from app.services.coupons import CouponService, apply_discount

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/coupons", tags=["Member - Coupons"])


class ValidateCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    price: Optional[float] = Field(None, ge=0)


@router.post("/validate")
def validate_coupon(
    request: ValidateCouponRequest,
    auth: dict = Depends(verify_bearer_token),
    service: CouponService = Depends(get_coupon_service),
):
    """Check a coupon code and preview the discounted price"""
    coupon = service.validate(request.code)
    if coupon is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error_code": "INVALID_COUPON",
                "message": "Coupon code is invalid or has expired",
            },
        )

    data = coupon.model_dump(mode="json")
    if request.price is not None:
        data["original_price"] = request.price
        data["final_price"] = apply_discount(request.price, coupon)

    return {"success": True, "data": data}
