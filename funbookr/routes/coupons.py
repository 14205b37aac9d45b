"""Coupon routes: list usable coupons and quote a code against an order."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.core.database import get_db
from funbookr.core.dependencies import get_current_user, unwrap
from funbookr.models.user import User
from funbookr.schemas import CouponOut, CouponQuoteOut, CouponValidateRequest
from funbookr.services.coupons import list_available_coupons, validate_coupon

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.get("", response_model=list[CouponOut])
async def available_coupons(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await list_available_coupons(db, user.id)


@router.post("/validate", response_model=CouponQuoteOut)
async def quote_coupon(
    body: CouponValidateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    quote = unwrap(await validate_coupon(db, body.code, body.activity_id, body.order_amount, user.id))
    return CouponQuoteOut(
        code=quote.code,
        discount_amount=quote.discount_amount,
        percentage=quote.percentage,
        discount_type=quote.discount_type,
    )
