"""Loyalty routes: status, history and tier discount."""

from dataclasses import asdict
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.core.database import get_db
from funbookr.core.dependencies import get_current_user
from funbookr.models.user import User
from funbookr.schemas import LoyaltyPointOut, LoyaltyStatusOut
from funbookr.services import loyalty

router = APIRouter(prefix="/loyalty", tags=["loyalty"])


@router.get("/status", response_model=LoyaltyStatusOut)
async def loyalty_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return LoyaltyStatusOut(**asdict(await loyalty.get_loyalty_status(db, user.id)))


@router.get("/history", response_model=list[LoyaltyPointOut])
async def loyalty_history(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await loyalty.get_loyalty_history(db, user.id, limit)


@router.get("/tier-discount")
async def tier_discount(
    amount: Decimal = Query(..., gt=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"amount": amount, "discount": await loyalty.calculate_tier_discount(db, user.id, amount)}
