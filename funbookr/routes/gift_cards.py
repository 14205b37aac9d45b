"""Gift card routes: purchase, balance, validation and cancellation."""

from dataclasses import asdict

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.core.config import settings
from funbookr.core.database import get_db
from funbookr.core.dependencies import get_current_user, unwrap
from funbookr.models.user import User
from funbookr.schemas import GiftCardBalanceOut, GiftCardCreate, GiftCardOut
from funbookr.services import gift_cards

router = APIRouter(prefix="/gift-cards", tags=["gift-cards"])


@router.post("", response_model=GiftCardOut, status_code=status.HTTP_201_CREATED)
async def purchase_gift_card(
    body: GiftCardCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(
        await gift_cards.create_gift_card(
            db,
            amount=body.amount,
            purchaser_id=user.id,
            recipient_email=body.recipient_email,
            recipient_name=body.recipient_name,
            message=body.message,
            currency=settings.default_currency,
        )
    )


@router.get("", response_model=list[GiftCardOut])
async def my_gift_cards(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await gift_cards.list_user_gift_cards(db, user.id)


@router.get("/{code}/balance", response_model=GiftCardBalanceOut)
async def gift_card_balance(code: str, db: AsyncSession = Depends(get_db)):
    return GiftCardBalanceOut(**asdict(unwrap(await gift_cards.get_gift_card_balance(db, code))))


@router.get("/{code}/validate")
async def validate_gift_card(code: str, db: AsyncSession = Depends(get_db)):
    result = await gift_cards.validate_gift_card(db, code)
    # Lazy expiry must persist even when the card is rejected
    await db.commit()
    quote = unwrap(result)
    return {"code": quote.code, "balance": quote.balance, "expires_at": quote.expires_at}


@router.delete("/{code}", response_model=GiftCardOut)
async def cancel_gift_card(
    code: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await gift_cards.cancel_gift_card(db, code, user.id))
