"""Payment routes: start a gateway checkout and verify its callback."""

from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.core.database import get_db
from funbookr.core.dependencies import get_current_user, get_gateway, unwrap
from funbookr.models.user import User
from funbookr.schemas import PaymentOut, PaymentSessionOut, PaymentVerifyRequest
from funbookr.services.payments import initiate_payment, verify_client_payment
from funbookr.services.razorpay import RazorpayClient

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/bookings/{booking_id}", response_model=PaymentSessionOut)
async def start_payment(
    booking_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayClient = Depends(get_gateway),
):
    session = unwrap(await initiate_payment(db, gateway, booking_id, user.id))
    return PaymentSessionOut(**asdict(session))


@router.post("/verify", response_model=PaymentOut)
async def verify_payment(
    body: PaymentVerifyRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await verify_client_payment(
        db, body.razorpay_order_id, body.razorpay_payment_id, body.razorpay_signature, user.id
    )
    # A rejected signature still marks the payment failed
    await db.commit()
    return unwrap(result)
