"""Pydantic schemas for API serialisation."""

from datetime import date, datetime, time
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# --- Catalog ---


class ScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    days_of_week: list[int]
    start_time: time
    end_time: time
    available_spots: int
    is_active: bool


class ActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    provider_id: int
    category_id: int
    title: str
    description: str | None
    price: Decimal
    discounted_price: Decimal | None
    currency: str
    min_participants: int
    max_participants: int
    duration_minutes: int
    average_rating: Decimal
    total_reviews: int
    total_bookings: int
    schedules: list[ScheduleOut] = []


class AvailabilityOut(BaseModel):
    available: bool
    schedule_id: int | None = None
    remaining_spots: int | None = None
    start_time: time | None = None
    end_time: time | None = None
    reason: str | None = None


# --- Booking ---


class ParticipantIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    age: int | None = Field(default=None, ge=0, le=120)
    gender: str | None = None
    contact_phone: str | None = None


class BookingCreate(BaseModel):
    activity_id: int
    booking_date: date
    booking_time: time
    participants: int = Field(ge=1)
    coupon_code: str | None = None
    special_requests: str | None = None
    customer_notes: str | None = None
    participant_details: list[ParticipantIn] = []


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reference: str
    activity_id: int
    customer_id: int
    booking_date: date
    booking_time: time
    participants: int
    status: str
    price_per_participant: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    coupon_code: str | None
    tax_amount: Decimal
    loyalty_points_redeemed: int
    loyalty_discount: Decimal
    gift_card_amount: Decimal
    total_amount: Decimal
    currency: str
    refund_amount: Decimal | None
    created_at: datetime
    confirmed_at: datetime | None
    cancelled_at: datetime | None
    completed_at: datetime | None


class CancelRequest(BaseModel):
    reason: str | None = None


class CancellationOut(BaseModel):
    booking: BookingOut
    refund_amount: Decimal
    refund_percentage: int
    refund_status: str


# --- Payment ---


class PaymentSessionOut(BaseModel):
    payment_id: int | None
    reference: str | None
    amount: Decimal
    currency: str
    payment_required: bool
    gateway: str | None = None
    gateway_order_id: str | None = None
    gateway_key: str | None = None
    callback_url: str | None = None


class PaymentVerifyRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_id: int
    reference: str
    amount: Decimal
    currency: str
    status: str
    gateway_order_id: str | None
    refunded_amount: Decimal
    paid_at: datetime | None


# --- Coupons ---


class CouponValidateRequest(BaseModel):
    code: str
    activity_id: int
    order_amount: Decimal = Field(gt=0)


class CouponQuoteOut(BaseModel):
    code: str
    discount_amount: Decimal
    percentage: Decimal
    discount_type: str


class CouponOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str | None
    discount_type: str
    discount_value: Decimal
    min_order_amount: Decimal | None
    max_discount_amount: Decimal | None
    valid_until: datetime


# --- Gift cards ---


class GiftCardCreate(BaseModel):
    amount: Decimal
    recipient_email: EmailStr | None = None
    recipient_name: str | None = None
    message: str | None = Field(default=None, max_length=500)


class GiftCardOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    original_amount: Decimal
    balance: Decimal
    currency: str
    status: str
    recipient_email: str | None
    recipient_name: str | None
    expires_at: datetime


class GiftCardBalanceOut(BaseModel):
    code: str
    original_amount: Decimal
    balance: Decimal
    currency: str
    status: str
    expires_at: datetime
    days_until_expiry: int
    is_expired: bool


class GiftCardApply(BaseModel):
    code: str


class AppliedDiscountOut(BaseModel):
    applied_amount: Decimal
    booking: BookingOut


# --- Loyalty ---


class LoyaltyRedeem(BaseModel):
    points: int = Field(gt=0)


class LoyaltyStatusOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tier: str
    total_points: int
    available_points: int
    lifetime_points: int
    discount_percentage: int
    benefits: list[str]
    next_tier: str | None
    points_to_next_tier: int | None
    tier_upgraded_at: datetime | None


class LoyaltyPointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    points: int
    transaction_type: str
    reference_type: str | None
    reference_id: int | None
    description: str
    created_at: datetime
    expiry_date: datetime | None


# --- Reviews ---


class ReviewCreate(BaseModel):
    booking_id: int
    rating: int
    title: str | None = Field(default=None, max_length=200)
    text: str | None = None


class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_id: int
    activity_id: int
    rating: int
    title: str | None
    text: str | None
    created_at: datetime
