"""Review routes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.core.database import get_db
from funbookr.core.dependencies import get_current_user, unwrap
from funbookr.models.user import User
from funbookr.schemas import ReviewCreate, ReviewOut
from funbookr.services.ratings import create_review

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post("", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def submit_review(
    body: ReviewCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return unwrap(await create_review(db, body.booking_id, user.id, body.rating, body.title, body.text))
