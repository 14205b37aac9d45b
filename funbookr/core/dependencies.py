"""FastAPI dependencies for injection into route handlers."""

from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from funbookr.core.auth import decode_token
from funbookr.core.database import get_db
from funbookr.models.user import User
from funbookr.services.razorpay import RazorpayClient
from funbookr.services.result import ErrorKind, Result

bearer_scheme = HTTPBearer(auto_error=False)

FAILURE_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.BUSINESS_RULE: status.HTTP_409_CONFLICT,
    ErrorKind.EXTERNAL: status.HTTP_502_BAD_GATEWAY,
}


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Extract and validate the current user from the JWT bearer token."""
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    try:
        payload = decode_token(credentials.credentials)
        if payload.get("type") != "access":
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
        user_id = int(payload["sub"])
    except (JWTError, KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    result = await db.execute(select(User).where(User.id == user_id, User.is_active.is_(True)))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return user


# ---------------------------------------------------------------------------
# Payment gateway
# ---------------------------------------------------------------------------


async def get_gateway() -> AsyncGenerator[RazorpayClient, None]:
    """Yield a Razorpay client for the duration of one request."""
    gateway = RazorpayClient()
    try:
        yield gateway
    finally:
        await gateway.aclose()


# ---------------------------------------------------------------------------
# Result handling
# ---------------------------------------------------------------------------


def unwrap(result: Result):
    """Return the value of a successful Result or raise the matching HTTPException."""
    if result.ok:
        return result.value
    failure = result.error
    raise HTTPException(
        status_code=FAILURE_STATUS[failure.kind],
        detail=[{"rule": failure.rule or failure.kind.value, "message": failure.message}],
    )
