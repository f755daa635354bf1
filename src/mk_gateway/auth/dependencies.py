"""FastAPI dependencies: get_current_user / require_buyer.

Usage in any protected router:
    from src.mk_gateway.auth.dependencies import CurrentUser, require_buyer

    @router.post("/checkout/payment-intent")
    async def checkout(buyer: CurrentUser = Depends(require_buyer)):
        ...
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from src.mk_common.enums import AccountType
from src.mk_common.errors import BuyerAccountRequiredError, InvalidCredentialsError
from src.mk_gateway.auth.jwt_handler import decode_token

# tokenUrl points at the platform auth service (used for the Swagger "Authorize" button)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")

# Reusable 401 exception with WWW-Authenticate header (OAuth2 standard)
_CREDENTIALS_EXCEPTION = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    organization_id: str | None
    account_type: str


async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """Extract and validate the JWT Bearer token.

    Raises HTTP 401 if the token is missing, invalid, or expired.
    """
    try:
        payload = decode_token(token)
    except InvalidCredentialsError:
        raise _CREDENTIALS_EXCEPTION from None

    user_id = payload.get("sub")
    if not user_id:
        raise _CREDENTIALS_EXCEPTION

    return CurrentUser(
        user_id=user_id,
        organization_id=payload.get("org"),
        account_type=payload.get("account_type", ""),
    )


async def require_buyer(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Verify the caller is a buyer acting on behalf of an organization.

    Raises HTTP 403 (AppError 1002) otherwise.
    """
    if current_user.account_type != AccountType.BUYER or not current_user.organization_id:
        raise BuyerAccountRequiredError()
    return current_user
