from fastapi import APIRouter, Depends

from app.core.limiter import enforce_rate_limit
from app.core.security import USER_ROLE, authorize
from app.models.user import User
from app.schemas.quota import QuotaResponse

router = APIRouter(dependencies=[Depends(enforce_rate_limit)])

authorize_user = authorize(USER_ROLE)


@router.get("", response_model=QuotaResponse)
def get_quota(current_user: User = Depends(authorize_user)):
    """Report the caller's remaining quota and per-endpoint usage."""
    return current_user
