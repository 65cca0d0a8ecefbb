from fastapi import APIRouter, Depends

from verifyhub.deps import get_current_user
from verifyhub.models.user import User
from verifyhub.services import credits as credits_service

router = APIRouter()


@router.get("/summary")
async def credits_summary(user: User = Depends(get_current_user)):
    """Return limit, usage and health for the current user."""
    return credits_service.user_credit_summary(user)
