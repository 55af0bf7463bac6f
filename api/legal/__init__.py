"""Public seller disclosure endpoint."""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status, Depends

from users import public_legal_profile
from ..dependencies import Services, get_services

router = APIRouter(
    prefix="/legal",
    tags=["Legal"]
)

@router.get("/seller/{user_id}")
async def seller_disclosure(user_id: UUID, services: Services = Depends(get_services)):
    """Published disclosure profile of a seller."""
    profile = public_legal_profile(await services.users.get_user(user_id))
    if not profile:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Seller has not published a disclosure profile"
        )
    return profile.model_dump()
