"""Seller payout onboarding endpoints."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, status, Depends
from fastapi.responses import RedirectResponse

from auth import get_current_user
from connect import NoConnectedAccountError
from payments import PaymentError, PaymentsNotConfiguredError
from users import LegalProfile, UserNotFoundError
from ..dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/connect",
    tags=["Connect"]
)

@router.get("/onboard")
async def onboard(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Redirect the seller to hosted onboarding."""
    try:
        url = await services.onboarding.create_onboarding_link(user)
    except PaymentsNotConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except PaymentError as e:
        logger.error(f"Onboarding link for user {user['id']} failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to create onboarding link: {e}"
        )
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)

@router.get("/refresh")
async def refresh():
    """Landing page for an interrupted onboarding."""
    return {"message": "Onboarding was interrupted, start again", "onboard_url": "/connect/onboard"}

@router.get("/return")
async def onboarding_return(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Synchronize status after onboarding and pay out anything queued."""
    try:
        return await services.onboarding.complete_onboarding(user)
    except NoConnectedAccountError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

@router.get("/status")
async def connect_status(
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Current payout status of the seller."""
    result = await services.synchronizer.sync(user)
    return result._asdict()

@router.put("/legal")
async def update_legal(
    profile: LegalProfile,
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Save the seller's legal disclosure profile."""
    try:
        stored = await services.users.update_legal_profile(user['id'], profile)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {**stored.model_dump(), "complete": stored.is_complete}
