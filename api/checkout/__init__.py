"""Checkout session endpoint."""

from fastapi import APIRouter, HTTPException, status, Depends

from payments import PaymentError, PaymentsNotConfiguredError
from settlement import CheckoutError
from ..dependencies import Services, get_services

router = APIRouter(
    prefix="/checkout",
    tags=["Checkout"]
)

@router.post("/{slug}")
async def create_checkout(slug: str, services: Services = Depends(get_services)):
    """Create a hosted checkout session for an item."""
    item = await services.items.get_item_by_slug(slug)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")

    try:
        return await services.checkout.create_session(item)
    except CheckoutError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PaymentsNotConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except PaymentError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
