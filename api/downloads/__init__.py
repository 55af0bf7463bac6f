"""Buyer-facing download endpoints: token redemption and the checkout success page."""

import logging

from fastapi import APIRouter, HTTPException, Query, status, Depends
from fastapi.responses import FileResponse

from downloads import (
    DownloadError, TokenNotFoundError, TokenUsedError, TokenExpiredError, AssetMissingError
)
from items import public_view
from payments import PaymentError, PaymentsNotConfiguredError
from ..dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Downloads"])

@router.get("/download/{token}")
async def download(token: str, services: Services = Depends(get_services)):
    """Redeem a download token.

    Returns a short-lived signed URL for stored originals, or streams the
    file for legacy items kept on local disk.
    """
    try:
        grant = await services.downloads.grant(token)
    except (TokenNotFoundError, AssetMissingError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except (TokenUsedError, TokenExpiredError) as e:
        raise HTTPException(status_code=status.HTTP_410_GONE, detail=str(e))
    except DownloadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if grant.url:
        return {"url": grant.url, "expires_in": grant.expires_in}

    item = grant.item
    return FileResponse(
        grant.file_path,
        media_type=item.get('mime_type') or 'application/octet-stream',
        filename=f"{item['title']}{grant.file_path.suffix}"
    )

@router.get("/success")
async def checkout_success(
    session_id: str = Query(...),
    slug: str = Query(...),
    services: Services = Depends(get_services)
):
    """Show the buyer their download link after checkout.

    Uses the token issued by the webhook when it already exists, otherwise
    issues it here after confirming the session paid for this item.
    """
    item = await services.items.get_item_by_slug(slug)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")

    try:
        session = await services.gateway.retrieve_checkout_session(session_id)
    except PaymentsNotConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except PaymentError as e:
        logger.warning(f"Could not retrieve checkout session {session_id}: {e}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Payment could not be confirmed")

    paid = (
        session.get('payment_status') == 'paid'
        and (session.get('metadata') or {}).get('itemId') == str(item['id'])
    )
    if not paid:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Payment could not be confirmed")

    token = await services.orchestrator.ensure_download_token(item, session['id'])
    return {
        "item": public_view(item),
        "download_url": f"{services.config.base_url}/download/{token['token']}",
        "expires_at": token['expires_at'].isoformat(),
        "ttl_minutes": services.config.download_token_ttl_minutes,
    }
