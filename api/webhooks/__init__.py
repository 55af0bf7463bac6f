"""Payment processor webhook endpoint."""

import logging

from asyncpg.exceptions import PostgresError
from fastapi import APIRouter, HTTPException, Request, status, Depends

from database import DatabaseError
from webhooks import WebhookNotConfiguredError, WebhookSignatureError
from ..dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/webhooks",
    tags=["Webhooks"]
)

@router.post("/stripe")
async def stripe_webhook(request: Request, services: Services = Depends(get_services)):
    """Receive a Stripe event.

    The raw body is verified before parsing. A database failure answers 500
    so that Stripe redelivers the event.
    """
    payload = await request.body()
    signature = request.headers.get('stripe-signature')

    try:
        return await services.webhook_gate.ingest(payload, signature)
    except WebhookNotConfiguredError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e)
        )
    except WebhookSignatureError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Webhook Error: {e}"
        )
    except (DatabaseError, PostgresError):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="handler error"
        )
