"""Administrative endpoints, guarded by the admin token."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status, Depends
from pydantic import BaseModel

from auth import require_admin
from items import ItemNotFoundError
from ..dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)]
)

class PreviewRepair(BaseModel):
    """Request model for repairing an item preview."""
    preview_path: str

@router.post("/retry-pending")
async def retry_pending(services: Services = Depends(get_services)):
    """Retry every queued payout."""
    results = await services.drain.drain_all()
    logger.info(f"Admin retry processed {len(results)} pending transfers")
    return results

@router.post("/expire-pending")
async def expire_pending(services: Services = Depends(get_services)):
    """Expire queued payouts past their horizon."""
    expired = await services.ledger.expire_overdue()
    return {"expired": expired}

@router.patch("/items/{item_id}/preview")
async def repair_preview(item_id: UUID, request: PreviewRepair, services: Services = Depends(get_services)):
    """Point an item at a regenerated preview."""
    try:
        item = await services.items.repair_preview_path(item_id, request.preview_path)
    except ItemNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {"id": str(item['id']), "preview_path": item['preview_path']}
