"""Item upload and public sale page endpoints."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, File, Form, UploadFile, status, Depends

from auth import get_current_user
from items import ItemError, public_view
from items.upload import MAX_UPLOAD_BYTES
from storage import StorageError
from users import public_legal_profile
from ..dependencies import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Items"])

@router.post("/items", status_code=status.HTTP_201_CREATED)
async def upload_item(
    file: UploadFile = File(...),
    title: str = Form(...),
    price: int = Form(...),
    attest_owner: bool = Form(False),
    creator_name: str = Form(''),
    license_preset: str = Form('standard'),
    license_notes: str = Form(''),
    ai_generated: bool = Form(False),
    ai_model_name: str = Form(''),
    user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Upload an image and publish it as an item."""
    body = await file.read(MAX_UPLOAD_BYTES + 1)
    try:
        item = await services.uploader.upload(
            body=body,
            content_type=file.content_type or '',
            title=title,
            price=price,
            owner_user_id=user['id'],
            attest_owner=attest_owner,
            creator_name=creator_name or user.get('name') or '',
            license_preset=license_preset,
            license_notes=license_notes,
            ai_generated=ai_generated,
            ai_model_name=ai_model_name
        )
    except ItemError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    return {
        **public_view(item),
        "sale_url": f"{services.config.base_url}/s/{item['slug']}",
    }

@router.get("/s/{slug}")
async def sale_page(slug: str, services: Services = Depends(get_services)):
    """Public sale data for an item.

    Never includes the original's storage location.
    """
    item = await services.items.get_item_by_slug(slug)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")

    seller_legal = None
    if item.get('owner_user_id'):
        seller = await services.users.get_user(item['owner_user_id'])
        profile = public_legal_profile(seller)
        if profile and profile.seller_type == 'business':
            seller_legal = profile.model_dump()

    return {
        **public_view(item),
        "checkout_url": f"{services.config.base_url}/checkout/{item['slug']}",
        "seller_legal": seller_legal,
    }
