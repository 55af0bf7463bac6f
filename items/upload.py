"""Creator uploads: store the original, render previews, create the item."""

import asyncio
import logging
import mimetypes
import time
from typing import Any, Dict, Optional
from uuid import UUID

from storage import ObjectStore, write_local_file
from . import ItemManager, ItemError, new_slug
from .previews import render_previews, PreviewError

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 20 * 1024 * 1024

class UploadError(ItemError):
    """Raised when an upload is rejected."""
    pass

class ItemUploader:
    """Turns an uploaded image into a sellable item."""

    def __init__(
        self,
        items: ItemManager,
        store: Optional[ObjectStore],
        uploads_dir: str = 'uploads',
        previews_dir: str = 'previews',
        currency: str = 'jpy'
    ):
        """Initialize uploader.

        Args:
            items: Item manager used to persist the item
            store: Object store for originals; None keeps originals on local disk
            uploads_dir: Local directory for originals when no store is configured
            previews_dir: Local directory served under /previews
            currency: Default currency
        """
        self.items = items
        self.store = store
        self.uploads_dir = uploads_dir
        self.previews_dir = previews_dir
        self.currency = currency

    async def upload(
        self,
        body: bytes,
        content_type: str,
        title: str,
        price: int,
        owner_user_id: Optional[UUID],
        attest_owner: bool,
        currency: Optional[str] = None,
        creator_name: str = '',
        license_preset: str = 'standard',
        license_notes: str = '',
        ai_generated: bool = False,
        ai_model_name: str = ''
    ) -> Dict[str, Any]:
        """Validate and store an upload, then create its item.

        Args:
            body: Original image bytes
            content_type: MIME type reported by the client
            title: Listing title
            price: Price in the smallest currency unit
            owner_user_id: Uploading seller
            attest_owner: Uploader confirmed they hold the rights
            currency: Optional currency, defaults to the platform currency

        Returns:
            The created item

        Raises:
            UploadError: If the upload is not an acceptable image
            ItemError: If item validation fails
        """
        if not (content_type or '').startswith('image/'):
            raise UploadError("Only image files can be uploaded")
        if not body:
            raise UploadError("No image was selected")
        if len(body) > MAX_UPLOAD_BYTES:
            raise UploadError("Image exceeds the 20 MB limit")
        if not attest_owner:
            raise UploadError("Uploader must confirm they hold the rights to the image")

        # Fail on bad fields before doing any storage work
        self.items.validate(title, price, None, 'pending', license_preset)

        slug = new_slug()
        try:
            previews = await asyncio.to_thread(render_previews, body)
        except PreviewError as e:
            raise UploadError(str(e))

        card_name = f"{slug}-preview.jpg"
        checkout_name = f"{slug}-checkout.jpg"
        await write_local_file(self.previews_dir, card_name, previews.card)
        await write_local_file(self.previews_dir, checkout_name, previews.checkout)

        extension = mimetypes.guess_extension(content_type) or '.bin'
        original_name = f"{int(time.time() * 1000)}-{slug}{extension}"

        s3_key = None
        file_path = None
        if self.store:
            s3_key = f"originals/{original_name}"
            await self.store.put(s3_key, body, content_type)
        else:
            file_path = await write_local_file(self.uploads_dir, original_name, body)

        item = await self.items.create_item(
            slug=slug,
            title=title,
            price=price,
            currency=currency or self.currency,
            preview_path=f"/previews/{card_name}",
            checkout_preview_path=f"/previews/{checkout_name}",
            mime_type=content_type,
            s3_key=s3_key,
            file_path=file_path,
            owner_user_id=owner_user_id,
            creator_name=creator_name,
            license_preset=license_preset,
            license_notes=license_notes,
            ai_generated=ai_generated,
            ai_model_name=ai_model_name if ai_generated else ''
        )
        logger.info(f"Upload stored as item {item['id']} ({'s3' if s3_key else 'local'})")
        return item
